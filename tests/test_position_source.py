"""Tests for the position source subscription."""

import pytest
from unittest.mock import Mock

from ridetrack.errors import LocationError, LocationErrorKind
from ridetrack.models import PositionSample
from ridetrack.position_source import PositionSource, PositionOptions, ReplayBackend


@pytest.fixture
def backend():
    return ReplayBackend()


@pytest.fixture
def source(backend):
    return PositionSource(backend)


def test_default_options_request_trip_accuracy():
    options = PositionOptions()
    assert options.high_accuracy is True
    assert options.maximum_age == 0
    assert options.timeout == 10.0


def test_watch_opened_with_options(source, backend):
    source.start(Mock())
    assert backend.active
    assert backend.options.high_accuracy is True


def test_each_fix_yields_one_sample_per_listener(source, backend):
    first, second = Mock(), Mock()
    source.start(first)
    source.start(second)

    backend.feed((-21.0, -47.0, 100.0))
    backend.pump()

    expected = PositionSample(-21.0, -47.0, 100.0)
    first.assert_called_once_with(expected)
    second.assert_called_once_with(expected)


def test_out_of_order_fixes_dropped(source, backend):
    on_sample = Mock()
    source.start(on_sample)

    backend.feed((-21.0, -47.0, 100.0), (-21.1, -47.1, 99.0), (-21.2, -47.2, 100.0), (-21.3, -47.3, 101.0))
    backend.pump()

    timestamps = [call.args[0].timestamp for call in on_sample.call_args_list]
    assert timestamps == [100.0, 101.0]


def test_invalid_fix_dropped(source, backend):
    on_sample = Mock()
    source.start(on_sample)

    backend.feed((float("nan"), -47.0, 1.0), (-21.0, -47.0, 2.0))
    backend.pump()

    assert on_sample.call_count == 1


def test_errors_are_reported_and_not_fatal(source, backend):
    on_sample, on_error = Mock(), Mock()
    source.start(on_sample, on_error)

    backend.feed(
        LocationErrorKind.TIMEOUT,
        (-21.0, -47.0, 1.0),
        LocationErrorKind.POSITION_UNAVAILABLE,
        (-21.0, -47.001, 2.0),
    )
    backend.pump()

    assert on_sample.call_count == 2
    kinds = [call.args[0].kind for call in on_error.call_args_list]
    assert kinds == [LocationErrorKind.TIMEOUT, LocationErrorKind.POSITION_UNAVAILABLE]
    assert isinstance(on_error.call_args_list[0].args[0], LocationError)
    assert source.watching


def test_permission_denied_message(source, backend):
    on_error = Mock()
    source.start(Mock(), on_error)
    backend.feed(LocationErrorKind.PERMISSION_DENIED)
    backend.pump()

    error = on_error.call_args[0][0]
    assert error.kind is LocationErrorKind.PERMISSION_DENIED
    assert "denied" in error.message


def test_stop_is_idempotent_and_final(source, backend):
    on_sample = Mock()
    handle = source.start(on_sample)
    backend.feed((-21.0, -47.0, 1.0))
    backend.pump()

    source.stop(handle)
    source.stop(handle)
    source.stop(None)

    assert not backend.active
    assert not source.watching
    # A late fix from the platform is not delivered
    source._handle_fix(-21.0, -47.0, 5.0)
    assert on_sample.call_count == 1


def test_stop_from_inside_listener(source, backend):
    """A listener that unsubscribes during delivery gets nothing more."""
    received = []
    handles = {}

    def on_sample(sample):
        received.append(sample)
        source.stop(handles["h"])

    handles["h"] = source.start(on_sample)
    backend.feed((-21.0, -47.0, 1.0), (-21.0, -47.0, 2.0))
    backend.pump()

    assert len(received) == 1


def test_watch_kept_while_other_listeners_remain(source, backend):
    h1 = source.start(Mock())
    second = Mock()
    source.start(second)

    source.stop(h1)
    backend.feed((-21.0, -47.0, 1.0))
    backend.pump()

    assert backend.active
    second.assert_called_once()


def test_listener_exception_does_not_close_stream(source, backend):
    failing = Mock(side_effect=RuntimeError("boom"))
    healthy = Mock()
    source.start(failing)
    source.start(healthy)

    backend.feed((-21.0, -47.0, 1.0), (-21.0, -47.0, 2.0))
    backend.pump()

    assert healthy.call_count == 2
    assert source.watching


def test_restart_resets_ordering(source, backend):
    on_sample = Mock()
    handle = source.start(on_sample)
    backend.feed((-21.0, -47.0, 100.0))
    backend.pump()
    source.stop(handle)

    source.start(on_sample)
    backend.feed((-21.0, -47.0, 50.0))
    backend.pump()

    assert on_sample.call_count == 2


def test_no_backend_reports_unsupported():
    source = PositionSource(None)
    on_error = Mock()
    handle = source.start(Mock(), on_error)

    assert on_error.call_args[0][0].kind is LocationErrorKind.UNSUPPORTED
    source.stop(handle)
