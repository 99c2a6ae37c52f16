"""Tests for route resolution."""

import pytest
import requests
from unittest.mock import patch

from ridetrack.models import PositionSample
from ridetrack.routing import RouteResolver, RouteProvider, ResolverState
from ridetrack.errors import RouteFetchError
from ridetrack.models import RouteQuery
from conftest import make_response, route_payload, offset

PRIMARY = "https://primary.example/routed-car"
FALLBACK = "https://fallback.example"
ORIGIN = (-21.0, -47.0)
DEST = (-21.005, -47.005)


@pytest.fixture
def resolver():
    return RouteResolver(
        providers=[RouteProvider("primary", PRIMARY), RouteProvider("fallback", FALLBACK)],
        dry_run=False,
    )


def sample(lat_lon, ts=0.0):
    return PositionSample(lat_lon[0], lat_lon[1], ts)


def test_provider_url_and_params(route_response):
    provider = RouteProvider("primary", PRIMARY + "/")
    query = RouteQuery(-21.0, -47.0, -21.005, -47.005)
    with patch("ridetrack.routing.requests.get", return_value=route_response()) as mock_get:
        provider.fetch(query)

    url = mock_get.call_args[0][0]
    assert url == f"{PRIMARY}/route/v1/driving/-47.0,-21.0;-47.005,-21.005"
    params = mock_get.call_args[1]["params"]
    assert params == {"overview": "full", "geometries": "geojson"}


def test_provider_swaps_lon_lat():
    provider = RouteProvider("primary", PRIMARY)
    response = make_response(payload=route_payload([(-47.0, -21.0), (-47.1, -21.2)]))
    with patch("ridetrack.routing.requests.get", return_value=response):
        geometry = provider.fetch(RouteQuery(-21.0, -47.0, -21.2, -47.1))
    assert geometry == ((-21.0, -47.0), (-21.2, -47.1))


@pytest.mark.parametrize("response", [
    make_response(status_code=503),
    make_response(content_type="text/html", payload="<html>"),
    make_response(content_type=None, payload={}),
    make_response(payload={"code": "NoRoute"}),
    make_response(payload={"routes": []}),
    make_response(payload={"routes": [{"geometry": None}]}),
    make_response(json_error=ValueError("bad json")),
])
def test_provider_failures(response):
    provider = RouteProvider("primary", PRIMARY)
    with patch("ridetrack.routing.requests.get", return_value=response):
        with pytest.raises(RouteFetchError):
            provider.fetch(RouteQuery(-21.0, -47.0, -21.005, -47.005))


def test_provider_network_error():
    provider = RouteProvider("primary", PRIMARY)
    with patch("ridetrack.routing.requests.get", side_effect=requests.exceptions.ConnectionError()):
        with pytest.raises(RouteFetchError):
            provider.fetch(RouteQuery(-21.0, -47.0, -21.005, -47.005))


def test_provider_requires_url():
    with pytest.raises(ValueError):
        RouteProvider("primary", "")


@patch("ridetrack.routing.requests.get")
def test_first_resolve_fetches(mock_get, resolver, route_response):
    mock_get.return_value = route_response()

    result = resolver.resolve(sample(ORIGIN), DEST)

    assert mock_get.call_count == 1
    assert mock_get.call_args[0][0].startswith(PRIMARY)
    assert result.geometry[0] == (-21.0, -47.0)
    assert result.destination == DEST
    assert resolver.reference_origin == sample(ORIGIN)
    assert resolver.state is ResolverState.IDLE
    assert resolver.last_outcome is ResolverState.SUCCEEDED


@patch("ridetrack.routing.requests.get")
def test_small_move_is_suppressed(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    first = resolver.resolve(sample(ORIGIN), DEST)

    second = resolver.resolve(sample(offset(*ORIGIN, north_m=29)), DEST)

    assert mock_get.call_count == 1
    assert second is first


@patch("ridetrack.routing.requests.get")
def test_move_past_threshold_refetches(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    resolver.resolve(sample(ORIGIN), DEST)

    moved = sample(offset(*ORIGIN, east_m=31), 5.0)
    resolver.resolve(moved, DEST)

    assert mock_get.call_count == 2
    assert resolver.reference_origin == moved


@patch("ridetrack.routing.requests.get")
def test_destination_change_forces_fetch(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    resolver.resolve(sample(ORIGIN), DEST)

    resolver.resolve(sample(ORIGIN), (-21.01, -47.01))

    assert mock_get.call_count == 2
    assert "-47.01,-21.01" in mock_get.call_args[0][0]


@patch("ridetrack.routing.requests.get")
def test_set_destination_resets_reference(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    resolver.resolve(sample(ORIGIN), DEST)

    resolver.set_destination((-21.01, -47.01))

    assert resolver.reference_origin is None
    assert resolver.result is None
    assert resolver.needs_fetch(sample(ORIGIN), (-21.01, -47.01))


@patch("ridetrack.routing.requests.get")
def test_invalid_coordinates_skip_network(mock_get, resolver):
    assert resolver.resolve((float("nan"), -47.0), DEST) is None
    assert resolver.resolve(ORIGIN, (-21.0, float("nan"))) is None
    assert resolver.resolve(ORIGIN, (None, None)) is None
    mock_get.assert_not_called()
    assert resolver.fetch_count == 0


@patch("ridetrack.routing.requests.get")
def test_fallback_called_with_same_parameters(mock_get, resolver, route_response):
    mock_get.side_effect = [requests.exceptions.ConnectionError(), route_response()]

    result = resolver.resolve(sample(ORIGIN), DEST)

    assert result is not None
    assert mock_get.call_count == 2
    primary_url = mock_get.call_args_list[0][0][0]
    fallback_url = mock_get.call_args_list[1][0][0]
    assert primary_url.startswith(PRIMARY)
    assert fallback_url.startswith(FALLBACK)
    assert primary_url.split("/route/")[1] == fallback_url.split("/route/")[1]
    assert mock_get.call_args_list[0][1]["params"] == mock_get.call_args_list[1][1]["params"]


@patch("ridetrack.routing.requests.get")
def test_non_json_primary_falls_back(mock_get, resolver, route_response):
    mock_get.side_effect = [make_response(content_type="text/html", payload="<html>"), route_response()]

    assert resolver.resolve(sample(ORIGIN), DEST) is not None
    assert mock_get.call_count == 2


@patch("ridetrack.routing.requests.get")
def test_both_fail_keeps_previous_result(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    previous = resolver.resolve(sample(ORIGIN), DEST)
    reference = resolver.reference_origin

    mock_get.return_value = make_response(status_code=500)
    mock_get.side_effect = None
    result = resolver.resolve(sample(offset(*ORIGIN, north_m=100)), DEST)

    assert result is previous
    assert resolver.reference_origin == reference
    assert resolver.last_outcome is ResolverState.FAILED
    assert resolver.state is ResolverState.IDLE


@patch("ridetrack.routing.requests.get")
def test_both_fail_without_cache_returns_none(mock_get, resolver):
    mock_get.side_effect = requests.exceptions.Timeout()

    assert resolver.resolve(sample(ORIGIN), DEST) is None
    assert mock_get.call_count == 2
    # No reference recorded, so the next call tries again
    resolver.resolve(sample(ORIGIN), DEST)
    assert mock_get.call_count == 4


@patch("ridetrack.routing.requests.get")
def test_cancel_discards_in_flight_response(mock_get, resolver, route_response):
    def cancel_then_respond(*args, **kwargs):
        resolver.cancel()
        return route_response()

    mock_get.side_effect = cancel_then_respond

    assert resolver.resolve(sample(ORIGIN), DEST) is None
    assert resolver.result is None
    assert resolver.reference_origin is None


@patch("ridetrack.routing.requests.get")
def test_destination_change_during_fetch_never_mixes(mock_get, resolver, route_response):
    other = (-21.02, -47.02)

    def change_destination(*args, **kwargs):
        resolver.set_destination(other)
        return route_response()

    mock_get.side_effect = change_destination
    resolver.resolve(sample(ORIGIN), DEST)

    assert resolver.result is None
    assert resolver.destination == other


@patch("ridetrack.routing.requests.get")
def test_newer_request_supersedes_older(mock_get, resolver, route_response):
    newer_origin = sample(offset(*ORIGIN, north_m=200), 10.0)
    old_geometry = [(-47.0, -21.0), (-47.005, -21.005)]
    new_geometry = [(newer_origin.longitude, newer_origin.latitude), (-47.005, -21.005)]
    calls = []

    def respond(url, **kwargs):
        calls.append(url)
        if len(calls) == 1:
            # A newer request is issued and settles while this one is in flight
            resolver.resolve(newer_origin, DEST)
            return make_response(payload=route_payload(old_geometry))
        return make_response(payload=route_payload(new_geometry))

    mock_get.side_effect = respond
    result = resolver.resolve(sample(ORIGIN), DEST)

    assert len(calls) == 2
    assert result.fetched_at_origin == newer_origin
    assert result.geometry[0] == (newer_origin.latitude, newer_origin.longitude)
    assert resolver.reference_origin == newer_origin


@patch("ridetrack.routing.requests.get")
def test_dry_run_makes_no_requests(mock_get):
    resolver = RouteResolver(dry_run=True)
    assert resolver.resolve(ORIGIN, DEST) is None
    mock_get.assert_not_called()


@patch("ridetrack.routing.requests.get")
def test_tuple_origin_accepted(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    result = resolver.resolve(ORIGIN, DEST)
    assert result.fetched_at_origin.coords == ORIGIN


@patch("ridetrack.routing.requests.get")
def test_reset_forgets_route(mock_get, resolver, route_response):
    mock_get.return_value = route_response()
    resolver.resolve(sample(ORIGIN), DEST)

    resolver.reset()

    assert resolver.result is None
    assert resolver.destination is None
    assert resolver.needs_fetch(sample(ORIGIN), DEST)


@patch("ridetrack.routing.requests.get")
def test_end_to_end_stabilization(mock_get, resolver, route_response):
    """Fetch on first call, none after 10 m, exactly one after a further 30 m."""
    mock_get.return_value = route_response()
    start = (-21.0, -47.0)
    destination = (-21.0050, -47.0050)

    resolver.resolve(sample(start), destination)
    assert mock_get.call_count == 1

    resolver.resolve(sample(offset(*start, north_m=10), 1.0), destination)
    assert mock_get.call_count == 1

    moved = sample(offset(*start, north_m=40), 2.0)
    resolver.resolve(moved, destination)
    assert mock_get.call_count == 2
    assert resolver.reference_origin == moved
