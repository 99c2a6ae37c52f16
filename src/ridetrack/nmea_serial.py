"""Position backend reading NMEA 0183 sentences from a serial GPS receiver."""

import errno
import logging
import threading
import time
import datetime as dt
from typing import Optional, Dict, Any

import serial

from .config import GPS_SERIAL_PORT, GPS_SERIAL_BAUDRATE
from .errors import LocationErrorKind
from .position_source import PositionBackend, PositionOptions, FixCallback, ErrorCallback

logger = logging.getLogger(__name__)


def _parse_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_latlon(value: Optional[str], direction: Optional[str], is_lat: bool) -> Optional[float]:
    """Convert NMEA ``ddmm.mmmm``/``dddmm.mmmm`` plus hemisphere to decimal degrees."""
    if not value or not direction:
        return None
    deg_len = 2 if is_lat else 3
    if len(value) < deg_len:
        return None
    try:
        degrees = int(value[:deg_len])
        minutes = float(value[deg_len:])
    except ValueError:
        return None
    decimal = degrees + minutes / 60.0
    if direction.upper() in ("S", "W"):
        decimal = -decimal
    return decimal


def _parse_timestamp(hms: Optional[str], dmy: Optional[str]) -> Optional[float]:
    """UTC ``hhmmss.ss`` and ``ddmmyy`` to epoch seconds."""
    if not hms or not dmy or len(dmy) != 6:
        return None
    main, _, frac = hms.partition(".")
    main = main.rjust(6, "0")
    try:
        moment = dt.datetime(
            2000 + int(dmy[4:6]), int(dmy[2:4]), int(dmy[0:2]),
            int(main[0:2]), int(main[2:4]), int(main[4:6]),
            int((frac[:6] or "0").ljust(6, "0")),
            tzinfo=dt.timezone.utc,
        )
    except ValueError:
        return None
    return moment.timestamp()


def nmea_checksum_ok(sentence: str) -> bool:
    """Validate the ``*hh`` checksum. Sentences without one are rejected."""
    if not sentence.startswith("$") or "*" not in sentence:
        return False
    body, checksum = sentence[1:].split("*", 1)
    try:
        expected = int(checksum[:2], 16)
    except ValueError:
        return False
    actual = 0
    for char in body:
        actual ^= ord(char)
    return actual == expected


def parse_nmea_sentence(sentence: str) -> Optional[Dict[str, Any]]:
    """
    Parse an RMC or GGA sentence.

    Returns a dict with ``type``, ``lat``, ``lon``, ``valid`` and, for RMC,
    ``timestamp``; None for other sentence types or bad checksums.

    Examples:
        >>> parse_nmea_sentence("$GPGSV,3,1,11*7A") is None
        True
    """
    sentence = sentence.strip()
    if not nmea_checksum_ok(sentence):
        return None
    fields = sentence[1:].split("*", 1)[0].split(",")
    kind = fields[0][-3:]

    if kind == "RMC" and len(fields) >= 10:
        return {
            "type": "RMC",
            "valid": fields[2] == "A",
            "lat": _parse_latlon(fields[3], fields[4], is_lat=True),
            "lon": _parse_latlon(fields[5], fields[6], is_lat=False),
            "speed_knots": _parse_float(fields[7]),
            "course_deg": _parse_float(fields[8]),
            "timestamp": _parse_timestamp(fields[1], fields[9]),
        }
    if kind == "GGA" and len(fields) >= 7:
        quality = fields[6]
        return {
            "type": "GGA",
            "valid": quality.isdigit() and int(quality) > 0,
            "lat": _parse_latlon(fields[2], fields[3], is_lat=True),
            "lon": _parse_latlon(fields[4], fields[5], is_lat=False),
        }
    return None


class NmeaSerialBackend(PositionBackend):
    """
    GPS receiver on a serial port.

    A daemon reader thread emits one fix per valid RMC sentence. GGA is
    only used to track whether the receiver currently has a fix. No fix
    within ``options.timeout`` seconds reports TIMEOUT; failing to open or
    read the port reports PERMISSION_DENIED or POSITION_UNAVAILABLE and
    the reader retries after ``reconnect_delay``.
    """

    def __init__(
        self,
        port: str = GPS_SERIAL_PORT,
        baudrate: int = GPS_SERIAL_BAUDRATE,
        serial_factory=serial.Serial,
        reconnect_delay: float = 5.0,
    ):
        self.port = port
        self.baudrate = baudrate
        self.serial_factory = serial_factory
        self.reconnect_delay = reconnect_delay
        self.has_fix = False
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback, options: PositionOptions):
        self.clear()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._reader_loop,
            args=(on_fix, on_error, options, stop_event),
            daemon=True,
        )
        self._thread.start()

    def clear(self):
        # The reader notices on its next readline timeout and closes the port
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None
        self._thread = None

    def _open(self):
        return self.serial_factory(self.port, self.baudrate, timeout=1.0)

    def _reader_loop(self, on_fix, on_error, options: PositionOptions, stop_event: threading.Event):
        logger.info(f"GPS reader started on {self.port}")
        port = None
        last_fix = time.monotonic()
        while not stop_event.is_set():
            if port is None:
                try:
                    port = self._open()
                    last_fix = time.monotonic()
                    logger.info(f"Opened GPS receiver at {self.port}")
                except (serial.SerialException, OSError) as e:
                    if isinstance(e, PermissionError) or getattr(e, "errno", None) == errno.EACCES:
                        kind = LocationErrorKind.PERMISSION_DENIED
                    else:
                        kind = LocationErrorKind.POSITION_UNAVAILABLE
                    logger.error(f"Failed to open {self.port}: {e}")
                    on_error(kind)
                    stop_event.wait(self.reconnect_delay)
                    continue

            try:
                raw = port.readline()
            except (serial.SerialException, OSError) as e:
                logger.error(f"GPS read error: {e}")
                self._close(port)
                port = None
                on_error(LocationErrorKind.POSITION_UNAVAILABLE)
                stop_event.wait(self.reconnect_delay)
                continue

            if stop_event.is_set():
                break

            if raw:
                line = raw.decode("ascii", errors="ignore") if isinstance(raw, bytes) else raw
                parsed = parse_nmea_sentence(line)
                if parsed is not None:
                    self.has_fix = parsed["valid"]
                    if parsed["type"] == "RMC" and parsed["valid"] and parsed["lat"] is not None and parsed["lon"] is not None:
                        timestamp = parsed["timestamp"] or time.time()
                        last_fix = time.monotonic()
                        on_fix(parsed["lat"], parsed["lon"], timestamp)
                        continue

            if time.monotonic() - last_fix > options.timeout:
                on_error(LocationErrorKind.TIMEOUT)
                last_fix = time.monotonic()

        self._close(port)
        logger.info("GPS reader stopped")

    @staticmethod
    def _close(port):
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.debug(f"Error closing GPS port: {e}")
