"""Telemetry snapshot cache.

Holds the latest state record reported by the vehicle. A background
poller refreshes it on a fixed period; reporter blocks read it without
ever touching the network. A failed refresh leaves the previous
snapshot in place.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from numbers import Number
from time import monotonic
from typing import Any, Optional

from core.comms.channel import CommandChannel

logger = logging.getLogger(__name__)

TELEMETRY_FIELDS = (
    "pitch", "roll", "yaw",
    "vgx", "vgy", "vgz",
    "tof", "h", "bat", "baro", "time",
    "agx", "agy", "agz",
)


class TelemetryParseError(ValueError):
    """The state response is not a well-formed telemetry record."""


@dataclass(frozen=True)
class TelemetrySnapshot:
    """One complete state record. Never mutated, only replaced."""

    pitch: Optional[float] = None    # degrees
    roll: Optional[float] = None
    yaw: Optional[float] = None
    vgx: Optional[float] = None      # cm/s
    vgy: Optional[float] = None
    vgz: Optional[float] = None
    tof: Optional[float] = None      # cm above ground (time of flight)
    h: Optional[float] = None        # cm since takeoff
    bat: Optional[float] = None      # percent
    baro: Optional[float] = None     # cm, barometer
    time: Optional[float] = None     # seconds airborne
    agx: Optional[float] = None      # 0.001 g
    agy: Optional[float] = None
    agz: Optional[float] = None

    received_at: float = field(default_factory=monotonic, compare=False)

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in TELEMETRY_FIELDS}


def _native_number(text: str) -> float:
    number = float(text)
    if number.is_integer() and "." not in text and "e" not in text.lower():
        return int(number)
    return number


def _parse_native(text: str) -> dict:
    """Parse the SDK's ``pitch:0;roll:0;...;agz:-999.00;`` state line."""
    record = {}
    for pair in text.strip().split(";"):
        if not pair.strip():
            continue
        key, sep, raw = pair.partition(":")
        if not sep:
            raise TelemetryParseError(f"Malformed state pair: {pair!r}")
        key = key.strip()
        if key not in TELEMETRY_FIELDS:
            # mpry, templ, temph and friends
            continue
        try:
            record[key] = _native_number(raw.strip())
        except ValueError:
            raise TelemetryParseError(f"Non-numeric value for {key}: {raw!r}") from None
    return record


def parse_state(text: Any) -> TelemetrySnapshot:
    """Parse a state response into a snapshot.

    Accepts a JSON object or the vehicle's native ``key:value;`` line.
    JSON values are kept exactly as decoded.
    """
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("utf-8", errors="replace")
    if not isinstance(text, str) or not text.strip():
        raise TelemetryParseError("Empty state response")

    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise TelemetryParseError(f"Invalid JSON state: {e}") from None
        except RecursionError:
            raise TelemetryParseError("JSON state nested too deeply") from None
        if not isinstance(data, dict):
            raise TelemetryParseError("State record is not an object")
        record = {k: v for k, v in data.items() if k in TELEMETRY_FIELDS}
    else:
        record = _parse_native(stripped)

    if not record:
        raise TelemetryParseError("State record has no telemetry fields")

    for key, value in record.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, Number):
            raise TelemetryParseError(f"Non-numeric value for {key}: {value!r}")

    return TelemetrySnapshot(**record)


class TelemetryCache:
    """Latest-snapshot holder with stale-on-error refresh."""

    def __init__(self, channel: CommandChannel):
        self._channel = channel
        self._snapshot: Optional[TelemetrySnapshot] = None
        self._lock = threading.Lock()
        self.refreshes = 0
        self.failures = 0

    @property
    def snapshot(self) -> Optional[TelemetrySnapshot]:
        """The current snapshot, or None before the first successful refresh."""
        with self._lock:
            return self._snapshot

    @property
    def has_snapshot(self) -> bool:
        return self.snapshot is not None

    @property
    def attempts(self) -> int:
        """Completed refresh cycles, successful or not."""
        return self.refreshes + self.failures

    async def refresh(self) -> bool:
        """Query the vehicle once and install the result.

        Returns True when the snapshot was replaced. Transport and parse
        failures are logged and otherwise ignored.
        """
        try:
            response = await self._channel.query_state()
        except Exception as e:
            self.failures += 1
            logger.debug("State query failed: %s", e)
            return False

        try:
            snapshot = parse_state(response)
        except TelemetryParseError as e:
            self.failures += 1
            logger.debug("Discarding state response: %s", e)
            return False

        with self._lock:
            self._snapshot = snapshot
        self.refreshes += 1
        return True

    def read(self, name: str) -> Any:
        """Return one field of the current snapshot, or None if there is none yet."""
        if name not in TELEMETRY_FIELDS:
            raise ValueError(f"Unknown telemetry field: {name}")
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            return None
        return getattr(snapshot, name)


class TelemetryPoller:
    """Drives ``TelemetryCache.refresh()`` on a fixed period.

    Runs its own asyncio loop on a daemon thread. A tick never waits for
    the previous refresh, so slow responses can overlap; whichever
    finishes last wins. At most ``max_in_flight`` refreshes are
    outstanding at once; a tick that finds that many is skipped.
    """

    def __init__(
        self,
        cache: TelemetryCache,
        interval: float = 0.1,
        max_in_flight: int = 4,
    ):
        self._cache = cache
        self._interval = interval
        self._max_in_flight = max(1, max_in_flight)
        self._pending: set = set()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self.ticks = 0
        self.skipped = 0

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._run, name="telemetry-poller", daemon=True
        )
        self._thread.start()
        self._ready.wait(timeout=5.0)
        logger.info("Telemetry polling every %.0f ms", self._interval * 1000)

    def stop(self, timeout: float = 2.0) -> None:
        if not self.is_running:
            return
        if self._loop is not None and self._stop is not None:
            self._loop.call_soon_threadsafe(self._stop.set)
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Telemetry polling stopped after %d ticks", self.ticks)

    def _run(self) -> None:
        asyncio.run(self._poll())

    async def _poll(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()
        self._ready.set()

        pending = self._pending
        try:
            while not self._stop.is_set():
                if len(pending) >= self._max_in_flight:
                    self.skipped += 1
                    logger.debug("Skipping tick, %d refreshes outstanding", len(pending))
                else:
                    task = asyncio.ensure_future(self._cache.refresh())
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                self.ticks += 1
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for task in list(pending):
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._loop = None
