"""Tests for the telemetry cache, state parsing and the poller."""

import asyncio
import json
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comms.channel import ChannelError, CommandChannel
from core.flight.telemetry import (
    TELEMETRY_FIELDS,
    TelemetryCache,
    TelemetryParseError,
    TelemetryPoller,
    TelemetrySnapshot,
    parse_state,
)

NATIVE_STATE = (
    "pitch:3;roll:-1;yaw:45;vgx:0;vgy:0;vgz:0;templ:60;temph:63;tof:92;h:80;"
    "bat:77;baro:12.34;time:5;agx:-8.00;agy:2.00;agz:-999.00;\r\n"
)
DEEPLY_NESTED = '{"pitch": ' + "[" * 200000 + "]" * 200000 + "}"


class ScriptedChannel(CommandChannel):
    """Returns queued responses; exceptions in the queue are raised."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.sent = []

    def send(self, command_line):
        self.sent.append(command_line)

    async def query_state(self):
        if not self.responses:
            raise ChannelError("no response")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class GatedChannel(CommandChannel):
    """Each query blocks until the test releases it."""

    def __init__(self, payloads):
        self.payloads = list(payloads)
        self.gates = []

    def send(self, command_line):
        pass

    async def query_state(self):
        index = len(self.gates)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return self.payloads[index]


def _state(**fields) -> str:
    return json.dumps(fields)


def test_parse_json_keeps_values():
    snap = parse_state(_state(pitch=3, bat=77, baro=12.5, agz=-999.0))
    assert snap.pitch == 3
    assert snap.bat == 77
    assert snap.baro == 12.5
    assert snap.agz == -999.0
    assert snap.roll is None


def test_parse_native_state_line():
    snap = parse_state(NATIVE_STATE)
    assert snap.pitch == 3
    assert isinstance(snap.pitch, int)
    assert snap.h == 80
    assert snap.bat == 77
    assert snap.baro == 12.34
    assert snap.agx == -8.0
    assert isinstance(snap.agx, float)


def test_parse_accepts_bytes():
    assert parse_state(NATIVE_STATE.encode()).tof == 92


def test_parse_ignores_unknown_keys():
    snap = parse_state(_state(bat=50, wifi=90))
    assert snap.bat == 50
    assert "wifi" not in snap.as_dict()


@pytest.mark.parametrize("bad", [
    "",
    "   ",
    "not a record",
    "{broken json",
    "[1, 2, 3]",
    _state(pitch="level"),
    _state(bat=True),
    _state(wifi=90),
    "pitch:abc;roll:0;",
    None,
    pytest.param(DEEPLY_NESTED, id="deeply-nested"),
])
def test_parse_rejects_malformed(bad):
    with pytest.raises(TelemetryParseError):
        parse_state(bad)


def test_snapshot_equality_ignores_receive_time():
    a = TelemetrySnapshot(pitch=1, bat=50)
    time.sleep(0.001)
    b = TelemetrySnapshot(pitch=1, bat=50)
    assert a == b
    assert list(a.as_dict()) == list(TELEMETRY_FIELDS)


def test_reads_absent_before_first_refresh():
    cache = TelemetryCache(ScriptedChannel())
    assert cache.snapshot is None
    assert not cache.has_snapshot
    for name in TELEMETRY_FIELDS:
        assert cache.read(name) is None


def test_refresh_installs_parsed_values():
    cache = TelemetryCache(ScriptedChannel([_state(pitch=3, bat=77, h=120)]))
    assert asyncio.run(cache.refresh()) is True
    assert cache.read("pitch") == 3
    assert cache.read("bat") == 77
    assert cache.read("h") == 120
    assert cache.read("roll") is None
    assert cache.refreshes == 1


def test_unknown_field_raises():
    cache = TelemetryCache(ScriptedChannel())
    with pytest.raises(ValueError):
        cache.read("height")


def test_transport_error_keeps_snapshot():
    channel = ScriptedChannel([_state(pitch=3, bat=77), ChannelError("timed out")])
    cache = TelemetryCache(channel)
    asyncio.run(cache.refresh())
    before = cache.snapshot

    assert asyncio.run(cache.refresh()) is False
    assert cache.snapshot == before
    assert cache.snapshot is before
    assert cache.failures == 1


def test_parse_error_keeps_snapshot():
    channel = ScriptedChannel([_state(pitch=3, bat=77), "garbage"])
    cache = TelemetryCache(channel)
    asyncio.run(cache.refresh())
    before = cache.snapshot

    assert asyncio.run(cache.refresh()) is False
    assert cache.snapshot is before
    assert cache.read("bat") == 77


def test_deeply_nested_response_is_discarded():
    channel = ScriptedChannel([_state(bat=77), DEEPLY_NESTED])
    cache = TelemetryCache(channel)
    asyncio.run(cache.refresh())
    assert asyncio.run(cache.refresh()) is False
    assert cache.read("bat") == 77
    assert cache.failures == 1


def test_unexpected_channel_exception_is_contained():
    cache = TelemetryCache(ScriptedChannel([RuntimeError("boom")]))
    assert asyncio.run(cache.refresh()) is False
    assert cache.snapshot is None


def test_refresh_replaces_whole_snapshot():
    """Fields missing from the new record are not carried over."""
    channel = ScriptedChannel([_state(pitch=3, bat=77), _state(pitch=5)])
    cache = TelemetryCache(channel)
    asyncio.run(cache.refresh())
    asyncio.run(cache.refresh())
    assert cache.read("pitch") == 5
    assert cache.read("bat") is None


def test_overlapping_refreshes_last_completion_wins():
    first = _state(pitch=1, roll=1, bat=90)
    second = _state(pitch=2, yaw=2, bat=80)
    channel = GatedChannel([first, second])
    cache = TelemetryCache(channel)

    async def scenario():
        t1 = asyncio.ensure_future(cache.refresh())
        t2 = asyncio.ensure_future(cache.refresh())
        while len(channel.gates) < 2:
            await asyncio.sleep(0)
        # Second request answers first
        channel.gates[1].set()
        await t2
        channel.gates[0].set()
        await t1

    asyncio.run(scenario())
    assert cache.snapshot == parse_state(first)
    assert cache.read("yaw") is None
    assert cache.refreshes == 2


def test_poller_refreshes_in_background():
    channel = ScriptedChannel([_state(pitch=4, bat=60)] * 1000)
    cache = TelemetryCache(channel)
    poller = TelemetryPoller(cache, interval=0.01)
    poller.start()
    try:
        deadline = time.monotonic() + 2.0
        while not cache.has_snapshot and time.monotonic() < deadline:
            time.sleep(0.01)
        assert cache.read("bat") == 60
        assert poller.is_running
    finally:
        poller.stop()
    assert not poller.is_running
    assert poller.ticks >= 1


def test_poller_start_is_idempotent():
    cache = TelemetryCache(ScriptedChannel())
    poller = TelemetryPoller(cache, interval=0.05)
    poller.start()
    thread = poller._thread
    poller.start()
    assert poller._thread is thread
    poller.stop()
    poller.stop()


def test_poller_survives_failing_channel():
    cache = TelemetryCache(ScriptedChannel())  # every query fails
    poller = TelemetryPoller(cache, interval=0.01)
    poller.start()
    time.sleep(0.1)
    assert poller.is_running
    poller.stop()
    assert cache.snapshot is None
    assert cache.failures >= 1


class SilentChannel(CommandChannel):
    """Never answers a state query."""

    def __init__(self):
        self.queries = 0

    def send(self, command_line):
        pass

    async def query_state(self):
        self.queries += 1
        await asyncio.Event().wait()


def test_poller_caps_outstanding_refreshes():
    channel = SilentChannel()
    poller = TelemetryPoller(TelemetryCache(channel), interval=0.005, max_in_flight=3)
    poller.start()
    try:
        peak = 0
        deadline = time.monotonic() + 0.3
        while time.monotonic() < deadline:
            peak = max(peak, poller.in_flight)
            time.sleep(0.005)
        assert peak <= 3
        assert poller.skipped > 0
        assert channel.queries <= 3
    finally:
        poller.stop()
    assert poller.in_flight == 0
