"""Tests for the local vehicle simulator."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.flight.commands import Action, encode
from core.flight.telemetry import parse_state
from tools.simulate import SimulatedTello, format_state


def test_requires_sdk_mode():
    tello = SimulatedTello()
    assert tello.handle_command("takeoff").startswith("error")
    assert tello.handle_command("command") == "ok"
    assert tello.handle_command("takeoff") == "ok"


def test_state_line_parses():
    tello = SimulatedTello()
    snap = parse_state(tello.tick())
    assert snap.bat == 100
    assert snap.h == 0
    assert snap.agz == -1000.0


def test_encoded_commands_move_the_state():
    tello = SimulatedTello()
    tello.handle_command("command")
    for line in (
        encode(Action.TAKEOFF),
        encode(Action.UP, 40),
        encode(Action.CW, 90),
        encode(Action.FLIP, "f"),
    ):
        assert tello.handle_command(line) == "ok"

    snap = parse_state(tello.tick())
    assert snap.h == 120
    assert snap.tof == 130
    assert snap.yaw == 90

    assert tello.handle_command(encode(Action.LAND)) == "ok"
    assert parse_state(tello.tick()).h == 0


def test_rejects_garbage():
    tello = SimulatedTello()
    tello.handle_command("command")
    tello.handle_command("takeoff")
    assert tello.handle_command("up lots") == "error"
    assert tello.handle_command("flip x") == "error"
    assert tello.handle_command("") == "error"


def test_format_state_lists_every_field():
    line = format_state({"pitch": 1, "baro": 0.5})
    assert line.startswith("pitch:1;roll:0;")
    assert "baro:0.50;" in line
    assert line.endswith(";\r\n")
