"""Tests for the command-line entry point."""

import json
import sys
from pathlib import Path

from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from cli import load_config, main


def test_default_config_loads():
    config = load_config()
    assert config["bridge"]["poll_interval_s"] == 0.1
    assert config["channel"]["command_port"] == 8889


def test_blocks_prints_descriptor():
    result = CliRunner().invoke(main, ["blocks", "--locale", "zh-cn"])
    assert result.exit_code == 0
    info = json.loads(result.output)
    assert info["id"] == "tello"
    assert info["blocks"][0]["text"] == "起飞"


def test_encode():
    runner = CliRunner()
    assert runner.invoke(main, ["encode", "up", "50"]).output.strip() == "up 50"
    assert runner.invoke(main, ["encode", "takeoff"]).output.strip() == "takeoff"
    assert runner.invoke(main, ["encode", "cw"]).output.strip() == "cw 90"
    assert runner.invoke(main, ["encode", "flip", "b"]).output.strip() == "flip b"


def test_encode_strict_rejects_out_of_range():
    result = CliRunner().invoke(main, ["encode", "--strict", "up", "5"])
    assert result.exit_code == 2
    assert "outside" in result.output


def test_encode_unknown_action():
    result = CliRunner().invoke(main, ["encode", "barrel_roll"])
    assert result.exit_code == 2
