"""Tello bridge CLI: inspect and drive the block bridge from a terminal.

Usage:
    tello-bridge blocks          Print the block palette descriptor
    tello-bridge encode          Show the SDK command line for a block
    tello-bridge send            Send one command to the vehicle
    tello-bridge watch           Poll telemetry and print reporter values
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

import click
import yaml

from core.blocks import REPORTER_SPECS, TelloBridge, build_extension_info
from core.comms.channel import ChannelError, UdpCommandChannel
from core.flight.commands import Action, CommandValidationError, encode, get_spec, validate


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file."""
    paths = [
        config_path,
        "/etc/tello-bridge/config.yaml",
        str(Path(__file__).parent / "config" / "default.yaml"),
    ]
    for p in paths:
        if p and Path(p).exists():
            with open(p) as f:
                return yaml.safe_load(f) or {}
    return {}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def make_channel(config: dict) -> UdpCommandChannel:
    ch_cfg = config.get("channel", {})
    return UdpCommandChannel(
        host=ch_cfg.get("host", "192.168.10.1"),
        command_port=ch_cfg.get("command_port", 8889),
        state_port=ch_cfg.get("state_port", 8890),
        state_timeout=ch_cfg.get("state_timeout_s", 1.0),
    )


ACTION_CHOICE = click.Choice([a.value for a in Action])


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path, verbose):
    """Tello bridge: block commands and telemetry for a Tello quadcopter."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option("--locale", "-l", default=None, help="Display locale (en, ja, ja-Hira, zh-cn)")
@click.pass_context
def blocks(ctx, locale):
    """Print the extension descriptor as JSON."""
    bridge_cfg = ctx.obj["config"].get("bridge", {})
    info = build_extension_info(locale or bridge_cfg.get("locale"))
    click.echo(json.dumps(info, indent=2, ensure_ascii=False))


@main.command("encode")
@click.argument("action", type=ACTION_CHOICE)
@click.argument("value", required=False)
@click.option("--strict", is_flag=True, help="Reject values outside the SDK limits")
def encode_cmd(action, value, strict):
    """Show the command line a block would send."""
    if value is None:
        value = get_spec(action).default_value
    if strict:
        try:
            validate(action, value)
        except CommandValidationError as e:
            raise click.BadParameter(str(e), param_hint="VALUE")
    click.echo(encode(action, value))


@main.command()
@click.argument("action", type=ACTION_CHOICE)
@click.argument("value", required=False)
@click.pass_context
def send(ctx, action, value):
    """Send one command to the vehicle."""
    config = ctx.obj["config"]
    bridge_cfg = config.get("bridge", {})
    if value is None:
        value = get_spec(action).default_value

    if bridge_cfg.get("strict_validation", False):
        try:
            validate(action, value)
        except CommandValidationError as e:
            raise click.BadParameter(str(e), param_hint="VALUE")

    command_line = encode(action, value)
    channel = make_channel(config)
    try:
        channel.connect()
        channel.send(command_line)
    except ChannelError as e:
        click.echo(f"FAILED: {e}")
        return
    finally:
        channel.close()
    click.echo(f"Sent: {command_line}")


@main.command()
@click.option("--count", "-n", default=0, help="Samples to print (0 = until Ctrl-C)")
@click.option("--period", "-p", default=1.0, help="Seconds between samples")
@click.pass_context
def watch(ctx, count, period):
    """Poll telemetry and print the reporter values."""
    config = ctx.obj["config"]
    bridge_cfg = config.get("bridge", {})

    channel = make_channel(config)
    try:
        channel.connect()
    except ChannelError as e:
        click.echo(f"FAILED: {e}")
        return

    bridge = TelloBridge(
        channel,
        locale=bridge_cfg.get("locale"),
        poll_interval=bridge_cfg.get("poll_interval_s", 0.1),
        max_in_flight=bridge_cfg.get("max_in_flight", 4),
        strict_validation=bridge_cfg.get("strict_validation", False),
    )
    labels = {
        block["opcode"]: block["text"]
        for block in bridge.get_info()["blocks"]
        if isinstance(block, dict) and block["blockType"] == "reporter"
    }

    printed = 0
    try:
        while not count or printed < count:
            time.sleep(period)
            click.echo(f"=== TELEMETRY ({bridge.state.value}) ===")
            for spec in REPORTER_SPECS:
                value = bridge.report(spec.opcode)
                shown = "-" if value is None else value
                click.echo(f"  {labels[spec.opcode]:28s} {shown}")
            click.echo("")
            printed += 1
    except KeyboardInterrupt:
        click.echo("\nStopped.")
    finally:
        bridge.close()
        channel.close()


if __name__ == "__main__":
    main()
