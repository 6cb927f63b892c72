"""Simulation helper: a fake Tello on localhost.

Answers SDK commands on the command port with "ok" and pushes a state
line to the state port at 10 Hz, so the bridge can be exercised
without hardware:

Usage:
    python tools/simulate.py
    python cli.py -c tools/sim_config.yaml watch
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comms.channel import COMMAND_PORT, STATE_PORT
from core.flight.commands import FlipDirection
from core.flight.telemetry import TELEMETRY_FIELDS

logger = logging.getLogger("simulate")

MOVES = {
    "up": ("h", 1),
    "down": ("h", -1),
}
ROTATIONS = {"cw": 1, "ccw": -1}


def format_state(state: dict) -> str:
    """Render a state dict as the SDK's ``key:value;`` line."""
    parts = []
    for name in TELEMETRY_FIELDS:
        value = state.get(name, 0)
        if isinstance(value, float):
            parts.append(f"{name}:{value:.2f}")
        else:
            parts.append(f"{name}:{value}")
    return ";".join(parts) + ";\r\n"


class SimulatedTello:
    """Just enough vehicle to make the reporters move."""

    def __init__(self):
        self.state = {name: 0 for name in TELEMETRY_FIELDS}
        self.state.update(bat=100, baro=0.0, agz=-1000.0)
        self.in_sdk_mode = False
        self.flying = False
        self._takeoff_at = 0.0
        self._lock = threading.Lock()

    def handle_command(self, line: str) -> str:
        words = line.strip().split()
        if not words:
            return "error"
        name, params = words[0], words[1:]
        try:
            amount = int(float(params[0])) if params and name != "flip" else None
        except ValueError:
            return "error"

        with self._lock:
            if name == "command":
                self.in_sdk_mode = True
                return "ok"
            if not self.in_sdk_mode:
                return "error Not in SDK mode"

            if name == "takeoff":
                self.flying = True
                self._takeoff_at = time.monotonic()
                self.state.update(h=80, tof=90)
                return "ok"
            if name in ("land", "emergency"):
                self.flying = False
                self.state.update(h=0, tof=10, vgx=0, vgy=0, vgz=0)
                return "ok"
            if not self.flying:
                return "error Not flying"

            if name in MOVES and amount is not None:
                key, sign = MOVES[name]
                self.state[key] = max(0, self.state[key] + sign * amount)
                self.state["tof"] = self.state["h"] + 10
                return "ok"
            if name in ("left", "right", "forward", "back") and params:
                return "ok"
            if name in ROTATIONS and amount is not None:
                yaw = self.state["yaw"] + ROTATIONS[name] * amount
                self.state["yaw"] = (yaw + 180) % 360 - 180
                return "ok"
            if name == "flip" and params and params[0] in {d.value for d in FlipDirection}:
                return "ok"
        return "error"

    def tick(self) -> str:
        with self._lock:
            if self.flying:
                self.state["time"] = int(time.monotonic() - self._takeoff_at)
                self.state["bat"] = max(0, 100 - self.state["time"] // 30)
            self.state["baro"] = round(self.state["h"] / 100.0, 2)
            return format_state(self.state)


def run_simulation(
    host: str = "127.0.0.1",
    command_port: int = COMMAND_PORT,
    state_port: int = STATE_PORT,
    rate_hz: float = 10.0,
):
    tello = SimulatedTello()
    stop = threading.Event()

    cmd_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    cmd_sock.bind((host, command_port))
    cmd_sock.settimeout(0.5)
    state_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def push_state():
        while not stop.is_set():
            state_sock.sendto(tello.tick().encode(), (host, state_port))
            time.sleep(1.0 / rate_hz)

    logger.info("=== TELLO SIMULATOR ===")
    logger.info("Commands on %s:%d, state to port %d at %.0f Hz", host, command_port, state_port, rate_hz)

    pusher = threading.Thread(target=push_state, daemon=True)
    pusher.start()
    try:
        while True:
            try:
                data, addr = cmd_sock.recvfrom(1024)
            except socket.timeout:
                continue
            line = data.decode("utf-8", errors="replace")
            reply = tello.handle_command(line)
            logger.info("%s -> %s", line.strip(), reply)
            cmd_sock.sendto(reply.encode(), addr)
    except KeyboardInterrupt:
        logger.info("Simulator stopped")
    finally:
        stop.set()
        pusher.join(timeout=1.0)
        cmd_sock.close()
        state_sock.close()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = argparse.ArgumentParser(description="Run a fake Tello on localhost")
    parser.add_argument("--host", default="127.0.0.1", help="Address to bind (default: 127.0.0.1)")
    parser.add_argument("--command-port", type=int, default=COMMAND_PORT)
    parser.add_argument("--state-port", type=int, default=STATE_PORT)
    parser.add_argument("--rate", type=float, default=10.0, help="State pushes per second")
    args = parser.parse_args()

    run_simulation(
        host=args.host,
        command_port=args.command_port,
        state_port=args.state_port,
        rate_hz=args.rate,
    )


if __name__ == "__main__":
    main()
