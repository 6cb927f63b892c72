"""Bridge between the block host and the vehicle.

Command blocks are encoded and handed to the channel without waiting
for any answer. Reporter blocks read the telemetry cache, which a
background poller keeps fresh. The host never blocks on the network.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional, Union

from core.blocks.metadata import REPORTER_SPECS, build_extension_info
from core.comms.channel import CommandChannel
from core.flight.commands import COMMAND_SPECS, encode, get_spec, validate
from core.flight.telemetry import TelemetryCache, TelemetryPoller, TelemetrySnapshot
from core.i18n.locale import DEFAULT_LOCALE, resolve_locale

logger = logging.getLogger(__name__)

LocaleSource = Union[str, Callable[[], Optional[str]], None]


class BridgeState(str, Enum):
    UNINITIALIZED = "uninitialized"  # no refresh cycle has completed yet
    RUNNING = "running"              # poller active, at least one cycle done


class TelloBridge:
    """One vehicle as seen by the extension host."""

    def __init__(
        self,
        channel: CommandChannel,
        locale: LocaleSource = DEFAULT_LOCALE,
        poll_interval: float = 0.1,
        max_in_flight: int = 4,
        strict_validation: bool = False,
        menu_icon_uri: Optional[str] = None,
        block_icon_uri: Optional[str] = None,
        autostart: bool = True,
    ):
        self._channel = channel
        self._locale = locale
        self._strict = strict_validation
        self._menu_icon_uri = menu_icon_uri
        self._block_icon_uri = block_icon_uri
        self._reporters = {spec.opcode: spec.field for spec in REPORTER_SPECS}

        self._cache = TelemetryCache(channel)
        self._poller = TelemetryPoller(
            self._cache, interval=poll_interval, max_in_flight=max_in_flight
        )
        if autostart:
            self._poller.start()

    @property
    def cache(self) -> TelemetryCache:
        return self._cache

    @property
    def poller(self) -> TelemetryPoller:
        return self._poller

    @property
    def state(self) -> BridgeState:
        """RUNNING once the poller is active and has finished a refresh cycle.

        A failed cycle counts: an offline vehicle still leaves the bridge
        running, with reporters returning None.
        """
        if self._poller.is_running and self._cache.attempts > 0:
            return BridgeState.RUNNING
        return BridgeState.UNINITIALIZED

    @property
    def telemetry(self) -> Optional[TelemetrySnapshot]:
        return self._cache.snapshot

    @property
    def locale(self) -> str:
        """Active display locale, resolved from the host setting on each call."""
        source = self._locale() if callable(self._locale) else self._locale
        return resolve_locale(source)

    def get_info(self) -> dict:
        return build_extension_info(
            self.locale,
            menu_icon_uri=self._menu_icon_uri,
            block_icon_uri=self._block_icon_uri,
        )

    # ── Block entry points ────────────────────────────────────

    def execute(self, opcode: str, args: Optional[dict] = None) -> None:
        """Encode a command block and send it. Never waits for the vehicle."""
        spec = get_spec(opcode)
        value = None
        if spec.takes_parameter:
            args = args or {}
            value = args.get(spec.argument)
            if value is None:
                logger.debug("%s: no %s argument, using %r", opcode, spec.argument, spec.default_value)
                value = spec.default_value
            if self._strict:
                validate(spec.action, value)

        command_line = encode(spec.action, value)
        try:
            self._channel.send(command_line)
        except OSError as e:
            logger.warning("Command %r not sent: %s", command_line, e)

    def report(self, opcode: str) -> Any:
        """Latest cached value for a reporter block, or None before the first refresh."""
        field = self._reporters.get(opcode)
        if field is None:
            raise ValueError(f"Unknown reporter: {opcode}")
        return self._cache.read(field)

    def handlers(self) -> dict[str, Callable[..., Any]]:
        """One callable per opcode, taking the host's argument dict."""
        table: dict[str, Callable[..., Any]] = {}
        for spec in COMMAND_SPECS:
            table[spec.opcode] = self._command_handler(spec.opcode)
        for opcode in self._reporters:
            table[opcode] = self._reporter_handler(opcode)
        return table

    def _command_handler(self, opcode: str) -> Callable[..., None]:
        def run(args: Optional[dict] = None) -> None:
            self.execute(opcode, args)
        run.__name__ = opcode
        return run

    def _reporter_handler(self, opcode: str) -> Callable[..., Any]:
        def run(args: Optional[dict] = None) -> Any:
            return self.report(opcode)
        run.__name__ = opcode
        return run

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        self._poller.start()

    def close(self) -> None:
        """Stop polling. The channel belongs to the caller and stays open."""
        self._poller.stop()
