"""Command channel to the vehicle.

The bridge only needs two things from a transport: fire-and-forget
command sends and an awaitable state query. ``UdpCommandChannel``
implements both over the Tello SDK's UDP ports: text commands go to
8889, the vehicle pushes a state line to 8890 roughly every 100 ms.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

TELLO_HOST = "192.168.10.1"
COMMAND_PORT = 8889
STATE_PORT = 8890
SDK_ENTER = "command"


class ChannelError(OSError):
    """Transport failure while talking to the vehicle."""


class CommandChannel(ABC):
    """What the bridge requires from a transport."""

    def connect(self) -> None:
        """Open the transport. No-op by default."""

    def close(self) -> None:
        """Release the transport. No-op by default."""

    @abstractmethod
    def send(self, command_line: str) -> None:
        """Send one command line. Does not wait for an acknowledgement."""

    @abstractmethod
    async def query_state(self) -> str:
        """Return the next serialized state record from the vehicle."""


class UdpCommandChannel(CommandChannel):
    """Tello SDK transport over UDP."""

    def __init__(
        self,
        host: str = TELLO_HOST,
        command_port: int = COMMAND_PORT,
        state_port: int = STATE_PORT,
        state_timeout: float = 1.0,
        bind_host: str = "0.0.0.0",
    ):
        self._address = (host, command_port)
        self._state_port = state_port
        self._state_timeout = state_timeout
        self._bind_host = bind_host
        self._cmd_sock: Optional[socket.socket] = None
        self._state_sock: Optional[socket.socket] = None

    @property
    def is_connected(self) -> bool:
        return self._cmd_sock is not None

    @property
    def state_address(self) -> Optional[tuple[str, int]]:
        """Local address the state socket is bound to."""
        if self._state_sock is None:
            return None
        return self._state_sock.getsockname()

    def connect(self) -> None:
        if self.is_connected:
            return
        try:
            self._cmd_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._cmd_sock.bind((self._bind_host, 0))
            self._state_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self._state_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._state_sock.bind((self._bind_host, self._state_port))
            self._state_sock.settimeout(self._state_timeout)
        except OSError as e:
            self.close()
            raise ChannelError(f"Cannot open UDP sockets: {e}") from e

        logger.info(
            "UDP channel to %s:%d, state on port %d",
            self._address[0], self._address[1], self.state_address[1],
        )
        self.send(SDK_ENTER)

    def close(self) -> None:
        for sock in (self._cmd_sock, self._state_sock):
            if sock is not None:
                sock.close()
        self._cmd_sock = None
        self._state_sock = None

    def send(self, command_line: str) -> None:
        if self._cmd_sock is None:
            raise ChannelError("Channel not connected")
        try:
            self._cmd_sock.sendto(command_line.encode("utf-8"), self._address)
        except OSError as e:
            raise ChannelError(f"Send failed for {command_line!r}: {e}") from e
        logger.debug("-> %s", command_line)

    async def query_state(self) -> str:
        if self._state_sock is None:
            raise ChannelError("Channel not connected")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._recv_state)

    def _recv_state(self) -> str:
        sock = self._state_sock
        if sock is None:
            raise ChannelError("Channel closed")
        try:
            data, _ = sock.recvfrom(1024)
        except socket.timeout:
            raise ChannelError(
                f"No state datagram within {self._state_timeout:.1f}s"
            ) from None
        except OSError as e:
            raise ChannelError(f"State receive failed: {e}") from e
        return data.decode("utf-8", errors="replace")
