"""
The connected channel to a running helper.

One request line goes out and one reply line comes back per call.  There
is no resumption framing: a reply that does not arrive complete within
the deadline is abandoned together with the helper.
"""

import logging
import socket
import time
from enum import Enum
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

_RECV_CHUNK = 65536


class ReadStatus(Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    CLOSED = "closed"
    ERROR = "error"


class Connection:
    """Wraps the socket accepted from the helper."""

    def __init__(self, sock: socket.socket):
        self._sock: Optional[socket.socket] = sock

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def send(self, data: bytes, timeout: Optional[float] = None) -> None:
        """Write a whole request within ``timeout`` seconds.

        Raises ``socket.timeout`` if the helper stops reading, or OSError if
        it went away.  Either way the connection is dropped.
        """
        if self._sock is None:
            raise BrokenPipeError("Connection is closed")
        try:
            # Replaces whatever deadline the previous read_reply() left behind
            self._sock.settimeout(timeout)
            self._sock.sendall(data)
        except OSError:
            self._drop()
            raise

    def read_reply(self, timeout: float) -> Tuple[bytes, ReadStatus]:
        """Read one reply line, waiting at most ``timeout`` seconds.

        An orderly EOF before any byte arrives is ``ERROR``; a socket
        failure is ``CLOSED``.
        """
        if self._sock is None:
            return b"", ReadStatus.CLOSED

        deadline = time.monotonic() + timeout
        buf = bytearray()
        while b"\n" not in buf:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return bytes(buf), ReadStatus.TIMEOUT
            self._sock.settimeout(remaining)
            try:
                chunk = self._sock.recv(_RECV_CHUNK)
            except socket.timeout:
                return bytes(buf), ReadStatus.TIMEOUT
            except OSError as exc:
                logger.debug("Read failed: %s", exc)
                self._drop()
                return bytes(buf), ReadStatus.CLOSED
            if not chunk:
                logger.debug("Helper closed the connection after %d bytes", len(buf))
                self._drop()
                return bytes(buf), ReadStatus.ERROR
            buf.extend(chunk)

        line, _, extra = bytes(buf).partition(b"\n")
        if extra:
            logger.debug("Discarding %d unexpected trailing bytes", len(extra))
        return line + b"\n", ReadStatus.OK

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._drop()

    def _drop(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                logger.debug("Error closing connection", exc_info=True)
            self._sock = None
