"""
Rendezvous endpoint the helper connects back to.

Each launch attempt listens on a freshly named local socket
(``cantata-tags-<pid>-<random>``).  On platforms with ``AF_UNIX`` the
socket lives in the temp directory; elsewhere it falls back to a loopback
TCP port and the address is written as ``tcp://127.0.0.1:<port>``.
"""

import logging
import os
import random
import socket
import tempfile
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

NAME_PREFIX = "cantata-tags"
TCP_SCHEME = "tcp://"
MAX_BIND_ATTEMPTS = 100

# Granularity of accept() so an exited helper is noticed before the deadline
_ACCEPT_POLL_INTERVAL = 0.05

HAS_UNIX_SOCKETS = hasattr(socket, "AF_UNIX")


class EndpointError(RuntimeError):
    """No endpoint name could be bound."""


def endpoint_name(pid: Optional[int] = None) -> str:
    """Generate a rendezvous name unique to this process and attempt."""
    if pid is None:
        pid = os.getpid()
    return f"{NAME_PREFIX}-{pid}-{random.randint(0, 2**31 - 1)}"


class ListenEndpoint:
    """Server side of the rendezvous; accepts exactly one connection."""

    def __init__(self, name: str):
        self.name = name
        self.address: Optional[str] = None
        self._sock: Optional[socket.socket] = None
        self._path: Optional[str] = None

    @classmethod
    def bind_fresh(
        cls,
        pid: Optional[int] = None,
        max_attempts: int = MAX_BIND_ATTEMPTS,
    ) -> "ListenEndpoint":
        """Bind a new endpoint, generating new names until one binds."""
        for _ in range(max_attempts):
            endpoint = cls(endpoint_name(pid))
            try:
                endpoint.listen()
                return endpoint
            except OSError as exc:
                logger.debug("Could not listen on %s: %s", endpoint.name, exc)
                endpoint.close()
        raise EndpointError(f"No free endpoint name after {max_attempts} attempts")

    @property
    def listening(self) -> bool:
        return self._sock is not None

    def listen(self) -> None:
        if HAS_UNIX_SOCKETS:
            path = os.path.join(tempfile.gettempdir(), self.name)
            # Leftover from a crashed run with the same name
            if os.path.exists(path):
                os.unlink(path)
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.bind(path)
                self._path = path
                # Owner only, before anyone can connect
                os.chmod(path, 0o600)
                sock.listen(1)
            except OSError:
                sock.close()
                raise
            self.address = path
        else:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.bind(("127.0.0.1", 0))
                sock.listen(1)
            except OSError:
                sock.close()
                raise
            self.address = f"{TCP_SCHEME}127.0.0.1:{sock.getsockname()[1]}"
        self._sock = sock
        logger.debug("Listening on %s", self.address)

    def accept(
        self,
        timeout: float,
        abort: Optional[Callable[[], bool]] = None,
    ) -> Optional[socket.socket]:
        """Wait up to ``timeout`` seconds for the helper to connect.

        Returns None on timeout, or as soon as ``abort()`` returns True.
        """
        if self._sock is None:
            return None
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self._sock.settimeout(min(remaining, _ACCEPT_POLL_INTERVAL))
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                if abort is not None and abort():
                    return None
                continue
            conn.settimeout(None)
            return conn

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                logger.debug("Error closing endpoint %s", self.name, exc_info=True)
            self._sock = None
        if self._path is not None:
            try:
                os.unlink(self._path)
            except FileNotFoundError:
                pass
            except OSError:
                logger.debug("Could not remove %s", self._path, exc_info=True)
            self._path = None


def connect_endpoint(address: str, timeout: Optional[float] = None) -> socket.socket:
    """Helper side: connect to an address produced by ``ListenEndpoint``."""
    if address.startswith(TCP_SCHEME):
        host, _, port = address[len(TCP_SCHEME):].rpartition(":")
        sock = socket.create_connection((host, int(port)), timeout=timeout)
    else:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(address)
        except OSError:
            sock.close()
            raise
    sock.settimeout(None)
    return sock
