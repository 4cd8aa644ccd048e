"""
Supervises the tag helper subprocess.

The helper is launched as ``<helper> <endpoint address> <caller pid>``
and connects back to a freshly bound rendezvous endpoint.  The process,
the endpoint and the accepted connection are created and destroyed
together; none of them outlives the others.

Nothing here is thread-safe on its own: ``TagClient`` serializes every
call with its lock.
"""

import logging
import os
import socket
import subprocess
import threading
from enum import Enum
from typing import IO, Optional, Tuple

from ..config import TagClientConfig
from .connection import Connection, ReadStatus
from .endpoint import EndpointError, ListenEndpoint

logger = logging.getLogger(__name__)

# How long terminate() is given before falling back to kill()
_TERMINATE_GRACE = 1.0


class HelperState(Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


class HelperError(RuntimeError):
    """Base class for helper start-up failures."""


class LaunchFailed(HelperError):
    """The helper executable could not be started."""


class ConnectFailed(HelperError):
    """The helper started but never connected back."""


class HelperSupervisor:
    """Owns the (process, endpoint, connection) triple."""

    def __init__(self, config: Optional[TagClientConfig] = None):
        self._config = config or TagClientConfig()
        self._pid = os.getpid()
        self._proc: Optional[subprocess.Popen] = None
        self._endpoint: Optional[ListenEndpoint] = None
        self._conn: Optional[Connection] = None
        self._stderr_thread: Optional[threading.Thread] = None
        self.state = HelperState.NOT_STARTED

    @property
    def process_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    @property
    def alive(self) -> bool:
        """True only while the process runs AND the connection is up."""
        return self.process_running and self._conn is not None and self._conn.connected

    @property
    def helper_pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    def ensure_running(self) -> bool:
        """Start a helper unless a live one exists. Returns False if unavailable."""
        if self.alive:
            return True

        self.stop()
        self.state = HelperState.STARTING
        attempts = self._config.max_start_attempts
        for attempt in range(1, attempts + 1):
            try:
                self._start_once()
            except (EndpointError, HelperError) as exc:
                logger.warning("Tag helper start attempt %d/%d failed: %s", attempt, attempts, exc)
                self._teardown()
                continue
            self.state = HelperState.RUNNING
            logger.debug("Tag helper running (pid %d)", self._proc.pid)
            return True

        logger.error("Tag helper unavailable after %d attempts", attempts)
        self.stop()
        return False

    def _start_once(self) -> None:
        # A fresh name per attempt; the previous one may still be bound
        self._endpoint = ListenEndpoint.bind_fresh(self._pid)
        cmd = [*self._config.helper_command, self._endpoint.address, str(self._pid)]
        logger.debug("Starting helper: %s", " ".join(cmd))

        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,  # Line-buffered
            )
        except (OSError, ValueError) as exc:
            raise LaunchFailed(f"{cmd[0]}: {exc}") from exc

        if self._proc.stderr is not None:
            self._stderr_thread = threading.Thread(
                target=_forward_stderr,
                args=(self._proc.stderr,),
                daemon=True,
                name="tag-helper-stderr",
            )
            self._stderr_thread.start()

        proc = self._proc
        sock = self._endpoint.accept(
            self._config.timeout,
            abort=lambda: proc.poll() is not None,
        )
        if sock is None:
            code = proc.poll()
            if code is not None:
                raise ConnectFailed(f"helper exited with code {code} before connecting")
            raise ConnectFailed(f"helper did not connect within {self._config.timeout_ms} ms")
        self._conn = Connection(sock)

    def send(self, data: bytes) -> None:
        """Write a request, bounded by the timeout. Raises OSError on failure."""
        if self._conn is None:
            raise BrokenPipeError("Tag helper is not connected")
        self._conn.send(data, self._config.timeout)

    def await_reply(self) -> Tuple[bytes, ReadStatus]:
        """Wait for one reply. Any outcome other than OK tears the helper down."""
        if not self.alive:
            logger.debug("Tag helper not running")
            self.stop()
            return b"", ReadStatus.CLOSED

        data, status = self._conn.read_reply(self._config.timeout)
        if status is ReadStatus.OK:
            logger.debug("Read reply, bytes: %d", len(data))
            return data, status

        if status is ReadStatus.TIMEOUT and not self.alive:
            status = ReadStatus.CLOSED
        logger.warning("No usable reply from tag helper (%s), stopping it", status.value)
        self.stop()
        return data, status

    def exchange(self, request: bytes) -> Tuple[bytes, ReadStatus]:
        """Send one request and wait for its reply."""
        try:
            self.send(request)
        except socket.timeout:
            # Connected but not reading; a live helper counts as hung
            status = ReadStatus.TIMEOUT if self.process_running else ReadStatus.CLOSED
            logger.warning("Tag helper did not take the request within %d ms, stopping it",
                           self._config.timeout_ms)
            self.stop()
            return b"", status
        except OSError as exc:
            logger.warning("Could not send request to tag helper: %s", exc)
            self.stop()
            return b"", ReadStatus.CLOSED
        return self.await_reply()

    def stop(self) -> None:
        """Tear everything down. Safe to call repeatedly or on partial state."""
        had_state = any(x is not None for x in (self._proc, self._endpoint, self._conn))
        self._teardown()
        if had_state or self.state is not HelperState.NOT_STARTED:
            self.state = HelperState.STOPPED

    def _teardown(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        if self._endpoint is not None:
            self._endpoint.close()
            self._endpoint = None
        if self._proc is not None:
            _terminate(self._proc)
            self._proc = None
        self._stderr_thread = None


def _terminate(proc: subprocess.Popen) -> None:
    logger.debug("Stopping helper process %s", proc.pid)
    try:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=_TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                logger.warning("Tag helper ignored terminate, killing it")
                proc.kill()
                proc.wait(timeout=_TERMINATE_GRACE)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("Could not stop tag helper %s: %s", proc.pid, exc)


def _forward_stderr(stream: IO[str]) -> None:
    """Read helper stderr and log it."""
    try:
        with stream:
            for line in stream:
                line = line.rstrip("\n")
                if line:
                    logger.info("[helper] %s", line)
    except (OSError, ValueError):
        pass
