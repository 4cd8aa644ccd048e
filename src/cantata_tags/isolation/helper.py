"""
Helper process entry point.

Run as:  ``cantata-tags <endpoint address> <client pid>``
    or:  ``python -m cantata_tags.isolation.helper <endpoint address> <client pid>``

Connects back to the client's endpoint, then answers one request line at
a time using a :class:`TagBackend`.  Exits when the client closes the
connection or the client process disappears.

**The socket is reserved for protocol messages**: all logging goes to
stderr, which the client forwards to its own log.
"""

import argparse
import logging
import os
import socket
import sys
from abc import ABC, abstractmethod
from typing import Optional

from ..tags import ReplayGain, Song, UpdateStatus
from .endpoint import connect_endpoint
from .protocol import (
    Operation,
    ProtocolError,
    decode_request,
    default_result,
    encode_response,
    is_mutating,
)

logger = logging.getLogger("cantata_tags.helper")

# Seconds between checks that the client process still exists
PARENT_POLL_INTERVAL = 1.0
CONNECT_TIMEOUT = 5.0

_RECV_CHUNK = 65536


class TagBackend(ABC):
    """The code that actually touches audio files."""

    @abstractmethod
    def read(self, file: str) -> Song: ...

    @abstractmethod
    def read_image(self, file: str) -> bytes: ...

    @abstractmethod
    def read_lyrics(self, file: str) -> str: ...

    @abstractmethod
    def read_comment(self, file: str) -> str: ...

    @abstractmethod
    def update_artist_and_title(self, file: str, song: Song) -> UpdateStatus: ...

    @abstractmethod
    def update(
        self,
        file: str,
        from_song: Song,
        to_song: Song,
        id3_ver: int,
        save_comment: bool,
    ) -> UpdateStatus: ...

    @abstractmethod
    def read_replaygain(self, file: str) -> ReplayGain: ...

    @abstractmethod
    def update_replaygain(self, file: str, replaygain: ReplayGain) -> UpdateStatus: ...

    @abstractmethod
    def embed_image(self, file: str, cover: bytes) -> UpdateStatus: ...

    @abstractmethod
    def ogg_mime_type(self, file: str) -> str: ...


HANDLERS = {
    Operation.READ: "read",
    Operation.READ_IMAGE: "read_image",
    Operation.READ_LYRICS: "read_lyrics",
    Operation.READ_COMMENT: "read_comment",
    Operation.UPDATE_ARTIST_AND_TITLE: "update_artist_and_title",
    Operation.UPDATE: "update",
    Operation.READ_REPLAYGAIN: "read_replaygain",
    Operation.UPDATE_REPLAYGAIN: "update_replaygain",
    Operation.EMBED_IMAGE: "embed_image",
    Operation.OGG_MIME_TYPE: "ogg_mime_type",
}


def parent_alive(pid: Optional[int]) -> bool:
    if not pid or sys.platform == "win32":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class Helper:
    """Encapsulates the helper's connection and request loop."""

    def __init__(
        self,
        sock: socket.socket,
        backend: TagBackend,
        parent_pid: Optional[int] = None,
        poll_interval: float = PARENT_POLL_INTERVAL,
    ):
        self._sock = sock
        self._backend = backend
        self._parent_pid = parent_pid
        self._poll_interval = poll_interval
        self._buf = bytearray()

    def handle(self, line: bytes) -> bytes:
        """Turn one request line into one reply line."""
        op, args = decode_request(line)
        logger.debug("%s %s", op.value, args.get("file"))
        try:
            result = getattr(self._backend, HANDLERS[op])(**args)
        except Exception as exc:
            logger.error("%s failed for %s: %s", op.value, args.get("file"), exc)
            result = UpdateStatus.BAD_FILE if is_mutating(op) else default_result(op)
        if result is None:
            result = default_result(op)
        try:
            return encode_response(op, result)
        except (TypeError, ValueError) as exc:
            logger.error("%s returned an unusable %s: %s", op.value, type(result).__name__, exc)
            return encode_response(op, UpdateStatus.BAD_FILE if is_mutating(op) else default_result(op))

    def _next_line(self) -> Optional[bytes]:
        """Block until a full request line arrives; None once the client is gone."""
        self._sock.settimeout(self._poll_interval)
        while b"\n" not in self._buf:
            try:
                chunk = self._sock.recv(_RECV_CHUNK)
            except socket.timeout:
                if not parent_alive(self._parent_pid):
                    logger.info("Client process %s is gone", self._parent_pid)
                    return None
                continue
            if not chunk:
                return None
            self._buf.extend(chunk)
        line, _, rest = bytes(self._buf).partition(b"\n")
        self._buf = bytearray(rest)
        return line

    def run(self) -> None:
        """Blocking main loop."""
        try:
            while True:
                line = self._next_line()
                if line is None:
                    break
                try:
                    reply = self.handle(line)
                except ProtocolError as exc:
                    # Cannot answer in kind; closing makes the client start over
                    logger.error("Bad request: %s", exc)
                    break
                self._sock.sendall(reply)
        except OSError as exc:
            logger.info("Connection lost: %s", exc)
        finally:
            self._sock.close()
        logger.debug("Helper exiting")


def main(argv: Optional[list] = None, backend: Optional[TagBackend] = None) -> int:
    parser = argparse.ArgumentParser(description="cantata tag helper")
    parser.add_argument("address", help="Endpoint address to connect to")
    parser.add_argument("pid", type=int, help="Client process id")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    # --- All logging to stderr (socket = protocol only) ---
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if backend is None:
        from ..mutagen_backend import MutagenBackend
        backend = MutagenBackend()

    try:
        sock = connect_endpoint(args.address, timeout=CONNECT_TIMEOUT)
    except OSError as exc:
        logger.error("Could not connect to %s: %s", args.address, exc)
        return 1

    Helper(sock, backend, parent_pid=args.pid).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
