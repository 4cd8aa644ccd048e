"""
TagClient: reads and writes audio tags through an isolated helper process.

Tag libraries crash and hang on malformed files.  Running them in a
separate process means the worst a bad file can do is cost one call its
timeout; the helper is thrown away and the next call starts a new one.

All traffic is serialized: one lock per client guards the helper, so at
most one request is ever in flight.
"""

import atexit
import logging
import threading
from typing import Any, Optional

from ..config import TagClientConfig, enable_debug, load_config
from ..tags import ID3_KEEP_VERSION, ReplayGain, Song, UpdateStatus
from .connection import ReadStatus
from .process_manager import HelperSupervisor
from .protocol import (
    Operation,
    ProtocolError,
    decode_response,
    default_result,
    encode_request,
    is_mutating,
)

logger = logging.getLogger(__name__)


class TagClient:
    """Client for the ``cantata-tags`` helper.

    No method raises.  Reads return an empty value and updates return an
    :class:`UpdateStatus`:

    - ``FAILED``: nothing was sent (helper could not be started, or the
      arguments have the wrong type)
    - ``TIMEDOUT``: the request was sent but no reply arrived in time
    - ``BAD_FILE``: the helper died or replied with garbage

    Because an empty read is also what a file without that tag yields,
    :attr:`last_status` records how the calling thread's most recent call
    ended (``None`` when the helper could not be started, ``ERROR`` for
    invalid arguments).
    """

    def __init__(
        self,
        config: Optional[TagClientConfig] = None,
        supervisor: Optional[HelperSupervisor] = None,
    ):
        self._config = config or load_config()
        if self._config.debug:
            enable_debug()
        self._supervisor = supervisor or HelperSupervisor(self._config)
        self._lock = threading.Lock()
        self._local = threading.local()
        atexit.register(self.stop)

    @property
    def last_status(self) -> Optional[ReadStatus]:
        """Outcome of this thread's last call."""
        return getattr(self._local, "status", None)

    @last_status.setter
    def last_status(self, status: Optional[ReadStatus]) -> None:
        self._local.status = status

    # -- Lifecycle ---------------------------------------------------------

    def stop(self) -> None:
        """Stop the helper. The next call starts a new one."""
        with self._lock:
            self._supervisor.stop()

    def close(self) -> None:
        self.stop()
        atexit.unregister(self.stop)

    def __enter__(self) -> "TagClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- Reads -------------------------------------------------------------

    def read(self, file: str) -> Song:
        """Read the metadata record of ``file``."""
        return self._call(Operation.READ, file=file)

    def read_image(self, file: str) -> bytes:
        """Return the first embedded picture as encoded image bytes."""
        return self._call(Operation.READ_IMAGE, file=file)

    def read_lyrics(self, file: str) -> str:
        return self._call(Operation.READ_LYRICS, file=file)

    def read_comment(self, file: str) -> str:
        return self._call(Operation.READ_COMMENT, file=file)

    def read_replaygain(self, file: str) -> ReplayGain:
        return self._call(Operation.READ_REPLAYGAIN, file=file)

    def ogg_mime_type(self, file: str) -> str:
        """Probe which codec an Ogg container holds, e.g. ``audio/x-vorbis+ogg``."""
        return self._call(Operation.OGG_MIME_TYPE, file=file)

    # -- Updates -----------------------------------------------------------

    def update_artist_and_title(self, file: str, song: Song) -> UpdateStatus:
        return self._call(Operation.UPDATE_ARTIST_AND_TITLE, file=file, song=song)

    def update(
        self,
        file: str,
        from_song: Song,
        to_song: Song,
        id3_ver: int = ID3_KEEP_VERSION,
        save_comment: bool = False,
    ) -> UpdateStatus:
        """Write the fields that differ between ``from_song`` and ``to_song``.

        Args:
            file: Path of the audio file
            from_song: Tags as currently stored
            to_song: Tags to store
            id3_ver: ID3 revision to write (3 or 4), or -1 to keep the file's
            save_comment: Also write ``to_song.comment``
        """
        return self._call(
            Operation.UPDATE,
            file=file,
            from_song=from_song,
            to_song=to_song,
            id3_ver=id3_ver,
            save_comment=save_comment,
        )

    def update_replaygain(self, file: str, rg: ReplayGain) -> UpdateStatus:
        return self._call(Operation.UPDATE_REPLAYGAIN, file=file, replaygain=rg)

    def embed_image(self, file: str, cover: bytes) -> UpdateStatus:
        """Embed ``cover`` (encoded image bytes) as the front cover."""
        return self._call(Operation.EMBED_IMAGE, file=file, cover=cover)

    # -- Internal helpers --------------------------------------------------

    def _call(self, op: Operation, **args: Any) -> Any:
        try:
            request = encode_request(op, **args)
        except (TypeError, ValueError) as exc:
            # Nothing was sent; the helper is left as it is
            logger.error("Invalid arguments for %s: %s", op.value, exc)
            self.last_status = ReadStatus.ERROR
            return default_result(op)
        with self._lock:
            logger.debug("%s %s", op.value, args.get("file"))
            if not self._supervisor.ensure_running():
                self.last_status = None
                return default_result(op)

            data, status = self._supervisor.exchange(request)
            if status is ReadStatus.OK:
                try:
                    result = decode_response(op, data)
                except ProtocolError as exc:
                    logger.warning("Bad reply to %s: %s", op.value, exc)
                    # Stream position is unknown now; start over next call
                    self._supervisor.stop()
                    status = ReadStatus.ERROR
                else:
                    self.last_status = status
                    return result

            self.last_status = status
            return _failure_value(op, status)


def _failure_value(op: Operation, status: ReadStatus) -> Any:
    if not is_mutating(op):
        return default_result(op)
    if status is ReadStatus.TIMEOUT:
        return UpdateStatus.TIMEDOUT
    return UpdateStatus.BAD_FILE
