"""
cantata-tags: crash-isolated audio tag reading and writing.

Quick start:
    import dataclasses

    from cantata_tags import TagClient

    with TagClient() as tags:
        before = tags.read("track.mp3")
        after = dataclasses.replace(before, title="New title")
        tags.update("track.mp3", before, after)

Tag libraries run in a separate ``cantata-tags`` helper process; if it
crashes or hangs, the call fails cleanly and the next call starts a new
helper.
"""

__version__ = "0.1.0"

from .config import TagClientConfig, enable_debug, load_config
from .isolation import ReadStatus, TagClient
from .tags import ID3_KEEP_VERSION, ReplayGain, Song, UpdateStatus

__all__ = [
    "ID3_KEEP_VERSION",
    "ReadStatus",
    "ReplayGain",
    "Song",
    "TagClient",
    "TagClientConfig",
    "UpdateStatus",
    "__version__",
    "enable_debug",
    "load_config",
]
