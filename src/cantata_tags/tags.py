"""
Value types exchanged with the tag helper.

These are plain data records; they know how to turn themselves into
JSON-friendly dicts and back, and nothing else.
"""

from dataclasses import asdict, dataclass, field, fields
from enum import IntEnum
from typing import List, Optional


class UpdateStatus(IntEnum):
    """Result of a mutating tag operation."""

    FAILED = 0
    MODIFIED = 1
    NONE = 2
    BAD_FILE = 3
    TIMEDOUT = 4


# id3_ver value meaning "keep whatever revision the file already has"
ID3_KEEP_VERSION = -1


@dataclass
class Song:
    """Metadata record for a single audio file."""

    file: str = ""
    title: str = ""
    artist: str = ""
    album_artist: str = ""
    composer: str = ""
    album: str = ""
    genres: List[str] = field(default_factory=list)
    track: int = 0
    disc: int = 0
    year: int = 0
    comment: str = ""

    def is_empty(self) -> bool:
        return self == Song(file=self.file)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Song":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        song = cls(**{k: v for k, v in data.items() if k in known})
        song.genres = list(song.genres or [])
        return song


@dataclass
class ReplayGain:
    """Track and album gain (dB) and peak values."""

    track_gain: float = 0.0
    track_peak: float = 0.0
    album_gain: float = 0.0
    album_peak: float = 0.0

    def is_empty(self) -> bool:
        return not any((self.track_gain, self.track_peak, self.album_gain, self.album_peak))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ReplayGain":
        if not data:
            return cls()
        return cls(
            track_gain=float(data.get("track_gain", 0.0)),
            track_peak=float(data.get("track_peak", 0.0)),
            album_gain=float(data.get("album_gain", 0.0)),
            album_peak=float(data.get("album_peak", 0.0)),
        )
