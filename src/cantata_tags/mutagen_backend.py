"""
Tag backend for the helper process, built on mutagen.

Only field mapping lives here; mutagen does all of the parsing.  Three
tag flavours are handled: ID3 (MP3, AIFF, WAV), Vorbis comments (FLAC and
Ogg) and MP4 atoms.
"""

import base64
import logging
import re
from typing import Any, List

import mutagen
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, COMM, ID3, TXXX, USLT, Frames
from mutagen.mp4 import MP4Cover, MP4FreeForm, MP4Tags
from mutagen.ogg import OggFileType
from mutagen.oggflac import OggFLAC
from mutagen.oggopus import OggOpus
from mutagen.oggspeex import OggSpeex
from mutagen.oggvorbis import OggVorbis

from .isolation.helper import TagBackend
from .tags import ReplayGain, Song, UpdateStatus

logger = logging.getLogger(__name__)

ID3_TAGS = "id3"
VORBIS_TAGS = "vorbis"
MP4_TAGS = "mp4"

# Song attribute -> native key, per flavour
FIELD_KEYS = {
    ID3_TAGS: {
        "title": "TIT2",
        "artist": "TPE1",
        "album_artist": "TPE2",
        "composer": "TCOM",
        "album": "TALB",
        "genres": "TCON",
        "track": "TRCK",
        "disc": "TPOS",
        "year": "TDRC",
    },
    VORBIS_TAGS: {
        "title": "TITLE",
        "artist": "ARTIST",
        "album_artist": "ALBUMARTIST",
        "composer": "COMPOSER",
        "album": "ALBUM",
        "genres": "GENRE",
        "track": "TRACKNUMBER",
        "disc": "DISCNUMBER",
        "year": "DATE",
    },
    MP4_TAGS: {
        "title": "\xa9nam",
        "artist": "\xa9ART",
        "album_artist": "aART",
        "composer": "\xa9wrt",
        "album": "\xa9alb",
        "genres": "\xa9gen",
        "track": "trkn",
        "disc": "disk",
        "year": "\xa9day",
    },
}

REPLAYGAIN_KEYS = (
    ("track_gain", "REPLAYGAIN_TRACK_GAIN"),
    ("track_peak", "REPLAYGAIN_TRACK_PEAK"),
    ("album_gain", "REPLAYGAIN_ALBUM_GAIN"),
    ("album_peak", "REPLAYGAIN_ALBUM_PEAK"),
)
MP4_FREEFORM = "----:com.apple.iTunes:"

OGG_MIME_TYPES = (
    (OggVorbis, "audio/x-vorbis+ogg"),
    (OggFLAC, "audio/x-flac+ogg"),
    (OggSpeex, "audio/x-speex+ogg"),
    (OggOpus, "audio/x-opus+ogg"),
)

FRONT_COVER = 3


class UnsupportedFile(ValueError):
    """mutagen does not recognise the file, or its tag flavour."""


def _open(path: str):
    audio = mutagen.File(path)
    if audio is None:
        raise UnsupportedFile(f"Unrecognised file type: {path}")
    if audio.tags is None:
        audio.add_tags()
    return audio


def _flavour(audio) -> str:
    if isinstance(audio.tags, ID3):
        return ID3_TAGS
    if isinstance(audio.tags, MP4Tags):
        return MP4_TAGS
    if isinstance(audio, (FLAC, OggFileType)):
        return VORBIS_TAGS
    raise UnsupportedFile(f"No tag mapping for {type(audio).__name__}")


def _number(value: Any) -> int:
    if isinstance(value, tuple):
        value = value[0]
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else 0


def _image_mime(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    return "image/jpeg"


def _gain_text(attr: str, value: float) -> str:
    if attr.endswith("_gain"):
        return f"{value:.2f} dB"
    return f"{value:.6f}"


def _parse_gain(text: str) -> float:
    try:
        return float(text.strip().split()[0])
    except (IndexError, ValueError):
        return 0.0


# -- Generic text access ---------------------------------------------------

def _get(flavour: str, tags, key: str) -> List[Any]:
    if flavour == ID3_TAGS:
        frame = tags.get(key)
        return [str(t) for t in frame.text] if frame is not None else []
    if flavour == MP4_TAGS:
        values = tags.get(key, [])
        return [v.decode("utf-8", "replace") if isinstance(v, bytes) else v for v in values]
    return list(tags.get(key, []))


def _set(flavour: str, tags, key: str, values: List[Any]) -> None:
    if flavour == ID3_TAGS:
        tags.delall(key)
        if values:
            frame_cls = Frames[key[:4]]
            tags.add(frame_cls(encoding=3, text=[str(v) for v in values]))
        return
    if not values:
        if key in tags:
            del tags[key]
        return
    if flavour == MP4_TAGS and key in ("trkn", "disk"):
        tags[key] = [(int(values[0]), 0)]
    elif flavour == MP4_TAGS and key.startswith(MP4_FREEFORM):
        tags[key] = [MP4FreeForm(str(v).encode("utf-8")) for v in values]
    else:
        tags[key] = [str(v) for v in values]


def _field_values(song: Song, attr: str) -> List[Any]:
    value = getattr(song, attr)
    if attr == "genres":
        return [g for g in value if g]
    if isinstance(value, int):
        return [value] if value > 0 else []
    return [value] if value else []


class MutagenBackend(TagBackend):
    """Reads and writes tags with mutagen."""

    # -- Reads -------------------------------------------------------------

    def read(self, file: str) -> Song:
        audio = _open(file)
        flavour = _flavour(audio)
        song = Song(file=file)
        for attr, key in FIELD_KEYS[flavour].items():
            values = _get(flavour, audio.tags, key)
            if attr == "genres":
                song.genres = [str(v) for v in values]
            elif attr in ("track", "disc", "year"):
                setattr(song, attr, _number(values[0]) if values else 0)
            else:
                setattr(song, attr, str(values[0]) if values else "")
        song.comment = self._comment(flavour, audio.tags)
        return song

    def read_image(self, file: str) -> bytes:
        audio = _open(file)
        flavour = _flavour(audio)
        if flavour == ID3_TAGS:
            pictures = sorted(audio.tags.getall("APIC"), key=lambda p: p.type != FRONT_COVER)
            return pictures[0].data if pictures else b""
        if flavour == MP4_TAGS:
            covers = audio.tags.get("covr", [])
            return bytes(covers[0]) if covers else b""
        if isinstance(audio, FLAC) and audio.pictures:
            return audio.pictures[0].data
        for value in audio.tags.get("METADATA_BLOCK_PICTURE", []):
            return Picture(base64.b64decode(value)).data
        return b""

    def read_lyrics(self, file: str) -> str:
        audio = _open(file)
        flavour = _flavour(audio)
        if flavour == ID3_TAGS:
            frames = audio.tags.getall("USLT")
            return frames[0].text if frames else ""
        if flavour == MP4_TAGS:
            values = _get(flavour, audio.tags, "\xa9lyr")
            return values[0] if values else ""
        for key in ("LYRICS", "UNSYNCEDLYRICS"):
            values = _get(flavour, audio.tags, key)
            if values:
                return values[0]
        return ""

    def read_comment(self, file: str) -> str:
        audio = _open(file)
        return self._comment(_flavour(audio), audio.tags)

    def read_replaygain(self, file: str) -> ReplayGain:
        audio = _open(file)
        flavour = _flavour(audio)
        rg = ReplayGain()
        for attr, name in REPLAYGAIN_KEYS:
            values = self._replaygain_values(flavour, audio.tags, name)
            if values:
                setattr(rg, attr, _parse_gain(str(values[0])))
        return rg

    def ogg_mime_type(self, file: str) -> str:
        audio = mutagen.File(file)
        for cls, mime in OGG_MIME_TYPES:
            if isinstance(audio, cls):
                return mime
        return ""

    # -- Updates -----------------------------------------------------------

    def update_artist_and_title(self, file: str, song: Song) -> UpdateStatus:
        audio = _open(file)
        flavour = _flavour(audio)
        for attr in ("artist", "title"):
            _set(flavour, audio.tags, FIELD_KEYS[flavour][attr], _field_values(song, attr))
        self._save(audio, flavour)
        return UpdateStatus.MODIFIED

    def update(
        self,
        file: str,
        from_song: Song,
        to_song: Song,
        id3_ver: int,
        save_comment: bool,
    ) -> UpdateStatus:
        audio = _open(file)
        flavour = _flavour(audio)
        changed = False
        for attr, key in FIELD_KEYS[flavour].items():
            if getattr(from_song, attr) != getattr(to_song, attr):
                _set(flavour, audio.tags, key, _field_values(to_song, attr))
                changed = True
        if save_comment and from_song.comment != to_song.comment:
            self._set_comment(flavour, audio.tags, to_song.comment)
            changed = True

        # A revision change alone is still a write
        if flavour == ID3_TAGS and id3_ver in (3, 4) and audio.tags.version[1] != id3_ver:
            changed = True
        if not changed:
            return UpdateStatus.NONE
        self._save(audio, flavour, id3_ver)
        return UpdateStatus.MODIFIED

    def update_replaygain(self, file: str, replaygain: ReplayGain) -> UpdateStatus:
        audio = _open(file)
        flavour = _flavour(audio)
        for attr, name in REPLAYGAIN_KEYS:
            value = getattr(replaygain, attr)
            text = [_gain_text(attr, value)] if not replaygain.is_empty() else []
            if flavour == ID3_TAGS:
                for frame in audio.tags.getall("TXXX"):
                    if frame.desc.upper() == name:
                        del audio.tags[frame.HashKey]
                if text:
                    audio.tags.add(TXXX(encoding=3, desc=name, text=text))
            elif flavour == MP4_TAGS:
                _set(flavour, audio.tags, MP4_FREEFORM + name.lower(), text)
            else:
                _set(flavour, audio.tags, name, text)
        self._save(audio, flavour)
        return UpdateStatus.MODIFIED

    def embed_image(self, file: str, cover: bytes) -> UpdateStatus:
        if not cover:
            return UpdateStatus.NONE
        audio = _open(file)
        flavour = _flavour(audio)
        mime = _image_mime(cover)
        if flavour == ID3_TAGS:
            audio.tags.delall("APIC")
            audio.tags.add(APIC(encoding=3, mime=mime, type=FRONT_COVER, desc="", data=cover))
        elif flavour == MP4_TAGS:
            fmt = MP4Cover.FORMAT_PNG if mime == "image/png" else MP4Cover.FORMAT_JPEG
            audio.tags["covr"] = [MP4Cover(cover, imageformat=fmt)]
        else:
            pic = Picture()
            pic.type = FRONT_COVER
            pic.mime = mime
            pic.data = cover
            if isinstance(audio, FLAC):
                audio.clear_pictures()
                audio.add_picture(pic)
            else:
                audio.tags["METADATA_BLOCK_PICTURE"] = [base64.b64encode(pic.write()).decode("ascii")]
        self._save(audio, flavour)
        return UpdateStatus.MODIFIED

    # -- Internal helpers --------------------------------------------------

    @staticmethod
    def _comment(flavour: str, tags) -> str:
        if flavour == ID3_TAGS:
            frames = sorted(tags.getall("COMM"), key=lambda f: f.desc != "")
            return str(frames[0].text[0]) if frames and frames[0].text else ""
        key = "\xa9cmt" if flavour == MP4_TAGS else "COMMENT"
        values = _get(flavour, tags, key)
        return values[0] if values else ""

    @staticmethod
    def _set_comment(flavour: str, tags, comment: str) -> None:
        if flavour == ID3_TAGS:
            tags.delall("COMM")
            if comment:
                tags.add(COMM(encoding=3, lang="eng", desc="", text=[comment]))
            return
        key = "\xa9cmt" if flavour == MP4_TAGS else "COMMENT"
        _set(flavour, tags, key, [comment] if comment else [])

    @staticmethod
    def _replaygain_values(flavour: str, tags, name: str) -> List[Any]:
        if flavour == ID3_TAGS:
            for frame in tags.getall("TXXX"):
                if frame.desc.upper() == name:
                    return list(frame.text)
            return []
        if flavour == MP4_TAGS:
            return _get(flavour, tags, MP4_FREEFORM + name.lower())
        return _get(flavour, tags, name)

    @staticmethod
    def _save(audio, flavour: str, id3_ver: int = -1) -> None:
        if flavour != ID3_TAGS:
            audio.save()
            return
        version = id3_ver if id3_ver in (3, 4) else audio.tags.version[1]
        if version == 3:
            audio.tags.update_to_v23()
            audio.save(v2_version=3)
        else:
            audio.save(v2_version=4)
        logger.debug("Saved ID3v2.%d tags", version)
