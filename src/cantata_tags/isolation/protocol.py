"""
JSON-line protocol for client <-> tag helper communication.

Every message is a single newline-terminated JSON object.  Requests carry
the operation kind in ``type`` plus that operation's named arguments;
replies echo the same ``type`` and carry the value under ``result``.
Byte blobs (images) travel as base64 text.

Each operation has a fixed argument schema and a fixed result type, so a
reply is only ever decoded as the type its operation declares.
"""

import base64
import binascii
import json
import os
from enum import Enum
from typing import Any, Dict, Tuple

from ..tags import ReplayGain, Song, UpdateStatus


class Operation(str, Enum):
    READ = "read"
    READ_IMAGE = "readImage"
    READ_LYRICS = "readLyrics"
    READ_COMMENT = "readComment"
    UPDATE_ARTIST_AND_TITLE = "updateArtistAndTitle"
    UPDATE = "update"
    READ_REPLAYGAIN = "readReplaygain"
    UPDATE_REPLAYGAIN = "updateReplaygain"
    EMBED_IMAGE = "embedImage"
    OGG_MIME_TYPE = "oggMimeType"


class ProtocolError(ValueError):
    """A message could not be decoded, or does not match its operation."""


# Ordered (name, type) argument list per operation
REQUEST_FIELDS: Dict[Operation, Tuple[Tuple[str, type], ...]] = {
    Operation.READ: (("file", str),),
    Operation.READ_IMAGE: (("file", str),),
    Operation.READ_LYRICS: (("file", str),),
    Operation.READ_COMMENT: (("file", str),),
    Operation.UPDATE_ARTIST_AND_TITLE: (("file", str), ("song", Song)),
    Operation.UPDATE: (
        ("file", str),
        ("from_song", Song),
        ("to_song", Song),
        ("id3_ver", int),
        ("save_comment", bool),
    ),
    Operation.READ_REPLAYGAIN: (("file", str),),
    Operation.UPDATE_REPLAYGAIN: (("file", str), ("replaygain", ReplayGain)),
    Operation.EMBED_IMAGE: (("file", str), ("cover", bytes)),
    Operation.OGG_MIME_TYPE: (("file", str),),
}

RESULT_TYPES: Dict[Operation, type] = {
    Operation.READ: Song,
    Operation.READ_IMAGE: bytes,
    Operation.READ_LYRICS: str,
    Operation.READ_COMMENT: str,
    Operation.UPDATE_ARTIST_AND_TITLE: UpdateStatus,
    Operation.UPDATE: UpdateStatus,
    Operation.READ_REPLAYGAIN: ReplayGain,
    Operation.UPDATE_REPLAYGAIN: UpdateStatus,
    Operation.EMBED_IMAGE: UpdateStatus,
    Operation.OGG_MIME_TYPE: str,
}


def is_mutating(op: Operation) -> bool:
    return RESULT_TYPES[op] is UpdateStatus


def default_result(op: Operation) -> Any:
    """The value an operation reports when no reply could be obtained."""
    kind = RESULT_TYPES[op]
    if kind is UpdateStatus:
        return UpdateStatus.FAILED
    return kind()


# -- Value conversion ------------------------------------------------------

def _to_wire(value: Any, kind: type) -> Any:
    if kind in (Song, ReplayGain):
        if not isinstance(value, kind):
            raise TypeError(f"Expected {kind.__name__}, got {type(value).__name__}")
        return value.to_dict()
    if kind is bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"Expected bytes, got {type(value).__name__}")
        return base64.b64encode(bytes(value)).decode("ascii")
    if kind is UpdateStatus:
        return int(value)
    if kind is bool:
        return bool(value)
    if kind is int:
        return int(value)
    return str(value)


def _from_wire(value: Any, kind: type) -> Any:
    try:
        if kind in (Song, ReplayGain):
            if value is not None and not isinstance(value, dict):
                raise ProtocolError(f"Expected object for {kind.__name__}")
            return kind.from_dict(value)
        if kind is bytes:
            return base64.b64decode(value or "", validate=True)
        if kind is UpdateStatus:
            return UpdateStatus(int(value))
        if kind is bool:
            return bool(value)
        if kind is int:
            return int(value)
        if not isinstance(value, str):
            raise ProtocolError(f"Expected string, got {type(value).__name__}")
        return value
    except ProtocolError:
        raise
    except (TypeError, ValueError, binascii.Error) as exc:
        raise ProtocolError(f"Bad {kind.__name__} value: {exc}") from exc


def _encode(obj: dict) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + "\n").encode("utf-8")


def _decode(line: bytes) -> dict:
    try:
        obj = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ProtocolError(f"Malformed message: {exc}") from exc
    if not isinstance(obj, dict):
        raise ProtocolError("Message is not an object")
    return obj


def _operation(obj: dict) -> Operation:
    try:
        return Operation(obj.get("type"))
    except ValueError:
        raise ProtocolError(f"Unknown operation: {obj.get('type')!r}") from None


# -- Requests (client -> helper) ------------------------------------------

def encode_request(op: Operation, **args: Any) -> bytes:
    """Encode a request line; every argument in the schema must be given."""
    schema = REQUEST_FIELDS[op]
    expected = {name for name, _ in schema}
    if set(args) != expected:
        raise TypeError(f"{op.value} takes {sorted(expected)}, got {sorted(args)}")
    file = args["file"]
    if isinstance(file, os.PathLike):
        args["file"] = file = os.fspath(file)
    if not isinstance(file, str):
        raise TypeError(f"{op.value} needs a str or path-like file, got {type(file).__name__}")
    obj: Dict[str, Any] = {"type": op.value}
    for name, kind in schema:
        obj[name] = _to_wire(args[name], kind)
    return _encode(obj)


def decode_request(line: bytes) -> Tuple[Operation, Dict[str, Any]]:
    obj = _decode(line)
    op = _operation(obj)
    args = {}
    for name, kind in REQUEST_FIELDS[op]:
        if name not in obj:
            raise ProtocolError(f"{op.value} request missing '{name}'")
        args[name] = _from_wire(obj[name], kind)
    return op, args


# -- Responses (helper -> client) -----------------------------------------

def encode_response(op: Operation, result: Any) -> bytes:
    return _encode({"type": op.value, "result": _to_wire(result, RESULT_TYPES[op])})


def decode_response(op: Operation, line: bytes) -> Any:
    """Decode a reply to ``op``; raises ProtocolError on a mismatched tag."""
    obj = _decode(line)
    if _operation(obj) is not op:
        raise ProtocolError(f"Reply for {obj.get('type')!r} received while awaiting {op.value!r}")
    if "result" not in obj:
        raise ProtocolError(f"{op.value} reply has no result")
    return _from_wire(obj["result"], RESULT_TYPES[op])
