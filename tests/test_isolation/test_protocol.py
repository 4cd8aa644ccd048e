"""Tests for the JSON-line request/response protocol."""

import base64
import json

import pytest

from cantata_tags.isolation.protocol import (
    REQUEST_FIELDS,
    RESULT_TYPES,
    Operation,
    ProtocolError,
    decode_request,
    decode_response,
    default_result,
    encode_request,
    encode_response,
    is_mutating,
)
from cantata_tags.tags import ReplayGain, Song, UpdateStatus


class TestProtocolSchema:
    def test_every_operation_has_schema(self):
        for op in Operation:
            assert op in REQUEST_FIELDS
            assert op in RESULT_TYPES

    def test_first_argument_is_always_file(self):
        for fields in REQUEST_FIELDS.values():
            assert fields[0] == ("file", str)

    def test_mutating_operations(self):
        mutating = {op for op in Operation if is_mutating(op)}
        assert mutating == {
            Operation.UPDATE_ARTIST_AND_TITLE,
            Operation.UPDATE,
            Operation.UPDATE_REPLAYGAIN,
            Operation.EMBED_IMAGE,
        }

    def test_default_results(self):
        assert default_result(Operation.READ) == Song()
        assert default_result(Operation.READ_IMAGE) == b""
        assert default_result(Operation.READ_LYRICS) == ""
        assert default_result(Operation.READ_REPLAYGAIN) == ReplayGain()
        assert default_result(Operation.UPDATE) is UpdateStatus.FAILED


class TestEncodeRequest:
    def test_basic_request(self):
        line = encode_request(Operation.READ_LYRICS, file="/music/a.flac")
        assert line.endswith(b"\n")
        parsed = json.loads(line)
        assert parsed == {"type": "readLyrics", "file": "/music/a.flac"}

    def test_bytes_are_base64(self):
        line = encode_request(Operation.EMBED_IMAGE, file="a.mp3", cover=b"\x89PNG\x00")
        parsed = json.loads(line)
        assert base64.b64decode(parsed["cover"]) == b"\x89PNG\x00"

    def test_missing_argument_raises(self):
        with pytest.raises(TypeError, match="updateReplaygain"):
            encode_request(Operation.UPDATE_REPLAYGAIN, file="a.mp3")

    def test_wrong_record_type_raises(self):
        with pytest.raises(TypeError, match="ReplayGain"):
            encode_request(Operation.UPDATE_REPLAYGAIN, file="a.mp3", replaygain=Song())

    def test_integer_cover_is_not_coerced(self):
        with pytest.raises(TypeError, match="bytes"):
            encode_request(Operation.EMBED_IMAGE, file="a.mp3", cover=5)

    @pytest.mark.parametrize("file", [None, 3, b"a.mp3"])
    def test_file_must_be_text_path(self, file):
        with pytest.raises(TypeError, match="file"):
            encode_request(Operation.READ, file=file)

    def test_path_like_file(self, tmp_path):
        parsed = json.loads(encode_request(Operation.READ, file=tmp_path / "a.mp3"))
        assert parsed["file"] == str(tmp_path / "a.mp3")

    def test_update_request_decodes_to_typed_args(self):
        before = Song(file="a.mp3", title="Old", genres=["Rock"])
        after = Song(file="a.mp3", title="New", genres=["Rock", "Pop"], year=1999)
        line = encode_request(
            Operation.UPDATE,
            file="a.mp3",
            from_song=before,
            to_song=after,
            id3_ver=3,
            save_comment=True,
        )
        op, args = decode_request(line)
        assert op is Operation.UPDATE
        assert args == {
            "file": "a.mp3",
            "from_song": before,
            "to_song": after,
            "id3_ver": 3,
            "save_comment": True,
        }


class TestDecodeRequest:
    def test_unknown_operation(self):
        with pytest.raises(ProtocolError, match="Unknown operation"):
            decode_request(b'{"type":"format_disk","file":"/"}\n')

    def test_missing_field(self):
        with pytest.raises(ProtocolError, match="missing 'song'"):
            decode_request(b'{"type":"updateArtistAndTitle","file":"a.mp3"}\n')

    def test_not_json(self):
        with pytest.raises(ProtocolError):
            decode_request(b"\x00\x01garbage\n")


class TestResponses:
    def test_status_reply(self):
        line = encode_response(Operation.EMBED_IMAGE, UpdateStatus.MODIFIED)
        assert json.loads(line) == {"type": "embedImage", "result": 1}
        assert decode_response(Operation.EMBED_IMAGE, line) is UpdateStatus.MODIFIED

    def test_song_reply(self):
        song = Song(file="a.mp3", artist="Artist", track=7)
        line = encode_response(Operation.READ, song)
        assert decode_response(Operation.READ, line) == song

    def test_image_reply(self):
        line = encode_response(Operation.READ_IMAGE, b"\xff\xd8\xff\xe0")
        assert decode_response(Operation.READ_IMAGE, line) == b"\xff\xd8\xff\xe0"

    def test_reply_for_other_operation_is_rejected(self):
        line = encode_response(Operation.READ_COMMENT, "a comment")
        with pytest.raises(ProtocolError, match="awaiting 'readLyrics'"):
            decode_response(Operation.READ_LYRICS, line)

    def test_missing_result(self):
        with pytest.raises(ProtocolError, match="no result"):
            decode_response(Operation.READ_LYRICS, b'{"type":"readLyrics"}\n')

    def test_bad_status_value(self):
        with pytest.raises(ProtocolError):
            decode_response(Operation.UPDATE, b'{"type":"update","result":99}\n')

    def test_string_result_must_be_string(self):
        with pytest.raises(ProtocolError, match="Expected string"):
            decode_response(Operation.OGG_MIME_TYPE, b'{"type":"oggMimeType","result":5}\n')

    def test_bad_base64(self):
        with pytest.raises(ProtocolError):
            decode_response(Operation.READ_IMAGE, b'{"type":"readImage","result":"!!!"}\n')
