"""Tests for the cantata-tags-query command."""

import json
from unittest.mock import MagicMock, patch

from cantata_tags.cli import main
from cantata_tags.isolation.connection import ReadStatus
from cantata_tags.tags import ReplayGain, Song


def _mock_client(status=ReadStatus.OK):
    client = MagicMock()
    client.__enter__.return_value = client
    client.last_status = status
    client.read.return_value = Song(file="a.mp3", title="Title")
    client.read_replaygain.return_value = ReplayGain(track_gain=-2.0)
    client.read_lyrics.return_value = "la la"
    client.read_image.return_value = b"\xff\xd8\xff"
    return client


class TestCli:
    def test_read_prints_json(self, capsys):
        client = _mock_client()
        with patch("cantata_tags.cli.TagClient", return_value=client):
            assert main(["read", "a.mp3"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["title"] == "Title"

    def test_lyrics(self, capsys):
        client = _mock_client()
        with patch("cantata_tags.cli.TagClient", return_value=client):
            main(["lyrics", "a.mp3"])
        assert capsys.readouterr().out.strip() == "la la"

    def test_image_written_to_output(self, tmp_path, capsys):
        client = _mock_client()
        out_file = tmp_path / "cover.jpg"
        with patch("cantata_tags.cli.TagClient", return_value=client):
            main(["image", "a.mp3", "--output", str(out_file)])
        assert out_file.read_bytes() == b"\xff\xd8\xff"
        assert "3 bytes" in capsys.readouterr().out

    def test_helper_override(self):
        client = _mock_client()
        with patch("cantata_tags.cli.TagClient", return_value=client) as cls:
            main(["mimetype", "a.ogg", "--helper", "python -m cantata_tags.isolation.helper", "--timeout-ms", "900"])
        config = cls.call_args[0][0]
        assert config.helper_command == ["python", "-m", "cantata_tags.isolation.helper"]
        assert config.timeout_ms == 900

    def test_unavailable_helper_exit_code(self, capsys):
        client = _mock_client(status=None)
        with patch("cantata_tags.cli.TagClient", return_value=client):
            assert main(["replaygain", "a.mp3"]) == 2
        assert "could not be started" in capsys.readouterr().err
