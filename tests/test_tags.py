"""Tests for the tag value types."""

from cantata_tags.tags import ReplayGain, Song, UpdateStatus


class TestUpdateStatus:
    def test_values(self):
        assert UpdateStatus.FAILED == 0
        assert UpdateStatus.MODIFIED == 1
        assert UpdateStatus.NONE == 2
        assert UpdateStatus.BAD_FILE == 3
        assert UpdateStatus.TIMEDOUT == 4


class TestSong:
    def test_empty(self):
        assert Song().is_empty()
        assert Song(file="a.mp3").is_empty()
        assert not Song(title="x").is_empty()

    def test_from_dict_ignores_unknown_keys(self):
        song = Song.from_dict({"title": "T", "rating": 5})
        assert song == Song(title="T")

    def test_from_none(self):
        assert Song.from_dict(None) == Song()

    def test_genres_are_not_shared(self):
        a, b = Song(), Song()
        a.genres.append("Rock")
        assert b.genres == []


class TestReplayGain:
    def test_empty(self):
        assert ReplayGain().is_empty()
        assert not ReplayGain(album_peak=0.5).is_empty()

    def test_from_dict_coerces_numbers(self):
        rg = ReplayGain.from_dict({"track_gain": "-3.5", "album_peak": 1})
        assert rg.track_gain == -3.5
        assert rg.album_peak == 1.0
        assert rg.track_peak == 0.0
