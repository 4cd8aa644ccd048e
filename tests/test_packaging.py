"""Tests that cantata-tags works correctly as a pip-installed library.

Validates the public API surface and exports.
"""

from cantata_tags import ReplayGain, Song, TagClient, UpdateStatus, __version__


class TestPublicExports:
    def test_version_is_string(self):
        assert isinstance(__version__, str)
        assert __version__  # non-empty

    def test_all_exports_importable(self):
        import cantata_tags
        for name in cantata_tags.__all__:
            assert hasattr(cantata_tags, name), f"__all__ lists '{name}' but it is missing"

    def test_isolation_exports(self):
        import cantata_tags.isolation
        for name in cantata_tags.isolation.__all__:
            assert hasattr(cantata_tags.isolation, name)

    def test_client_surface(self):
        for name in (
            "read",
            "read_image",
            "read_lyrics",
            "read_comment",
            "update_artist_and_title",
            "update",
            "read_replaygain",
            "update_replaygain",
            "embed_image",
            "ogg_mime_type",
            "stop",
        ):
            assert callable(getattr(TagClient, name))

    def test_value_types_have_defaults(self):
        assert Song().title == ""
        assert ReplayGain().track_gain == 0.0
        assert int(UpdateStatus.FAILED) == 0

    def test_console_scripts_are_callable(self):
        from cantata_tags.cli import main as query_main
        from cantata_tags.isolation.helper import main as helper_main
        assert callable(query_main)
        assert callable(helper_main)
