"""
Basic usage example: read tags, change the title, write them back.

Requirements:
    pip install cantata-tags

The tag work happens in a ``cantata-tags`` helper process. To point at a
helper that is not on PATH:
    CANTATA_TAGS_HELPER="python -m cantata_tags.isolation.helper" python basic_usage.py song.mp3
"""
import dataclasses
import sys

from cantata_tags import ReadStatus, TagClient, UpdateStatus

path = sys.argv[1] if len(sys.argv) > 1 else "song.mp3"

with TagClient() as tags:
    # --- Read ---
    song = tags.read(path)
    if tags.last_status is not ReadStatus.OK:
        print(f"Could not read {path} (status: {tags.last_status})")
        sys.exit(1)
    print(f"{song.artist} - {song.title} ({song.album}, {song.year})")

    # --- Update only what changed ---
    edited = dataclasses.replace(song, title=song.title.upper())
    status = tags.update(path, song, edited)
    if status == UpdateStatus.MODIFIED:
        print("Title updated")
    elif status == UpdateStatus.NONE:
        print("Nothing to change")
    else:
        print(f"Update failed: {status.name}")

    # --- Replay gain ---
    rg = tags.read_replaygain(path)
    if not rg.is_empty():
        print(f"Track gain {rg.track_gain:+.2f} dB, peak {rg.track_peak:.3f}")
