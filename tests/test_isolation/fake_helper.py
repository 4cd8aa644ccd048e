"""
Stand-in helper executables for the end-to-end tests.

Run as:  ``python fake_helper.py <mode> <endpoint address> <client pid>``

Modes:
  memory        real helper loop over an in-memory tag store
  never_connect start, but never connect back
  stall         connect, read the request, never reply
  deaf          connect, never read anything
  stall_first   like ``stall`` on the first launch (marker file in
                FAKE_HELPER_MARKER), ``memory`` afterwards
  crash         connect, read the request, exit without replying
"""

import os
import sys
import time

from cantata_tags.isolation.endpoint import connect_endpoint
from cantata_tags.isolation.helper import Helper, TagBackend
from cantata_tags.tags import ReplayGain, Song, UpdateStatus


class MemoryBackend(TagBackend):
    def __init__(self):
        self.songs = {}
        self.gains = {}
        self.images = {}

    def read(self, file):
        return self.songs.get(file, Song(file=file, title="Title", artist="Artist", album="Album", track=1))

    def read_image(self, file):
        return self.images.get(file, b"")

    def read_lyrics(self, file):
        time.sleep(0.05)
        return f"Lyrics of {os.path.basename(file)}"

    def read_comment(self, file):
        return self.read(file).comment

    def update_artist_and_title(self, file, song):
        current = self.read(file)
        current.artist = song.artist
        current.title = song.title
        self.songs[file] = current
        return UpdateStatus.MODIFIED

    def update(self, file, from_song, to_song, id3_ver, save_comment):
        if from_song == to_song:
            return UpdateStatus.NONE
        self.songs[file] = to_song
        return UpdateStatus.MODIFIED

    def read_replaygain(self, file):
        return self.gains.get(file, ReplayGain())

    def update_replaygain(self, file, replaygain):
        self.gains[file] = replaygain
        return UpdateStatus.MODIFIED

    def embed_image(self, file, cover):
        self.images[file] = cover
        return UpdateStatus.MODIFIED

    def ogg_mime_type(self, file):
        return "audio/x-vorbis+ogg" if file.endswith(".ogg") else ""


def _first_launch() -> bool:
    try:
        with open(os.environ["FAKE_HELPER_MARKER"], "x"):
            return True
    except FileExistsError:
        return False


def main() -> int:
    mode, address, pid = sys.argv[1], sys.argv[2], int(sys.argv[3])
    if mode == "never_connect":
        time.sleep(60)
        return 0

    sock = connect_endpoint(address, timeout=5)
    if mode == "deaf":
        time.sleep(60)
        return 0
    if mode == "stall" or (mode == "stall_first" and _first_launch()):
        sock.recv(65536)
        time.sleep(60)
        return 0
    if mode == "crash":
        sock.recv(65536)
        os._exit(3)

    Helper(sock, MemoryBackend(), parent_pid=pid, poll_interval=0.2).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
