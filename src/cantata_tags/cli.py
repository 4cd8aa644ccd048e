"""
Command-line front end for poking at files through the tag helper.

    cantata-tags-query read song.mp3
    cantata-tags-query --helper "python -m cantata_tags.isolation.helper" lyrics song.flac
"""

import argparse
import json
import logging
import shlex
import sys
from typing import List, Optional

from .config import load_config
from .isolation.client import TagClient

COMMANDS = ("read", "lyrics", "comment", "replaygain", "mimetype", "image")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Query audio tags via the isolated tag helper")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("file")
    parser.add_argument("--helper", help="Helper command (overrides CANTATA_TAGS_HELPER)")
    parser.add_argument("--timeout-ms", type=int, help="Start/connect/reply timeout")
    parser.add_argument("--output", help="Where to write the image for the 'image' command")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    config = load_config()
    if args.helper:
        config.helper_command = shlex.split(args.helper)
    if args.timeout_ms:
        config.timeout_ms = args.timeout_ms
    config.debug = config.debug or args.debug

    with TagClient(config) as client:
        if args.command == "read":
            print(json.dumps(client.read(args.file).to_dict(), indent=2))
        elif args.command == "lyrics":
            print(client.read_lyrics(args.file))
        elif args.command == "comment":
            print(client.read_comment(args.file))
        elif args.command == "replaygain":
            print(json.dumps(client.read_replaygain(args.file).to_dict(), indent=2))
        elif args.command == "mimetype":
            print(client.ogg_mime_type(args.file))
        else:
            data = client.read_image(args.file)
            if args.output and data:
                with open(args.output, "wb") as f:
                    f.write(data)
            print(f"{len(data)} bytes")
        status = client.last_status

    if status is None:
        print("Tag helper could not be started", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
