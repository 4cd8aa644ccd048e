"""
Runtime configuration for the tag client.

Defaults can be overridden through environment variables:

- ``CANTATA_TAGS_HELPER``: helper executable (may include leading
  arguments, split shell-style, e.g. ``"python -m cantata_tags.isolation.helper"``)
- ``CANTATA_TAGS_TIMEOUT_MS``: start/connect/reply timeout
- ``CANTATA_TAGS_DEBUG``: ``1``/``true`` enables debug logging
"""

import logging
import os
import shlex
import shutil
import sys
import sysconfig
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

HELPER_NAME = "cantata-tags"
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_START_ATTEMPTS = 5


def default_helper_path() -> str:
    """Locate the helper executable for this platform."""
    found = shutil.which(HELPER_NAME)
    if found:
        return found
    # Console script of this install, when its bin dir is not on PATH
    scripts = sysconfig.get_path("scripts")
    if scripts:
        script = os.path.join(scripts, HELPER_NAME + (".exe" if sys.platform == "win32" else ""))
        if os.path.isfile(script):
            return script
    if sys.platform == "win32":
        app_dir = os.path.dirname(os.path.abspath(sys.argv[0] or sys.executable))
        return os.path.join(app_dir, "helpers", HELPER_NAME + ".exe")
    return os.path.join(sys.prefix, "lib", "cantata", HELPER_NAME)


@dataclass
class TagClientConfig:
    # Command prefix; the endpoint address and caller pid are appended
    helper_command: List[str] = field(default_factory=lambda: [default_helper_path()])
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_start_attempts: int = DEFAULT_MAX_START_ATTEMPTS
    debug: bool = False

    @property
    def timeout(self) -> float:
        """Timeout in seconds."""
        return self.timeout_ms / 1000.0

    def to_dict(self) -> dict:
        return {
            "helper_command": list(self.helper_command),
            "timeout_ms": self.timeout_ms,
            "max_start_attempts": self.max_start_attempts,
            "debug": self.debug,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TagClientConfig":
        config = cls()
        if data.get("helper_command"):
            config.helper_command = list(data["helper_command"])
        config.timeout_ms = int(data.get("timeout_ms", config.timeout_ms))
        config.max_start_attempts = int(data.get("max_start_attempts", config.max_start_attempts))
        config.debug = bool(data.get("debug", config.debug))
        return config


def enable_debug() -> None:
    """Log every request, reply and helper restart at DEBUG level."""
    logging.getLogger("cantata_tags").setLevel(logging.DEBUG)


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(environ: Optional[dict] = None) -> TagClientConfig:
    """Build a config from defaults plus environment overrides.

    Unparsable values are logged and ignored.
    """
    env = os.environ if environ is None else environ
    config = TagClientConfig()

    helper = env.get("CANTATA_TAGS_HELPER")
    if helper:
        config.helper_command = shlex.split(helper, posix=sys.platform != "win32")

    timeout = env.get("CANTATA_TAGS_TIMEOUT_MS")
    if timeout:
        try:
            config.timeout_ms = int(timeout)
        except ValueError:
            logger.warning("Ignoring invalid CANTATA_TAGS_TIMEOUT_MS=%r", timeout)

    debug = env.get("CANTATA_TAGS_DEBUG")
    if debug:
        config.debug = _env_flag(debug)

    return config
