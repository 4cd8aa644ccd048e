"""
Process isolation for tag I/O.

``TagClient`` runs every tag read and write in a ``cantata-tags`` helper
subprocess, restarting it whenever it crashes or stalls.
"""

from .client import TagClient
from .connection import ReadStatus
from .process_manager import HelperSupervisor

__all__ = ["HelperSupervisor", "ReadStatus", "TagClient"]
