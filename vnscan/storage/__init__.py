"""
Durable storage for streaming sessions.

- CheckpointStore: one atomically written JSON record per session
- SessionOutputStore: append-only page-block output plus temporary page images
"""

from vnscan.storage.checkpoints import CheckpointStore
from vnscan.storage.sessions import (
    NO_TEXT_PLACEHOLDER,
    SessionOutputStore,
    SessionWriter,
    format_header,
    format_page_block,
)

__all__ = [
    "CheckpointStore",
    "SessionOutputStore",
    "SessionWriter",
    "NO_TEXT_PLACEHOLDER",
    "format_header",
    "format_page_block",
]
