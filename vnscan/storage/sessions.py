"""
Per-session output files.

A session output is a UTF-8 text file: a header written once, then one block
per page in increasing page order::

    --- Page 1 ---
    <recognized text>

Blocks are appended through a SessionWriter that flushes (and by default
fsyncs) after every write and reports the byte offset reached, which the
streaming pipeline stores in its checkpoint. On resume the file is cut back
to that offset so blocks written after the last checkpoint are not
duplicated.

Temporary page images live in the same directory, named
``<session_id>_page_<NNNN>.<ext>``.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from vnscan.exceptions import OutputError
from vnscan.models import SweepStats, utcnow, validate_session_id

logger = logging.getLogger(__name__)

HEADER_TITLE = "OCR Extraction Results (Streaming)"
SEPARATOR = "=" * 50
NO_TEXT_PLACEHOLDER = "[No text detected]"

PAGE_HEADER_RE = re.compile(rb"^--- Page (\d+) ---$")
_OUTPUT_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+\.txt$")
_IMAGE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+_page_\d+\.(?:jpg|jpeg|png)$")


def format_header(
    session_id: str,
    total_pages: int,
    source_name: str | None = None,
    started_at: datetime | None = None,
) -> str:
    started_at = started_at or utcnow()
    lines = [
        HEADER_TITLE,
        SEPARATOR,
        f"Processing started: {started_at.isoformat(timespec='seconds')}",
        f"Total pages: {total_pages}",
        f"Session: {session_id}",
    ]
    if source_name:
        lines.append(f"Source: {source_name}")
    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n\n"


def format_page_block(page: int, text: str) -> str:
    body = text.strip() or NO_TEXT_PLACEHOLDER
    return f"--- Page {page} ---\n{body}\n\n"


class SessionWriter:
    """
    Append-only handle on one session output.

    Use as a context manager so the file is closed on every exit path.
    """

    def __init__(self, path: Path, handle: BinaryIO, offset: int, fsync: bool = True):
        self.path = path
        self._handle = handle
        self._offset = offset
        self._fsync = fsync

    @property
    def offset(self) -> int:
        """Bytes durably written so far."""
        return self._offset

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def write(self, text: str) -> int:
        """
        Append ``text`` and flush it to disk.

        Returns:
            The file's byte length after the write.

        Raises:
            OutputError: If the write or flush fails.
        """
        data = text.encode("utf-8")
        try:
            self._handle.write(data)
            self._handle.flush()
            if self._fsync:
                os.fsync(self._handle.fileno())
        except (OSError, ValueError) as e:
            raise OutputError(f"Failed to write {self.path}: {e}") from e
        self._offset += len(data)
        return self._offset

    def write_page(self, page: int, text: str) -> int:
        return self.write(format_page_block(page, text))

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> SessionWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SessionOutputStore:
    """Create, reopen, read and remove session outputs and their page images."""

    def __init__(self, directory: Path | str, fsync: bool = True):
        self.directory = Path(directory)
        self.fsync = fsync

    def output_path(self, session_id: str) -> Path:
        return self.directory / f"{validate_session_id(session_id)}.txt"

    def image_stem(self, session_id: str, page: int) -> Path:
        """Path, without extension, for a page image of this session."""
        return self.directory / f"{validate_session_id(session_id)}_page_{page:04d}"

    def exists(self, session_id: str) -> bool:
        return self.output_path(session_id).is_file()

    def size(self, session_id: str) -> int:
        try:
            return self.output_path(session_id).stat().st_size
        except FileNotFoundError:
            return 0

    def read(self, session_id: str) -> str | None:
        try:
            return self.output_path(session_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def create(
        self,
        session_id: str,
        total_pages: int,
        source_name: str | None = None,
    ) -> SessionWriter:
        """Start a fresh output, replacing any existing one, and write its header."""
        path = self.output_path(session_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            handle = open(path, "wb")
        except OSError as e:
            raise OutputError(f"Failed to create {path}: {e}") from e
        writer = SessionWriter(path, handle, 0, fsync=self.fsync)
        try:
            writer.write(format_header(session_id, total_pages, source_name))
        except OutputError:
            writer.close()
            raise
        return writer

    def reopen(
        self,
        session_id: str,
        last_page: int,
        offset: int | None = None,
    ) -> SessionWriter | None:
        """
        Reopen an output for appending after page ``last_page``.

        Anything past the end of that page's block is cut away. The cut point
        is ``offset`` when it is known and within the file, otherwise it is
        found by scanning page headers.

        Returns:
            A writer positioned after page ``last_page``, or None when the
            output is missing or does not contain that page.
        """
        path = self.output_path(session_id)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return None

        if offset is not None and offset <= size:
            cut = offset
        else:
            cut = self.find_resume_offset(path, last_page)
            if cut is None:
                return None

        try:
            handle = open(path, "r+b")
        except OSError as e:
            raise OutputError(f"Failed to reopen {path}: {e}") from e
        try:
            if cut < size:
                logger.info(
                    "Trimming %d bytes written after page %d from %s",
                    size - cut,
                    last_page,
                    path.name,
                )
                handle.truncate(cut)
                handle.flush()
                os.fsync(handle.fileno())
            handle.seek(cut)
        except OSError as e:
            handle.close()
            raise OutputError(f"Failed to trim {path}: {e}") from e
        return SessionWriter(path, handle, cut, fsync=self.fsync)

    @staticmethod
    def find_resume_offset(path: Path, last_page: int) -> int | None:
        """
        Byte offset where the block after ``last_page`` starts (or end of file).

        Returns None if the block for ``last_page`` is not in the file.
        """
        offset = 0
        seen_last = last_page == 0
        with open(path, "rb") as f:
            for line in f:
                match = PAGE_HEADER_RE.match(line.rstrip(b"\r\n"))
                if match:
                    page = int(match.group(1))
                    if page == last_page:
                        seen_last = True
                    elif page > last_page:
                        return offset if seen_last else None
                offset += len(line)
        return offset if seen_last else None

    def page_numbers(self, session_id: str) -> list[int]:
        """Page numbers of the blocks in the output, in file order."""
        path = self.output_path(session_id)
        if not path.is_file():
            return []
        pages = []
        with open(path, "rb") as f:
            for line in f:
                match = PAGE_HEADER_RE.match(line.rstrip(b"\r\n"))
                if match:
                    pages.append(int(match.group(1)))
        return pages

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, session_id: str) -> bool:
        try:
            self.output_path(session_id).unlink()
        except FileNotFoundError:
            return False
        logger.info("Removed output for session %s", session_id)
        return True

    def remove_page_images(self, session_id: str) -> int:
        """Delete leftover page images of a session. Returns the number removed."""
        if not self.directory.is_dir():
            return 0
        pattern = re.compile(
            rf"^{re.escape(validate_session_id(session_id))}_page_\d+\.(?:jpg|jpeg|png)$"
        )
        removed = 0
        for path in self.directory.iterdir():
            if not pattern.match(path.name):
                continue
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove page image %s: %s", path, e)
        return removed

    def sweep_expired(self, cutoff: float, stats: SweepStats) -> SweepStats:
        """Remove outputs and page images last modified before ``cutoff`` (epoch seconds)."""
        if not self.directory.is_dir():
            return stats
        for path in self.directory.iterdir():
            is_image = bool(_IMAGE_NAME_RE.match(path.name))
            if not is_image and not _OUTPUT_NAME_RE.match(path.name):
                continue
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                stats.errors.append(f"{path.name}: {e}")
                continue
            if is_image:
                stats.images_removed += 1
            else:
                stats.outputs_removed += 1
        return stats
