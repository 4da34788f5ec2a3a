#!/usr/bin/env python3
"""
Basic vnscan Usage Example

This example demonstrates the core workflow:
1. Extract a small scan in one pass
2. Stream a large scan page by page through a session
3. Watch progress, resume after an interruption
4. Clean OCR text and pull out document fields
5. Housekeeping: list, remove and sweep sessions
"""

import logging
from datetime import timedelta
from pathlib import Path

from vnscan import (
    PipelineConfig,
    ProcessingStrategy,
    SessionService,
    StreamingConfig,
    VietnameseOCRCleaner,
    choose_strategy,
    extract_text,
    write_text_file,
)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s: %(message)s")

    # ─────────────────────────────────────────────────────────────────────────
    # 1. Configuration
    # ─────────────────────────────────────────────────────────────────────────

    # Defaults match a typical deployment; environment variables such as
    # CHECKPOINT_INTERVAL or OCR_LANG override them.
    config = PipelineConfig.from_env()

    # Or build one explicitly
    config = PipelineConfig(
        streaming=StreamingConfig(
            checkpoint_interval=5,  # Persist progress every 5 pages
            checkpoint_dir=Path("checkpoints"),
            sessions_dir=Path("temp/sessions"),
        )
    )

    source = Path("path/to/hop-dong-thue.pdf")

    # ─────────────────────────────────────────────────────────────────────────
    # 2. Small documents: one pass
    # ─────────────────────────────────────────────────────────────────────────

    if choose_strategy(source, config) is ProcessingStrategy.WHOLE_DOCUMENT:
        result = extract_text(source, config)
        print(f"Extracted {result.pages} pages in {result.processing_time_ms:.0f} ms")
        print(f"  Document type: {result.metadata.document_type.value}")
        print(f"  Corrections: {result.metadata.total_corrections}")
        print(f"  Confidence: {result.metadata.confidence:.2f}")
        write_text_file(result.cleaned, source.name, "output")
        return

    # ─────────────────────────────────────────────────────────────────────────
    # 3. Large documents: streaming session
    # ─────────────────────────────────────────────────────────────────────────

    def on_progress(event):
        print(f"  page {event.page}/{event.total_pages} ({event.percentage}%)")

    with SessionService(config) as service:
        # Reusing the session id after a crash resumes after the last checkpoint
        handle = service.start_session(source, "hop-dong-2024", on_progress)
        result = handle.result()
        print(f"Session {result.session_id}: {result.last_page_processed}/{result.total_pages}")
        if result.resumed_from:
            print(f"  Resumed after page {result.resumed_from}")
        if result.ocr_failures:
            print(f"  {result.ocr_failures} pages could not be recognized")

        status = service.get_status("hop-dong-2024")
        print(f"  State: {status.state}, output {status.output_size:,} bytes")

        # ─────────────────────────────────────────────────────────────────────
        # 4. Clean the session output
        # ─────────────────────────────────────────────────────────────────────

        cleaned = service.clean_output("hop-dong-2024")
        for record in cleaned.metadata.corrections:
            label = record.category.value + (f"/{record.group}" if record.group else "")
            print(f"  {label}: {record.count}")
            for detail in record.details[:3]:
                print(f"    {detail.before!r} -> {detail.after!r}")

        # ─────────────────────────────────────────────────────────────────────
        # 5. Housekeeping
        # ─────────────────────────────────────────────────────────────────────

        for session in service.list_sessions():
            print(f"{session.session_id}: {session.state} {session.percentage}%")

        stats = service.sweep_expired(timedelta(days=7))
        print(f"Swept {stats.checkpoints_removed} old sessions")

        service.remove_session("hop-dong-2024")


def cleaning_example():
    """Clean text that came from somewhere else."""
    cleaner = VietnameseOCRCleaner()

    result = cleaner.clean("HOP DONG CHO THUE\nDia chi: 12 Nguyen Hue, Quan 1")
    print(result.cleaned)

    fields = cleaner.extract_fields(result.cleaned)
    print(fields.to_dict())


if __name__ == "__main__":
    # Note: These examples use placeholder paths.
    # Replace with actual PDF paths to run.
    print("vnscan Usage Examples")
    print("=" * 50)
    print("\nSee the code for detailed examples of:")
    print("  - Configuration from code and environment")
    print("  - One-pass extraction for small files")
    print("  - Streaming sessions with progress and resume")
    print("  - Text cleaning and correction reports")
    print("  - Session housekeeping")
