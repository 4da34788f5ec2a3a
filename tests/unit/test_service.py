"""Tests for the session service."""

import threading
from datetime import timedelta

import pytest

from vnscan.exceptions import (
    FailureKind,
    InvalidSessionIdError,
    PipelineError,
    SessionActiveError,
    SessionNotFoundError,
)
from vnscan.models import DocumentType
from vnscan.service import SessionService


@pytest.fixture
def service(config, rasterizer, engine):
    with SessionService(config, rasterizer=rasterizer, engine=engine) as service:
        yield service


class TestSessions:
    """Starting sessions and reading their state."""

    def test_run_to_completion(self, service, document):
        handle = service.start_session(document, "s1")
        result = handle.result(timeout=10)

        assert result.complete
        assert handle.done()
        status = service.get_status("s1")
        assert status.state == "completed"
        assert status.percentage == 100
        assert status.has_output
        assert status.output_size > 0
        assert not status.active

    def test_generated_session_id(self, service, document):
        handle = service.start_session(document)
        handle.result(timeout=10)

        assert len(handle.session_id) == 32
        assert service.get_status(handle.session_id).exists

    def test_invalid_session_id(self, service, document):
        with pytest.raises(ValueError):
            service.start_session(document, "bad/id")

    def test_empty_session_id_rejected(self, service, document):
        """Only a missing id is generated; an empty one is an error."""
        with pytest.raises(InvalidSessionIdError):
            service.start_session(document, "")
        assert service.list_sessions() == []

    def test_progress_callback(self, service, document):
        pages = []
        service.start_session(document, "s1", lambda e: pages.append(e.page)).result(timeout=10)

        assert pages == [1, 2, 3, 4, 5]

    def test_duplicate_active_session_rejected(self, service, document, rasterizer):
        """A running session id cannot be started twice."""
        release = threading.Event()
        rasterizer.on_render = lambda page: release.wait(10)

        handle = service.start_session(document, "s1")
        try:
            assert service.is_active("s1")
            with pytest.raises(SessionActiveError):
                service.start_session(document, "s1")
        finally:
            release.set()
        handle.result(timeout=10)
        assert not service.is_active("s1")

    def test_unknown_status(self, service):
        status = service.get_status("missing")

        assert not status.exists
        assert status.state == "not_found"
        assert status.output_size == 0

    def test_failure_is_recorded(self, service, document, rasterizer):
        """A fatal error re-raises from the handle and is noted in the checkpoint."""
        rasterizer.fail_pages = {4}

        handle = service.start_session(document, "s1")
        with pytest.raises(PipelineError) as excinfo:
            handle.result(timeout=10)

        assert excinfo.value.kind is FailureKind.RASTERIZE
        status = service.get_status("s1")
        assert status.state == "in_progress"
        assert status.last_page_processed == 3
        assert status.error_count == 1
        assert "page 4" in status.last_error

    def test_resume_through_service(self, service, document, rasterizer):
        rasterizer.fail_pages = {4}
        with pytest.raises(PipelineError):
            service.start_session(document, "s1").result(timeout=10)

        rasterizer.fail_pages = set()
        result = service.start_session(document, "s1").result(timeout=10)

        assert result.resumed_from == 3
        assert service.outputs.page_numbers("s1") == [1, 2, 3, 4, 5]


class TestOutputs:
    """Fetching and cleaning session output."""

    def test_fetch_output(self, service, document):
        service.start_session(document, "s1").result(timeout=10)
        text = service.fetch_output("s1")

        assert "--- Page 5 ---" in text

    def test_fetch_missing(self, service):
        with pytest.raises(SessionNotFoundError):
            service.fetch_output("missing")

    def test_clean_output(self, service, document):
        service.start_session(document, "s1").result(timeout=10)
        result = service.clean_output("s1")

        assert "Trang 1: Hợp đồng cho thuê" in result.cleaned
        assert result.metadata.total_corrections > 0

    def test_clean_text(self, service):
        result = service.clean_text("Dia chi: 123, Dien thoai: 456")
        assert result.cleaned == "Địa chỉ: 123, Điện thoại: 456"

    def test_extract_text(self, service, document):
        result = service.extract_text(document)

        assert result.pages == 5
        assert result.metadata.document_type is DocumentType.UNKNOWN
        assert "Trang 5: Hợp đồng cho thuê" in result.cleaned


class TestRemoval:
    """Removing sessions and their files."""

    def test_remove_finished_session(self, service, document):
        service.start_session(document, "s1").result(timeout=10)

        assert service.remove_session("s1")
        assert not service.get_status("s1").exists
        assert not service.outputs.exists("s1")
        assert not service.remove_session("s1")

    def test_remove_running_session(self, service, document, rasterizer):
        """A running session is cancelled and waited for before its files go."""
        started = threading.Event()
        release = threading.Event()

        def slow_render(page):
            started.set()
            release.wait(10)

        rasterizer.on_render = slow_render
        handle = service.start_session(document, "s1")
        assert started.wait(10)

        remover = threading.Thread(target=service.remove_session, args=("s1",))
        remover.start()
        handle.context.cancel_event.wait(10)
        release.set()
        remover.join(10)

        result = handle.result(timeout=10)
        assert result.cancelled
        assert not service.checkpoints.exists("s1")
        assert not service.outputs.exists("s1")
        assert list(service.outputs.directory.glob("s1_page_*")) == []

    def test_remove_timeout(self, service, document, rasterizer):
        """A worker stuck inside a page outlasts the removal timeout."""
        started = threading.Event()
        release = threading.Event()

        def slow_render(page):
            started.set()
            release.wait(10)

        rasterizer.on_render = slow_render
        handle = service.start_session(document, "s1")
        assert started.wait(10)
        try:
            with pytest.raises(SessionActiveError, match="did not stop"):
                service.remove_session("s1", timeout=0.05)
        finally:
            release.set()
        handle.result(timeout=10)


class TestMaintenance:
    """Listing, statistics and retention."""

    def test_list_and_statistics(self, service, document, rasterizer):
        service.start_session(document, "done").result(timeout=10)
        rasterizer.fail_pages = {4}
        with pytest.raises(PipelineError):
            service.start_session(document, "broken").result(timeout=10)

        sessions = {s.session_id: s for s in service.list_sessions()}
        assert sessions["done"].complete
        assert not sessions["broken"].complete

        stats = service.statistics()
        assert stats.total_sessions == 2
        assert stats.completed == 1
        assert stats.with_errors == 1
        assert stats.pages_processed == 8

    def test_sweep_keeps_recent(self, service, document):
        service.start_session(document, "s1").result(timeout=10)

        stats = service.sweep_expired()

        assert stats.checkpoints_removed == 0
        assert service.get_status("s1").exists

    def test_sweep_everything(self, service, document):
        service.start_session(document, "s1").result(timeout=10)

        stats = service.sweep_expired(timedelta(seconds=-1))

        assert stats.checkpoints_removed == 1
        assert stats.outputs_removed == 1
        assert not service.get_status("s1").exists
