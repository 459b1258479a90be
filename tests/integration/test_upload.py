"""Integration tests for the upload endpoints.

Tests the real upload flow through the FastAPI app: attachment
extraction, knowledge base ingestion validation and voice input.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

import askuni.api.routes as routes
from askuni.api.app import app
from askuni.api.deps import get_backend, get_speech_service
from askuni.parsing.pdf_parser import MAX_FILE_SIZE
from tests.fakes import make_pdf


@pytest.fixture(autouse=True)
def uploads_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Store uploads under a temporary directory."""
    monkeypatch.setattr(routes, "_UPLOADS_DIR", tmp_path / "uploads")
    return tmp_path / "uploads"


class TestAttachmentUpload:
    """Integration tests for POST /upload."""

    async def test_upload_text_file(self, async_client: AsyncClient, uploads_dir: Path) -> None:
        """Text upload returns its content as an attachment and is stored."""
        response = await async_client.post(
            "/upload",
            files={"file": ("notes.txt", b"Quiz 2 is on Tuesday", "text/plain")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["fileType"] == "text/plain"
        assert data["extractedText"] == "Quiz 2 is on Tuesday"
        assert data["attachment"] == {"filename": "notes.txt", "text": "Quiz 2 is on Tuesday"}
        assert len(list(uploads_dir.iterdir())) == 1

    async def test_upload_pdf(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/upload",
            files={"file": ("syllabus.pdf", make_pdf("ITCS285 Syllabus"), "application/pdf")},
        )

        assert response.status_code == 200
        assert "ITCS285 Syllabus" in response.json()["attachment"]["text"]

    async def test_upload_unsupported_type(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/upload",
            files={"file": ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        )

        assert response.status_code == 200
        assert response.json()["attachment"]["text"] == ""

    async def test_upload_empty_file_rejected(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/upload",
            files={"file": ("empty.txt", b"", "text/plain")},
        )

        assert response.status_code == 400

    async def test_upload_oversized_file_rejected(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/upload",
            files={"file": ("big.txt", b"a" * (MAX_FILE_SIZE + 1), "text/plain")},
        )

        assert response.status_code == 413

    def test_safe_upload_name(self) -> None:
        name = routes.safe_upload_name("../../etc/pass wd.pdf")

        assert "/" not in name
        assert name.endswith("_.._etc_pass_wd.pdf")


class TestKnowledgeUpload:
    """Integration tests for POST /knowledge/pdf."""

    @pytest.fixture(autouse=True)
    def offline(self) -> None:
        """Run offline unless a test injects a backend."""
        app.dependency_overrides[get_backend] = lambda: None

    @pytest.fixture
    def backend(self) -> MagicMock:
        backend = MagicMock()
        backend.add_document = AsyncMock()
        return backend

    async def test_ingests_pdf(self, async_client: AsyncClient, backend: MagicMock) -> None:
        app.dependency_overrides[get_backend] = lambda: backend

        response = await async_client.post(
            "/knowledge/pdf",
            files={"file": ("timetable.pdf", make_pdf("Final exams", pages=3), "application/pdf")},
        )

        assert response.status_code == 200
        assert response.json() == {"filename": "timetable.pdf", "pages": 3, "success": True, "error": None}
        assert "Final exams" in backend.add_document.await_args.kwargs["content"]

    async def test_rejects_non_pdf_extension(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/knowledge/pdf",
            files={"file": ("notes.txt", b"text", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Only PDF files are accepted"

    async def test_rejects_corrupt_pdf(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/knowledge/pdf",
            files={"file": ("fake.pdf", b"not really a pdf", "application/pdf")},
        )

        assert response.status_code == 400
        assert "Invalid PDF" in response.json()["detail"]

    async def test_offline_is_503(self, async_client: AsyncClient) -> None:
        app.dependency_overrides[get_backend] = lambda: None

        response = await async_client.post(
            "/knowledge/pdf",
            files={"file": ("timetable.pdf", make_pdf("Final exams"), "application/pdf")},
        )

        assert response.status_code == 503

    async def test_store_failure_is_500(self, async_client: AsyncClient, backend: MagicMock) -> None:
        backend.add_document.side_effect = RuntimeError("lance write failed")
        app.dependency_overrides[get_backend] = lambda: backend

        response = await async_client.post(
            "/knowledge/pdf",
            files={"file": ("timetable.pdf", make_pdf("Final exams"), "application/pdf")},
        )

        assert response.status_code == 500


class TestSpeechToText:
    """Integration tests for POST /stt."""

    async def test_transcribes_audio(self, async_client: AsyncClient) -> None:
        speech = MagicMock()
        speech.transcribe = AsyncMock(return_value="What room is ITCS285 in?")
        app.dependency_overrides[get_speech_service] = lambda: speech

        response = await async_client.post(
            "/stt", files={"audio": ("speech.webm", b"\x1a\x45\xdf\xa3", "audio/webm")}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "text": "What room is ITCS285 in?"}

    async def test_empty_audio_rejected(self, async_client: AsyncClient) -> None:
        app.dependency_overrides[get_speech_service] = lambda: None

        response = await async_client.post("/stt", files={"audio": ("speech.webm", b"", "audio/webm")})

        assert response.status_code == 400

    async def test_oversized_audio_rejected(self, async_client: AsyncClient) -> None:
        speech = MagicMock()
        speech.transcribe = AsyncMock(return_value="never")
        app.dependency_overrides[get_speech_service] = lambda: speech

        response = await async_client.post(
            "/stt", files={"audio": ("speech.webm", b"\x00" * (MAX_FILE_SIZE + 1), "audio/webm")}
        )

        assert response.status_code == 413
        speech.transcribe.assert_not_called()

    async def test_disabled_without_key(self, async_client: AsyncClient) -> None:
        app.dependency_overrides[get_speech_service] = lambda: None

        response = await async_client.post("/stt", files={"audio": ("speech.webm", b"\x00\x01", "audio/webm")})

        assert response.json()["text"].startswith("(STT disabled")

    async def test_transcription_failure_is_500(self, async_client: AsyncClient) -> None:
        speech = MagicMock()
        speech.transcribe = AsyncMock(side_effect=RuntimeError("bad audio"))
        app.dependency_overrides[get_speech_service] = lambda: speech

        response = await async_client.post("/stt", files={"audio": ("speech.webm", b"\x00", "audio/webm")})

        assert response.status_code == 500
