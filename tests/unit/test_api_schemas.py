"""Unit tests for API response models and error-status mapping."""

from __future__ import annotations

from pdfchat.api.middleware import status_for_error
from pdfchat.api.schemas import QueryResponse, SourceReference, UploadResponse
from pdfchat.models.rag import Answer, DocumentChunk
from pdfchat.utils.errors import (
    ConfigurationError,
    DeadlineExceededError,
    EmbeddingUnavailableError,
    FileUnreadableError,
    QueueUnavailableError,
)


def _chunk(text: str, page: int | None = 2) -> DocumentChunk:
    return DocumentChunk(text=text, source_document="guide.pdf", page_number=page, sequence_index=4)


class TestSchemas:
    def test_upload_response_uses_camel_case(self) -> None:
        body = UploadResponse(job_id="abc", file_name="guide.pdf").model_dump(by_alias=True)
        assert body == {"message": "uploaded", "jobId": "abc", "fileName": "guide.pdf"}

    def test_short_excerpt_kept_verbatim(self) -> None:
        ref = SourceReference.from_chunk(_chunk("Streams are event emitters."))
        assert ref.excerpt == "Streams are event emitters."
        assert ref.model_dump(by_alias=True)["documentName"] == "guide.pdf"

    def test_long_excerpt_cut_at_word_boundary(self) -> None:
        ref = SourceReference.from_chunk(_chunk("streaming " * 60))
        assert ref.excerpt.endswith("streaming...")
        assert len(ref.excerpt) <= 243

    def test_query_response_keeps_source_order(self) -> None:
        answer = Answer(
            text="Streams are event emitters.",
            sources=[_chunk("first"), _chunk("second", page=None)],
        )
        body = QueryResponse.from_answer(answer).model_dump(by_alias=True)
        assert body["answerText"] == "Streams are event emitters."
        assert [s["excerpt"] for s in body["sources"]] == ["first", "second"]
        assert body["sources"][1]["pageNumber"] is None


class TestStatusForError:
    def test_transient_errors_are_503(self) -> None:
        assert status_for_error(EmbeddingUnavailableError())[0] == 503
        assert status_for_error(QueueUnavailableError())[0] == 503

    def test_deadline_is_504(self) -> None:
        assert status_for_error(DeadlineExceededError())[0] == 504

    def test_terminal_input_is_422(self) -> None:
        assert status_for_error(FileUnreadableError())[0] == 422

    def test_everything_else_is_500(self) -> None:
        assert status_for_error(ConfigurationError())[0] == 500
        assert status_for_error(RuntimeError("boom"))[0] == 500

    def test_detail_never_echoes_provider_message(self) -> None:
        _, detail = status_for_error(EmbeddingUnavailableError(message="key sk-123 rejected"))
        assert "sk-123" not in detail
