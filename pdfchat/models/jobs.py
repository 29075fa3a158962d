"""Upload job and worker outcome models.

An :class:`UploadJob` travels through the broker as JSON text.  Delivery
is at-least-once, so the same job can be handed to a worker more than
once; ``attempts`` records how many deliveries have already been used up.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pdfchat.utils.errors import MalformedJobError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadJob(BaseModel):
    """A request to ingest one stored upload."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    file_name: str = Field(min_length=1, description="Original name of the uploaded file.")
    storage_path: str = Field(min_length=1, description="Where the upload was written on disk.")
    received_at: datetime = Field(default_factory=_utcnow)
    attempts: int = Field(default=0, ge=0, description="Deliveries already consumed.")
    delivery_id: str = Field(
        default="",
        description="Stamped by the broker on every push so no two queued copies share a payload.",
    )

    def to_payload(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_payload(cls, payload: str) -> UploadJob:
        """Decode a queue payload.

        Raises
        ------
        MalformedJobError
            If the payload is not valid JSON or lacks required fields.
        """
        try:
            return cls.model_validate_json(payload)
        except ValidationError as exc:
            raise MalformedJobError(
                message=f"Cannot decode upload job: {exc.error_count()} validation error(s)",
                provider_name="queue",
            ) from exc

    def with_attempt(self) -> UploadJob:
        return self.model_copy(update={"attempts": self.attempts + 1})

    def stamped(self) -> UploadJob:
        """Return a copy carrying a fresh ``delivery_id``."""
        return self.model_copy(update={"delivery_id": uuid.uuid4().hex})


class DeadLetterEntry(BaseModel):
    """A job that will not be processed again without manual action."""

    model_config = ConfigDict(frozen=True)

    job: UploadJob | None = Field(
        default=None, description="Decoded job, or None when the payload was malformed."
    )
    raw_payload: str = Field(description="Payload exactly as it was read from the queue.")
    error_kind: str = Field(description="Class name of the error that stopped processing.")
    error_message: str = ""
    attempts: int = Field(default=0, ge=0)
    failed_at: datetime = Field(default_factory=_utcnow)

    @property
    def file_name(self) -> str | None:
        return self.job.file_name if self.job else None


class JobStatus(str, Enum):
    COMPLETED = "completed"
    REQUEUED = "requeued"
    DEAD_LETTERED = "dead_lettered"


class JobOutcome(BaseModel):
    """What a worker did with one delivery."""

    model_config = ConfigDict(frozen=True)

    status: JobStatus
    job_id: str | None = None
    file_name: str | None = None
    chunk_count: int = 0
    attempts: int = 0
    error_kind: str | None = None


class QueueDepth(BaseModel):
    """Number of jobs in each state of the broker."""

    model_config = ConfigDict(frozen=True)

    pending: int = 0
    processing: int = 0
    dead: int = 0
