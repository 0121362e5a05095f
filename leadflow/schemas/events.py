"""Queue event schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from leadflow.schemas.submissions import CamelModel

SUBMISSION_COMPLETED_EVENT = "submission.completed"


class SubmissionEvent(CamelModel):
    """State-change event handed from the gateway to the processor."""

    message_id: str = Field(..., min_length=1, max_length=255)
    event_type: Literal["submission.completed"] = SUBMISSION_COMPLETED_EVENT
    submission_id: str = Field(..., min_length=1, max_length=36)
    client_identity: str = Field(..., min_length=64, max_length=64)
    form_name: str | None = None
    occurred_at: datetime | None = None

    def digest_payload(self) -> dict:
        """Fields covered by the dedup content digest."""
        return {
            "event_type": self.event_type,
            "submission_id": self.submission_id,
            "client_identity": self.client_identity,
        }


class ProcessResponse(CamelModel):
    success: bool = True
    message_id: str
    processed: bool
    submission_id: str
    status: str | None = None
    submission_flag: str | None = None
