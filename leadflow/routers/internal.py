"""
Internal endpoints for out-of-band processing.

Protected by X-Internal-Secret header. POST /process mirrors a
queue-delivered submission.completed event.
"""

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from leadflow.core.deps import get_clients, get_db
from leadflow.core.errors import SecurityError, ValidationError
from leadflow.core.security import verify_internal_secret
from leadflow.db.enums import SecurityEventType
from leadflow.schemas.events import ProcessResponse, SubmissionEvent
from leadflow.schemas.submissions import to_validation_error
from leadflow.services import audit_service, processor_service
from leadflow.services.clients import ExternalClients

router = APIRouter(tags=["internal"])


@router.post("/process")
async def process_event(
    request: Request,
    x_internal_secret: str | None = Header(None),
    db: Session = Depends(get_db),
    clients: ExternalClients = Depends(get_clients),
):
    if not verify_internal_secret(x_internal_secret):
        audit_service.log_security_event(
            db,
            SecurityEventType.INTERNAL_SECRET_INVALID,
            ip_address=audit_service.get_client_ip(request),
            user_agent=audit_service.get_user_agent(request),
            details={"path": request.url.path},
        )
        raise SecurityError("Invalid internal secret")

    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    try:
        event = SubmissionEvent.model_validate(body)
    except PydanticValidationError as exc:
        raise to_validation_error(exc) from exc

    outcome = await processor_service.process_submission_event(db, event, clients)
    return ProcessResponse(
        message_id=outcome.message_id,
        processed=outcome.processed,
        submission_id=outcome.submission_id,
        status=outcome.status,
        submission_flag=outcome.submission_flag,
    ).model_dump(mode="json", by_alias=True, exclude_none=True)
