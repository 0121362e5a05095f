"""Public signup endpoints: geolocation bootstrap and the step submission surface."""

import re
import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.core.deps import get_clients, get_db, get_geo_lookup
from leadflow.core.errors import SecurityError, ValidationError
from leadflow.core.geo import GeoLookup
from leadflow.core.rate_limit import limiter
from leadflow.core.security import is_trusted_origin, request_origin
from leadflow.db.enums import CountryClassification, SecurityEventType
from leadflow.schemas.public import BootstrapGeo, BootstrapResponse
from leadflow.schemas.submissions import parse_submit_payload
from leadflow.services import audit_service, policy_service, submission_service
from leadflow.services.clients import ExternalClients

router = APIRouter(tags=["signup"])

_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def _require_trusted_origin(request: Request, db: Session) -> str | None:
    origin = request_origin(request)
    if is_trusted_origin(origin):
        return origin
    audit_service.log_security_event(
        db,
        SecurityEventType.UNTRUSTED_ORIGIN,
        ip_address=audit_service.get_client_ip(request),
        user_agent=audit_service.get_user_agent(request),
        details={"origin": origin, "path": request.url.path},
    )
    raise SecurityError("Origin not allowed")


def _request_id(request: Request, payload_request_id: str | None) -> str:
    if payload_request_id:
        return payload_request_id
    header = request.headers.get("x-request-id")
    if header and _REQUEST_ID.match(header):
        return header
    return str(uuid.uuid4())


@router.get("/bootstrap", response_model=BootstrapResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def bootstrap(
    request: Request,
    campaign: str | None = Query(None, max_length=100),
    email: str | None = Query(None, max_length=254),
    db: Session = Depends(get_db),
    geo: GeoLookup = Depends(get_geo_lookup),
):
    """Caller geolocation and country verdict, echoing campaign/email for prefill."""
    _require_trusted_origin(request, db)
    location = geo.lookup(audit_service.get_client_ip(request))
    classification = policy_service.classify_country(db, location)
    return BootstrapResponse(
        geo=BootstrapGeo(
            country=location.country,
            region=location.region,
            country_type=classification.value,
            country_blocked=classification == CountryClassification.BLOCKED,
        ),
        campaign=campaign,
        email=email,
    )


@router.post("/submit")
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_SUBMIT}/minute")
async def submit(
    request: Request,
    db: Session = Depends(get_db),
    clients: ExternalClients = Depends(get_clients),
    geo: GeoLookup = Depends(get_geo_lookup),
):
    """Accept one signup step. The body's `step` selects the payload variant."""
    origin = _require_trusted_origin(request, db)
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    payload = parse_submit_payload(body)

    ip_address = audit_service.get_client_ip(request)
    ctx = submission_service.StepContext(
        request_id=_request_id(request, payload.request_id),
        ip_address=ip_address,
        user_agent=audit_service.get_user_agent(request),
        origin=origin,
        location=geo.lookup(ip_address),
    )
    response = await submission_service.accept_step(db, payload, ctx, clients)
    return response.to_wire()
