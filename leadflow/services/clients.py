"""Outbound collaborators used by the gateway and the processor."""

from __future__ import annotations

from dataclasses import dataclass

from leadflow.services.captcha_service import TurnstileVerifier
from leadflow.services.enrichment_service import EnrichmentWaterfall, build_waterfall
from leadflow.services.marketing_service import MarketingClient
from leadflow.services.provisioning_service import ProvisioningClient
from leadflow.services.verification_service import HttpVerificationChannel, VerificationChannelClient


@dataclass
class ExternalClients:
    captcha: TurnstileVerifier
    verification_channel: VerificationChannelClient
    enrichment: EnrichmentWaterfall
    provisioning: ProvisioningClient
    marketing: MarketingClient


def build_clients() -> ExternalClients:
    """Collaborators configured from settings."""
    return ExternalClients(
        captcha=TurnstileVerifier(),
        verification_channel=HttpVerificationChannel(),
        enrichment=build_waterfall(),
        provisioning=ProvisioningClient(),
        marketing=MarketingClient(),
    )


_clients: ExternalClients | None = None


def get_clients() -> ExternalClients:
    """Process-wide collaborators, built from settings on first use."""
    global _clients
    if _clients is None:
        _clients = build_clients()
    return _clients
