# secure_intake/presets/pilot_access.py
"""
Pilot-access request form preset.

Pre-configured client for the pilot access request form: supplies the
canonicalizer so callers only provide endpoint and keys.

Usage:
    client = create_pilot_access_client(
        endpoint="https://collector.example.com/api/intake",
        public_keys=HybridPublicKeys.from_env(),
    )
    result = await client.submit(form, kind="request_pilot_access")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..capability import CryptoCapability
from ..config import IntakeConfig
from ..identifier import generate_request_id
from ..normalize import normalize_email, normalize_multiline, normalize_string_array
from ..submit import IntakeContext, SecureIntakeClient, SubmitResult
from ..transport import HTTPTransport

REQUEST_ACCESS = "request_access"
REQUEST_PILOT_ACCESS = "request_pilot_access"
PILOT_ACCESS_KINDS = (REQUEST_ACCESS, REQUEST_PILOT_ACCESS)


@dataclass
class RequestFormData:
    email: str
    company: str
    system: str
    use_case: str
    timeline: str
    compliance: List[str] = field(default_factory=list)


def canonicalize_pilot_access_payload(
    data: RequestFormData,
    kind: str = REQUEST_PILOT_ACCESS,
) -> Dict[str, Any]:
    """Fixed field order; email, multiline and list fields normalized."""
    if kind not in PILOT_ACCESS_KINDS:
        raise ValueError(f"Unknown pilot access kind: {kind}")
    return {
        "kind": kind,
        "email": normalize_email(data.email),
        "company": data.company.strip(),
        "system": normalize_multiline(data.system),
        "useCase": data.use_case,
        "timeline": data.timeline,
        "compliance": normalize_string_array(data.compliance),
    }


class PilotAccessClient:
    """SecureIntakeClient bound to the pilot-access canonicalizer."""

    def __init__(
        self,
        context: Optional[IntakeContext] = None,
        transport: Optional[HTTPTransport] = None,
        **options: Any,
    ):
        self._options = options
        self._context = context
        self._transport = transport

    def _client(self, kind: str) -> SecureIntakeClient:
        config = IntakeConfig(
            canonicalize=lambda payload: canonicalize_pilot_access_payload(payload, kind),
            **self._options,
        )
        return SecureIntakeClient(config, context=self._context, transport=self._transport)

    async def submit(
        self,
        data: RequestFormData,
        kind: str = REQUEST_PILOT_ACCESS,
        honeypot: Optional[str] = None,
    ) -> SubmitResult:
        return await self._client(kind).submit(data, honeypot=honeypot)

    def check_capability(self, force: bool = False) -> CryptoCapability:
        return self._client(REQUEST_PILOT_ACCESS).check_capability(force=force)

    def reset_capability(self) -> None:
        self._client(REQUEST_PILOT_ACCESS).reset_capability()

    def generate_id(self, data: RequestFormData, kind: str = REQUEST_PILOT_ACCESS) -> str:
        return generate_request_id(canonicalize_pilot_access_payload(data, kind))


def create_pilot_access_client(
    context: Optional[IntakeContext] = None,
    transport: Optional[HTTPTransport] = None,
    **options: Any,
) -> PilotAccessClient:
    """
    Args:
        context: Shared state (defaults to the process-wide context)
        transport: HTTP transport
        **options: IntakeConfig fields except canonicalize
    """
    if "canonicalize" in options:
        raise TypeError("pilot access client supplies its own canonicalize")
    return PilotAccessClient(context=context, transport=transport, **options)
