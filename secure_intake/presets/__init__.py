# secure_intake/presets/__init__.py
"""Pre-configured clients for known intake forms."""

from .pilot_access import (
    PilotAccessClient,
    RequestFormData,
    canonicalize_pilot_access_payload,
    create_pilot_access_client,
)

__all__ = [
    "PilotAccessClient",
    "RequestFormData",
    "canonicalize_pilot_access_payload",
    "create_pilot_access_client",
]
