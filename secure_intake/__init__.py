# secure_intake/__init__.py
"""
Secure Intake: Post-Quantum Encrypted Form Submission Client

Turns a form payload into a sealed envelope, picks the key-establishment
suite under a configurable policy, and delivers it idempotently.

- Hybrid sealing: X25519 + ML-KEM-768 (liboqs, loaded lazily)
- Classical fallback with structured downgrade events
- Strict mode (require_strong_suite) fails closed
- Content-addressed request IDs (BLAKE3 of canonical JSON)
- Pending-submission tracking for retry-without-duplication
- Sliding-window rate limiting (retries bypass)

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │  secure_intake                                           │
    │  ├── primitives.py    # randomness, BLAKE3, HKDF, AEAD   │
    │  ├── normalize.py     # canonicalizer helpers            │
    │  ├── identifier.py    # request IDs                      │
    │  ├── capability.py    # capability cache                 │
    │  ├── strong_suite.py  # lazy ML-KEM cell                 │
    │  ├── envelope.py      # classical / hybrid seal          │
    │  ├── policy.py        # seal decision + downgrade        │
    │  ├── pending.py       # idempotency store                │
    │  ├── ratelimit.py     # sliding window                   │
    │  ├── transport.py     # HTTP transport                   │
    │  ├── submit.py        # orchestrator                     │
    │  └── presets/         # form-specific clients            │
    └──────────────────────────────────────────────────────────┘

Quick Start:
    import asyncio
    from secure_intake import IntakeConfig, HybridPublicKeys, SecureIntakeClient
    from secure_intake import normalize_email

    config = IntakeConfig(
        endpoint="https://collector.example.com/api/intake",
        public_keys=HybridPublicKeys(classical=x25519_hex, strong=mlkem_b64),
        canonicalize=lambda p: {"email": normalize_email(p["email"]), "note": p["note"]},
    )
    result = asyncio.run(SecureIntakeClient(config).submit(form))

Nothing in this package imports the post-quantum library at import time.
"""

__version__ = "0.1.0"

# =============================================================================
# Orchestrator
# =============================================================================

from .submit import (
    SecureIntakeClient,
    IntakeContext,
    SubmitResult,
    SubmissionState,
    submit_secure_intake,
    get_default_context,
    reset_default_context,
)

# =============================================================================
# Configuration
# =============================================================================

from .config import (
    IntakeConfig,
    HybridPublicKeys,
    RateLimitConfig,
    DEFAULT_VERSION,
    DEFAULT_STORAGE_KEY,
)

# =============================================================================
# Crypto
# =============================================================================

from .capability import CapabilityDetector, CryptoCapability
from .strong_suite import StrongSuite, StrongSuiteLoader, OqsKem, DEFAULT_KEM_ALGORITHM
from .envelope import (
    HybridEnvelope,
    WrappedKey,
    EnvelopeMeta,
    ENVELOPE_VERSION,
    seal_classical,
    seal_hybrid,
    open_envelope,
)
from .policy import (
    SealPolicy,
    SealOutcome,
    SealState,
    DowngradeEvent,
    DowngradeReason,
    classify_failure,
)

# =============================================================================
# Identifiers / Normalization
# =============================================================================

from .identifier import generate_request_id, serialize_canonical
from .normalize import normalize_email, normalize_multiline, normalize_string_array

# =============================================================================
# Idempotency / Rate limiting / Transport
# =============================================================================

from .pending import PendingStore, PendingSubmission, ScopedStorage, MemoryStorage, JSONFileStorage
from .ratelimit import RateLimiter
from .transport import HTTPTransport, HttpxTransport, MockHTTPTransport, TransportResponse

# =============================================================================
# Errors
# =============================================================================

from .errors import (
    IntakeError,
    PolicyRejection,
    StrictModeRejection,
    RateLimitedError,
    PayloadTooLargeError,
    InvalidPayloadError,
    CapabilityMissingError,
    BuilderFailure,
    InvalidKeyError,
    DecryptionError,
    StrongSuiteError,
    ModuleUnavailableError,
    EncapsulationFailedError,
    ConfigError,
)

__all__ = [
    # Orchestrator
    "SecureIntakeClient",
    "IntakeContext",
    "SubmitResult",
    "SubmissionState",
    "submit_secure_intake",
    "get_default_context",
    "reset_default_context",

    # Configuration
    "IntakeConfig",
    "HybridPublicKeys",
    "RateLimitConfig",
    "DEFAULT_VERSION",
    "DEFAULT_STORAGE_KEY",

    # Crypto
    "CapabilityDetector",
    "CryptoCapability",
    "StrongSuite",
    "StrongSuiteLoader",
    "OqsKem",
    "DEFAULT_KEM_ALGORITHM",
    "HybridEnvelope",
    "WrappedKey",
    "EnvelopeMeta",
    "ENVELOPE_VERSION",
    "seal_classical",
    "seal_hybrid",
    "open_envelope",
    "SealPolicy",
    "SealOutcome",
    "SealState",
    "DowngradeEvent",
    "DowngradeReason",
    "classify_failure",

    # Identifiers
    "generate_request_id",
    "serialize_canonical",
    "normalize_email",
    "normalize_multiline",
    "normalize_string_array",

    # Idempotency / Rate limiting / Transport
    "PendingStore",
    "PendingSubmission",
    "ScopedStorage",
    "MemoryStorage",
    "JSONFileStorage",
    "RateLimiter",
    "HTTPTransport",
    "HttpxTransport",
    "MockHTTPTransport",
    "TransportResponse",

    # Errors
    "IntakeError",
    "PolicyRejection",
    "StrictModeRejection",
    "RateLimitedError",
    "PayloadTooLargeError",
    "InvalidPayloadError",
    "CapabilityMissingError",
    "BuilderFailure",
    "InvalidKeyError",
    "DecryptionError",
    "StrongSuiteError",
    "ModuleUnavailableError",
    "EncapsulationFailedError",
    "ConfigError",
]
