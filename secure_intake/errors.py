# secure_intake/errors.py
"""
Secure Intake: Error Taxonomy

Every failure raised inside the package derives from IntakeError.

    IntakeError
    ├── PolicyRejection          - refused before any network effect
    │   ├── StrictModeRejection
    │   ├── RateLimitedError
    │   ├── PayloadTooLargeError
    │   ├── InvalidPayloadError
    │   └── CapabilityMissingError
    ├── BuilderFailure           - envelope could not be built / opened
    │   ├── InvalidKeyError
    │   └── DecryptionError
    ├── StrongSuiteError         - opaque strong-suite failure
    │   ├── ModuleUnavailableError
    │   └── EncapsulationFailedError
    └── ConfigError

The orchestrator turns these into failure SubmitResults; only
BuilderFailure subclasses escape the builder as exceptions.
"""

from __future__ import annotations


class IntakeError(Exception):
    """Base secure-intake error."""
    pass


# =============================================================================
# Policy rejections
# =============================================================================

class PolicyRejection(IntakeError):
    """Submission refused by client-side policy."""
    pass


class StrictModeRejection(PolicyRejection):
    """Strong suite required but could not be used."""
    def __init__(self, detail: str = ""):
        message = (
            "Post-quantum encryption is unavailable in this environment and "
            "this form requires strict hybrid mode. Your submission was not sent."
        )
        super().__init__(message)
        self.detail = detail


class RateLimitedError(PolicyRejection):
    """Sliding-window rate limit exceeded."""
    def __init__(self):
        super().__init__(
            "Too many submissions. Please wait a moment before trying again."
        )


class PayloadTooLargeError(PolicyRejection):
    """Plaintext or envelope exceeds its configured ceiling."""
    def __init__(self, size: int, limit: int, encrypted: bool = False):
        if encrypted:
            message = "Encrypted submission too large. Please shorten your responses."
        else:
            message = (
                f"Submission too large ({round(size / 1024)}KB). "
                "Please shorten your responses."
            )
        super().__init__(message)
        self.size = size
        self.limit = limit
        self.encrypted = encrypted


class InvalidPayloadError(PolicyRejection):
    """Canonicalizer failed or produced a value that is not valid JSON."""
    def __init__(self, detail: str = ""):
        super().__init__(
            "This submission could not be prepared. Please check your responses and try again."
        )
        self.detail = detail


class CapabilityMissingError(PolicyRejection):
    """Host lacks the primitives needed even for classical sealing."""
    def __init__(self, diagnostic: str):
        super().__init__(
            f"This environment cannot securely submit this form. {diagnostic}. "
            "Please install a supported libsodium build."
        )
        self.diagnostic = diagnostic


# =============================================================================
# Builder failures
# =============================================================================

class BuilderFailure(IntakeError):
    """Envelope construction or opening failed."""
    pass


class InvalidKeyError(BuilderFailure):
    """Malformed recipient or secret key."""
    def __init__(self, reason: str):
        super().__init__(f"Invalid key: {reason}")


class DecryptionError(BuilderFailure):
    """Envelope could not be opened with the supplied keys."""
    pass


# =============================================================================
# Strong-suite failures
# =============================================================================

class StrongSuiteError(IntakeError):
    """Opaque strong-suite failure; message is used only for classification."""
    pass


class ModuleUnavailableError(StrongSuiteError):
    """Strong-suite module could not be loaded."""
    pass


class EncapsulationFailedError(StrongSuiteError):
    """Strong-suite module loaded but the KEM operation failed."""
    pass


# =============================================================================
# Configuration
# =============================================================================

class ConfigError(IntakeError, ValueError):
    """Invalid client configuration."""
    pass
