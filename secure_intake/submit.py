# secure_intake/submit.py
"""
Secure Intake: Submission Orchestrator

State Machine:
    START -> CANONICALIZED -> IDENTIFIED -> RATE_CHECKED -> CAPABILITY_CHECKED
          -> POLICY_RESOLVED -> SIZE_GUARDED -> PENDING -> TRANSMITTED
          -> {CREATED | DUPLICATE | CLIENT_REJECTED | SERVER_FAILURE | NETWORK_FAILURE}

Pending-record handling per outcome:
    CREATED / DUPLICATE          cleared, rate-limit usage recorded (not for retries)
    4xx                          cleared (blind retry cannot succeed)
    2xx with ok=false            kept, unless the body says retryable=false
    5xx / unrecognized / network kept (manual retry is recognized)
    any client-side rejection    never written

Status is normalized to "created" unless the collector says "duplicate".

Outer wire object:
    {"v": <config.version>, "id": <64 hex>, "pqcUsed": <bool>,
     "encrypted": <HybridEnvelope JSON string>}

Usage:
    client = SecureIntakeClient(config)
    result = await client.submit(form_data)
    if result.ok:
        print(result.id, result.status)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional

from .capability import CapabilityDetector, CryptoCapability
from .config import IntakeConfig
from .errors import (
    BuilderFailure,
    CapabilityMissingError,
    InvalidPayloadError,
    PayloadTooLargeError,
    PolicyRejection,
    RateLimitedError,
)
from .identifier import generate_request_id, serialize_canonical
from .pending import PendingStore, ScopedStorage, wall_clock_ms
from .policy import DowngradeEvent, SealPolicy
from .ratelimit import RateLimiter
from .strong_suite import StrongSuiteLoader
from .transport import JSON_HEADERS, HTTPTransport, HttpxTransport, TransportResponse

logger = logging.getLogger(__name__)


# =============================================================================
# States / Results
# =============================================================================

class SubmissionState(Enum):
    START = auto()
    CANONICALIZED = auto()
    IDENTIFIED = auto()
    RATE_CHECKED = auto()
    CAPABILITY_CHECKED = auto()
    POLICY_RESOLVED = auto()
    SIZE_GUARDED = auto()
    PENDING = auto()
    TRANSMITTED = auto()
    CREATED = auto()
    DUPLICATE = auto()
    CLIENT_REJECTED = auto()
    SERVER_FAILURE = auto()
    NETWORK_FAILURE = auto()


@dataclass
class SubmitResult:
    """
    Terminal outcome of one submission attempt.

    Success: ok=True, id, status ("created" | "duplicate").
    Failure: ok=False, error (plain user-facing string).
    """
    ok: bool
    outcome: SubmissionState
    id: str = ""
    status: Optional[str] = None
    error: Optional[str] = None
    pqc_used: bool = False
    downgrade: Optional[DowngradeEvent] = None

    @classmethod
    def success(cls, id: str, status: str, outcome: SubmissionState, **kwargs) -> "SubmitResult":
        return cls(ok=True, outcome=outcome, id=id, status=status, **kwargs)

    @classmethod
    def failure(cls, error: str, outcome: SubmissionState, **kwargs) -> "SubmitResult":
        return cls(ok=False, outcome=outcome, error=error, **kwargs)


# =============================================================================
# Context
# =============================================================================

@dataclass
class IntakeContext:
    """
    Process-scoped mutable state shared by submissions: capability cache,
    rate-limit timeline, pending store and the strong-suite cell.
    """
    capability: CapabilityDetector = field(default_factory=CapabilityDetector)
    rate_limiter: RateLimiter = field(default_factory=RateLimiter)
    pending: PendingStore = field(default_factory=PendingStore)
    strong_suite: StrongSuiteLoader = field(default_factory=StrongSuiteLoader)

    @classmethod
    def create(
        cls,
        storage: Optional[ScopedStorage] = None,
        clock: Optional[Callable[[], float]] = None,
        loader: Optional[StrongSuiteLoader] = None,
        capability: Optional[CapabilityDetector] = None,
    ) -> "IntakeContext":
        """Build a context; one clock (millis) drives pending TTL and rate limiting."""
        clock = clock or wall_clock_ms
        return cls(
            capability=capability or CapabilityDetector(),
            rate_limiter=RateLimiter(clock=clock),
            pending=PendingStore(storage=storage, clock=clock),
            strong_suite=loader or StrongSuiteLoader(),
        )

    def reset(self) -> None:
        self.capability.reset()
        self.rate_limiter.reset()
        self.strong_suite.reset()


_default_context: Optional[IntakeContext] = None


def get_default_context() -> IntakeContext:
    global _default_context
    if _default_context is None:
        _default_context = IntakeContext.create()
    return _default_context


def reset_default_context() -> None:
    global _default_context
    _default_context = None


# =============================================================================
# Orchestrator
# =============================================================================

class SecureIntakeClient:
    """
    Secure submission client.

    Args:
        config: IntakeConfig
        context: Shared state (defaults to the process-wide context)
        transport: HTTP transport (defaults to HttpxTransport)
    """

    def __init__(
        self,
        config: IntakeConfig,
        context: Optional[IntakeContext] = None,
        transport: Optional[HTTPTransport] = None,
    ):
        self._config = config
        self._context = context or get_default_context()
        self._transport = transport or HttpxTransport()
        self.state = SubmissionState.START

    @property
    def config(self) -> IntakeConfig:
        return self._config

    @property
    def context(self) -> IntakeContext:
        return self._context

    def _transition(self, state: SubmissionState) -> None:
        logger.debug("submission %s -> %s", self.state.name, state.name)
        self.state = state

    def _reject(self, error: PolicyRejection, **kwargs) -> SubmitResult:
        self._transition(SubmissionState.CLIENT_REJECTED)
        logger.info("Submission rejected: %s", error)
        return SubmitResult.failure(str(error), SubmissionState.CLIENT_REJECTED, **kwargs)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def check_capability(self, force: bool = False) -> CryptoCapability:
        return self._context.capability.check(force=force)

    def reset_capability(self) -> None:
        self._context.capability.reset()

    def generate_id(self, payload: Any) -> str:
        """Request ID for a payload without submitting it."""
        return generate_request_id(self._config.canonicalize(payload))

    async def submit(self, payload: Any, honeypot: Optional[str] = None) -> SubmitResult:
        """
        Canonicalize, seal and deliver one payload.

        Args:
            payload: Raw form data, passed to config.canonicalize
            honeypot: Hidden-field value; non-empty means a bot

        Returns:
            SubmitResult (never raises for policy, size, or transport failures)
        """
        cfg = self._config
        ctx = self._context
        self.state = SubmissionState.START

        # Bots fill hidden fields: fake success, touch nothing
        if honeypot:
            logger.info("Honeypot triggered; dropping submission")
            self._transition(SubmissionState.CREATED)
            return SubmitResult.success("", "created", SubmissionState.CREATED)

        try:
            canonical = cfg.canonicalize(payload)
            plaintext = serialize_canonical(canonical)
        except Exception as e:
            logger.debug("Canonicalization failed", exc_info=True)
            return self._reject(InvalidPayloadError(f"{type(e).__name__}: {e}"))
        self._transition(SubmissionState.CANONICALIZED)

        request_id = generate_request_id(canonical)
        self._transition(SubmissionState.IDENTIFIED)

        is_retry = ctx.pending.is_retry(request_id, cfg.storage_key, cfg.pending_ttl_ms)
        if not ctx.rate_limiter.admit(cfg.rate_limit, is_retry):
            return self._reject(RateLimitedError())
        self._transition(SubmissionState.RATE_CHECKED)

        capability = ctx.capability.check()
        if not capability.available:
            return self._reject(CapabilityMissingError(capability.diagnostic or "Missing primitives"))
        self._transition(SubmissionState.CAPABILITY_CHECKED)

        if len(plaintext) > cfg.max_plaintext_bytes:
            return self._reject(PayloadTooLargeError(len(plaintext), cfg.max_plaintext_bytes))

        policy = SealPolicy(
            require_strong_suite=cfg.require_strong_suite,
            attempt_strong_suite=cfg.attempt_strong_suite,
            debug_downgrade=cfg.debug_downgrade,
        )
        try:
            sealed = policy.seal(
                plaintext,
                cfg.public_keys,
                ctx.strong_suite,
                ctx.capability,
                sender_name=cfg.sender_name,
                sender_id=cfg.sender_id,
            )
        except PolicyRejection as e:
            return self._reject(e)
        except BuilderFailure as e:
            logger.error("Envelope construction failed: %s", e)
            self._transition(SubmissionState.CLIENT_REJECTED)
            return SubmitResult.failure(str(e), SubmissionState.CLIENT_REJECTED)
        self._transition(SubmissionState.POLICY_RESOLVED)

        if sealed.downgrade is not None:
            self._emit_downgrade(sealed.downgrade)

        outer = json.dumps({
            "v": cfg.version,
            "id": request_id,
            "pqcUsed": sealed.pqc_used,
            "encrypted": sealed.envelope.to_json(),
        }, separators=(",", ":")).encode("utf-8")

        extras = {"pqc_used": sealed.pqc_used, "downgrade": sealed.downgrade}
        if len(outer) > cfg.max_envelope_bytes:
            return self._reject(
                PayloadTooLargeError(len(outer), cfg.max_envelope_bytes, encrypted=True),
                **extras,
            )
        self._transition(SubmissionState.SIZE_GUARDED)

        # Before the network call, so an interrupted attempt is still a retry
        ctx.pending.set_pending_identifier(request_id, cfg.storage_key)
        self._transition(SubmissionState.PENDING)

        try:
            response = await self._transport.post(cfg.endpoint, outer, dict(JSON_HEADERS))
        except Exception as e:
            logger.error("Intake submission error: %s", e)
            self._transition(SubmissionState.NETWORK_FAILURE)
            return SubmitResult.failure(
                str(e) or "Submission failed. Please try again.",
                SubmissionState.NETWORK_FAILURE,
                id=request_id,
                **extras,
            )
        self._transition(SubmissionState.TRANSMITTED)

        return self._classify(response, request_id, is_retry, extras)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _emit_downgrade(self, event: DowngradeEvent) -> None:
        logger.warning("Encryption downgraded to classical suite: %s", event.to_dict())
        hook = self._config.on_downgrade
        if hook is None:
            return
        try:
            hook(event)
        except Exception:
            logger.exception("on_downgrade hook raised")

    def _classify(
        self,
        response: TransportResponse,
        request_id: str,
        is_retry: bool,
        extras: dict,
    ) -> SubmitResult:
        cfg = self._config
        ctx = self._context
        body = response.json()

        if response.is_success and body is not None and "ok" in body:
            if body["ok"] is True:
                ctx.pending.clear(cfg.storage_key)
                # retries never consume quota
                if not is_retry:
                    ctx.rate_limiter.record()
                status = "duplicate" if body.get("status") == "duplicate" else "created"
                outcome = (
                    SubmissionState.DUPLICATE if status == "duplicate"
                    else SubmissionState.CREATED
                )
                self._transition(outcome)
                return SubmitResult.success(body.get("id") or request_id, status, outcome, **extras)

            if body.get("retryable") is False:
                ctx.pending.clear(cfg.storage_key)
            self._transition(SubmissionState.SERVER_FAILURE)
            return SubmitResult.failure(
                body.get("error") or "Unknown error",
                SubmissionState.SERVER_FAILURE,
                id=request_id,
                **extras,
            )

        if response.is_client_error:
            ctx.pending.clear(cfg.storage_key)
            self._transition(SubmissionState.CLIENT_REJECTED)
            error = (body or {}).get("error") or f"Request error: {response.status}"
            return SubmitResult.failure(error, SubmissionState.CLIENT_REJECTED, id=request_id, **extras)

        self._transition(SubmissionState.SERVER_FAILURE)
        error = (body or {}).get("error") or f"Server error: {response.status}. Please try again."
        return SubmitResult.failure(error, SubmissionState.SERVER_FAILURE, id=request_id, **extras)


async def submit_secure_intake(
    payload: Any,
    config: IntakeConfig,
    honeypot: Optional[str] = None,
    context: Optional[IntakeContext] = None,
    transport: Optional[HTTPTransport] = None,
) -> SubmitResult:
    """One-shot submission with a throwaway client."""
    client = SecureIntakeClient(config, context=context, transport=transport)
    return await client.submit(payload, honeypot=honeypot)
