# secure_intake/config.py
"""
Secure Intake Configuration

Usage:
    config = IntakeConfig(
        endpoint="https://collector.example.com/api/intake",
        public_keys=HybridPublicKeys.from_env(),
        canonicalize=my_canonicalizer,
        rate_limit=RateLimitConfig(max=2, window_ms=60_000),
    )

    # or from a camelCase option mapping
    config = IntakeConfig.from_mapping({
        "endpoint": "/api/intake",
        "publicKeys": {"classical": "...", "strong": "..."},
        "canonicalize": my_canonicalizer,
        "rateLimit": False,
    })
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import ConfigError
from .normalize import Canonicalizer


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_VERSION = "secure-intake.v1"
DEFAULT_MAX_PLAINTEXT_BYTES = 32 * 1024
DEFAULT_MAX_ENVELOPE_BYTES = 56 * 1024   # headroom under a 64KB server limit
DEFAULT_PENDING_TTL_MS = 5 * 60 * 1000
DEFAULT_STORAGE_KEY = "secure-intake.pending"
DEFAULT_RATE_LIMIT_MAX = 2
DEFAULT_RATE_LIMIT_WINDOW_MS = 60 * 1000

ENV_CLASSICAL_PUB = "SECURE_INTAKE_CLASSICAL_PUB_HEX"
ENV_STRONG_PUB = "SECURE_INTAKE_STRONG_PUB_B64"


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class HybridPublicKeys:
    """
    Recipient public keys.

    Attributes:
        classical: X25519 public key, hex
        strong: Strong-suite (ML-KEM) public key, base64
    """
    classical: str
    strong: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HybridPublicKeys":
        """Accepts {classical, strong} or {x25519PubHex, kyberPubB64}."""
        classical = data.get("classical", data.get("x25519PubHex"))
        strong = data.get("strong", data.get("kyberPubB64", ""))
        if not classical:
            raise ConfigError("publicKeys.classical is required")
        return cls(classical=classical, strong=strong or "")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HybridPublicKeys":
        env = os.environ if environ is None else environ
        classical = env.get(ENV_CLASSICAL_PUB, "")
        if not classical:
            raise ConfigError(f"{ENV_CLASSICAL_PUB} is not set")
        return cls(classical=classical, strong=env.get(ENV_STRONG_PUB, ""))


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window limit: at most `max` submissions per `window_ms`."""
    max: int = DEFAULT_RATE_LIMIT_MAX
    window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS

    def __post_init__(self):
        if self.max < 0:
            raise ConfigError("rate_limit.max must be >= 0")
        if self.window_ms <= 0:
            raise ConfigError("rate_limit.window_ms must be positive")


RateLimitSetting = Union[RateLimitConfig, bool, None]


@dataclass
class IntakeConfig:
    """
    Client configuration.

    rate_limit accepts a RateLimitConfig, False (disabled), or None / True
    for the default window.
    """
    endpoint: str
    public_keys: HybridPublicKeys
    canonicalize: Canonicalizer
    version: str = DEFAULT_VERSION
    max_plaintext_bytes: int = DEFAULT_MAX_PLAINTEXT_BYTES
    max_envelope_bytes: int = DEFAULT_MAX_ENVELOPE_BYTES
    pending_ttl_ms: int = DEFAULT_PENDING_TTL_MS
    storage_key: str = DEFAULT_STORAGE_KEY
    rate_limit: RateLimitSetting = field(default_factory=RateLimitConfig)
    require_strong_suite: bool = False
    attempt_strong_suite: bool = True
    on_downgrade: Optional[Callable[[Any], None]] = None
    debug_downgrade: bool = False
    sender_name: Optional[str] = None
    sender_id: Optional[str] = None

    def __post_init__(self):
        if not self.endpoint:
            raise ConfigError("endpoint is required")
        if isinstance(self.public_keys, Mapping):
            self.public_keys = HybridPublicKeys.from_mapping(self.public_keys)
        if not callable(self.canonicalize):
            raise ConfigError("canonicalize must be callable")
        if self.max_plaintext_bytes <= 0 or self.max_envelope_bytes <= 0:
            raise ConfigError("size limits must be positive")
        if self.pending_ttl_ms <= 0:
            raise ConfigError("pending_ttl_ms must be positive")
        if self.rate_limit is None or self.rate_limit is True:
            self.rate_limit = RateLimitConfig()
        elif isinstance(self.rate_limit, Mapping):
            self.rate_limit = RateLimitConfig(
                max=self.rate_limit.get("max", DEFAULT_RATE_LIMIT_MAX),
                window_ms=self.rate_limit.get("windowMs", DEFAULT_RATE_LIMIT_WINDOW_MS),
            )
        # strictness is only ever enabled by an explicit True
        self.require_strong_suite = self.require_strong_suite is True

    # camelCase option name -> field name
    _OPTION_NAMES = {
        "endpoint": "endpoint",
        "publicKeys": "public_keys",
        "canonicalize": "canonicalize",
        "version": "version",
        "maxPlaintextBytes": "max_plaintext_bytes",
        "maxEnvelopeBytes": "max_envelope_bytes",
        "pendingTtlMs": "pending_ttl_ms",
        "storageKey": "storage_key",
        "rateLimit": "rate_limit",
        "requireStrongSuite": "require_strong_suite",
        "attemptStrongSuite": "attempt_strong_suite",
        "onDowngrade": "on_downgrade",
        "debugDowngrade": "debug_downgrade",
        "senderName": "sender_name",
        "senderId": "sender_id",
    }

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "IntakeConfig":
        """Build from camelCase (or snake_case) options. Unknown keys are rejected."""
        kwargs: Dict[str, Any] = {}
        known = set(cls._OPTION_NAMES.values())
        for key, value in options.items():
            name = cls._OPTION_NAMES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown option: {key}")
            if value is None and name != "rate_limit":
                continue
            kwargs[name] = value
        for required in ("endpoint", "public_keys", "canonicalize"):
            if required not in kwargs:
                raise ConfigError(f"{required} is required")
        return cls(**kwargs)
