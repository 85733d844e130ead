# secure_intake/envelope.py
"""
Secure Intake: Envelope Builder

Seals plaintext into a HybridEnvelope.

Construction (both suites):
    content_key  <- random(32)
    ciphertext   <- XSalsa20-Poly1305(content_key, content_nonce, plaintext)

    (esk, epk)   <- X25519 ephemeral
    k_classical  <- HKDF(X25519(esk, recipient_pk), salt=CLASSICAL_SALT, info=WRAP_INFO)
    x25519Wrap   <- XSalsa20-Poly1305(k_classical, nonce, content_key)

Hybrid only:
    (kem_ct, ss) <- StrongSuite.encapsulate(recipient_strong_pk)
    k_strong     <- HKDF(ss, salt=STRONG_SALT, info=WRAP_INFO)
    kyberWrap    <- XSalsa20-Poly1305(k_strong, nonce, content_key)

Wire compatibility:
    A classical envelope carries kyberKemCt and kyberWrap as empty strings,
    never null or absent, so one decrypt path can branch on field
    emptiness rather than on the suite tag. open_envelope() is that path.

Usage:
    env = seal_classical(plaintext, recipient_x25519_hex)
    wire = env.to_json()
    env = HybridEnvelope.from_json(wire)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .errors import DecryptionError, EncapsulationFailedError, InvalidKeyError
from .primitives import (
    AEAD_NAME,
    KEY_BYTES,
    NONCE_BYTES,
    b64,
    from_b64,
    from_hex,
    hkdf_sha256,
    parse_x25519_public,
    random_bytes,
    secretbox_open,
    secretbox_seal,
    to_hex,
    x25519_keypair,
    x25519_shared,
)
from .strong_suite import StrongSuite


# =============================================================================
# Constants
# =============================================================================

ENVELOPE_VERSION = "secure-intake.hybrid.v1"

SUITE_HYBRID = "hybrid"
SUITE_CLASSICAL = "classical"

# Domain separation for the two wrapping-key derivations
CLASSICAL_SALT = b"secure-intake/x25519/v1"
STRONG_SALT = b"secure-intake/ml-kem/v1"
WRAP_INFO = b"content-key-wrap"


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class WrappedKey:
    """Content key sealed under a wrapping key. Empty strings = not present."""
    nonce: str = ""
    wrapped: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.nonce or not self.wrapped

    def to_dict(self) -> Dict[str, str]:
        return {"nonce": self.nonce, "wrapped": self.wrapped}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WrappedKey":
        data = data or {}
        return cls(nonce=data.get("nonce") or "", wrapped=data.get("wrapped") or "")


@dataclass(frozen=True)
class EnvelopeMeta:
    """Non-sensitive metadata."""
    created_at: str
    sender_name: Optional[str] = None
    sender_id: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        meta = {"createdAt": self.created_at}
        if self.sender_name is not None:
            meta["senderName"] = self.sender_name
        if self.sender_id is not None:
            meta["senderId"] = self.sender_id
        return meta

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnvelopeMeta":
        return cls(
            created_at=data.get("createdAt", ""),
            sender_name=data.get("senderName"),
            sender_id=data.get("senderId"),
        )


@dataclass(frozen=True)
class HybridEnvelope:
    """
    Versioned sealed container handed to the transport.

    Attributes:
        v: Envelope protocol version
        suite: "hybrid" or "classical"
        aead: AEAD identifier
        x25519_epk: Ephemeral X25519 public value (hex)
        x25519_wrap: Classical wrap (always populated)
        kyber_kem_ct: Strong-suite KEM ciphertext (base64, "" if classical)
        kyber_wrap: Strong-suite wrap (empty if classical)
        content_nonce: base64
        ciphertext: base64
        meta: Creation time and optional sender hints
    """
    v: str
    suite: str
    aead: str
    x25519_epk: str
    x25519_wrap: WrappedKey
    kyber_kem_ct: str
    kyber_wrap: WrappedKey
    content_nonce: str
    ciphertext: str
    meta: EnvelopeMeta = field(default_factory=lambda: EnvelopeMeta(_now_iso()))

    @property
    def has_strong_wrap(self) -> bool:
        return bool(self.kyber_kem_ct) and not self.kyber_wrap.is_empty

    def to_dict(self) -> Dict[str, Any]:
        return {
            "v": self.v,
            "suite": self.suite,
            "aead": self.aead,
            "x25519Epk": self.x25519_epk,
            "x25519Wrap": self.x25519_wrap.to_dict(),
            "kyberKemCt": self.kyber_kem_ct,
            "kyberWrap": self.kyber_wrap.to_dict(),
            "contentNonce": self.content_nonce,
            "ciphertext": self.ciphertext,
            "meta": self.meta.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HybridEnvelope":
        return cls(
            v=data["v"],
            suite=data["suite"],
            aead=data["aead"],
            x25519_epk=data["x25519Epk"],
            x25519_wrap=WrappedKey.from_dict(data.get("x25519Wrap")),
            kyber_kem_ct=data.get("kyberKemCt") or "",
            kyber_wrap=WrappedKey.from_dict(data.get("kyberWrap")),
            content_nonce=data["contentNonce"],
            ciphertext=data["ciphertext"],
            meta=EnvelopeMeta.from_dict(data.get("meta") or {}),
        )

    @classmethod
    def from_json(cls, text: str) -> "HybridEnvelope":
        return cls.from_dict(json.loads(text))


def _now_iso() -> str:
    """UTC ISO-8601 with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


# =============================================================================
# Sealing
# =============================================================================

def _seal_content(plaintext: bytes) -> Tuple[bytes, bytes, bytes]:
    content_key = random_bytes(KEY_BYTES)
    content_nonce = random_bytes(NONCE_BYTES)
    ciphertext = secretbox_seal(content_key, plaintext, content_nonce)
    return content_key, content_nonce, ciphertext


def _wrap(wrapping_key: bytes, content_key: bytes) -> WrappedKey:
    nonce = random_bytes(NONCE_BYTES)
    return WrappedKey(
        nonce=b64(nonce),
        wrapped=b64(secretbox_seal(wrapping_key, content_key, nonce)),
    )


def _wrap_classical(recipient_pk: bytes, content_key: bytes) -> Tuple[str, WrappedKey]:
    esk, epk = x25519_keypair()
    shared = x25519_shared(esk, recipient_pk)
    wrapping_key = hkdf_sha256(shared, salt=CLASSICAL_SALT, info=WRAP_INFO)
    return to_hex(epk), _wrap(wrapping_key, content_key)


def _meta(sender_name: Optional[str], sender_id: Optional[str]) -> EnvelopeMeta:
    return EnvelopeMeta(created_at=_now_iso(), sender_name=sender_name, sender_id=sender_id)


def seal_classical(
    plaintext: bytes,
    classical_public_hex: str,
    sender_name: Optional[str] = None,
    sender_id: Optional[str] = None,
) -> HybridEnvelope:
    """
    Seal with X25519 only.

    Raises:
        InvalidKeyError: Malformed recipient key
    """
    recipient_pk = parse_x25519_public(classical_public_hex)

    content_key, content_nonce, ciphertext = _seal_content(plaintext)
    epk_hex, classical_wrap = _wrap_classical(recipient_pk, content_key)

    return HybridEnvelope(
        v=ENVELOPE_VERSION,
        suite=SUITE_CLASSICAL,
        aead=AEAD_NAME,
        x25519_epk=epk_hex,
        x25519_wrap=classical_wrap,
        kyber_kem_ct="",
        kyber_wrap=WrappedKey(),
        content_nonce=b64(content_nonce),
        ciphertext=b64(ciphertext),
        meta=_meta(sender_name, sender_id),
    )


def seal_hybrid(
    plaintext: bytes,
    classical_public_hex: str,
    strong_public_b64: str,
    strong_suite: StrongSuite,
    sender_name: Optional[str] = None,
    sender_id: Optional[str] = None,
) -> HybridEnvelope:
    """
    Seal with X25519 plus the strong-suite KEM.

    Raises:
        InvalidKeyError: Malformed classical key
        EncapsulationFailedError: Strong-suite operation failed
    """
    recipient_pk = parse_x25519_public(classical_public_hex)
    try:
        strong_pk = from_b64(strong_public_b64)
    except (ValueError, TypeError) as e:
        raise EncapsulationFailedError(f"KEM public key rejected: {e}")

    content_key, content_nonce, ciphertext = _seal_content(plaintext)
    epk_hex, classical_wrap = _wrap_classical(recipient_pk, content_key)

    try:
        kem_ct, shared = strong_suite.encapsulate(strong_pk)
    except EncapsulationFailedError:
        raise
    except Exception as e:
        raise EncapsulationFailedError(f"{strong_suite.name} encapsulation failed: {e}")

    strong_key = hkdf_sha256(shared, salt=STRONG_SALT, info=WRAP_INFO)

    return HybridEnvelope(
        v=ENVELOPE_VERSION,
        suite=SUITE_HYBRID,
        aead=AEAD_NAME,
        x25519_epk=epk_hex,
        x25519_wrap=classical_wrap,
        kyber_kem_ct=b64(kem_ct),
        kyber_wrap=_wrap(strong_key, content_key),
        content_nonce=b64(content_nonce),
        ciphertext=b64(ciphertext),
        meta=_meta(sender_name, sender_id),
    )


# =============================================================================
# Opening (collector-compatible reference path)
# =============================================================================

def open_envelope(
    envelope: HybridEnvelope,
    classical_secret_hex: str,
    strong_secret: Optional[bytes] = None,
    strong_suite: Optional[StrongSuite] = None,
) -> bytes:
    """
    Recover plaintext from either envelope shape.

    Uses the strong wrap when its fields are non-empty and strong key
    material is supplied; otherwise the classical wrap.

    Raises:
        InvalidKeyError: Malformed secret key
        DecryptionError: Authentication failure or malformed fields
    """
    if envelope.aead != AEAD_NAME:
        raise DecryptionError(f"Unsupported AEAD: {envelope.aead}")

    try:
        if envelope.has_strong_wrap and strong_secret is not None and strong_suite is not None:
            shared = strong_suite.decapsulate(strong_secret, from_b64(envelope.kyber_kem_ct))
            wrapping_key = hkdf_sha256(shared, salt=STRONG_SALT, info=WRAP_INFO)
            wrap = envelope.kyber_wrap
        else:
            if envelope.x25519_wrap.is_empty:
                raise DecryptionError("Envelope has no classical wrap")
            try:
                secret = from_hex(classical_secret_hex)
            except ValueError:
                raise InvalidKeyError("X25519 secret key is not valid hex")
            shared = x25519_shared(secret, parse_x25519_public(envelope.x25519_epk))
            wrapping_key = hkdf_sha256(shared, salt=CLASSICAL_SALT, info=WRAP_INFO)
            wrap = envelope.x25519_wrap

        content_key = secretbox_open(wrapping_key, from_b64(wrap.wrapped), from_b64(wrap.nonce))
        return secretbox_open(
            content_key,
            from_b64(envelope.ciphertext),
            from_b64(envelope.content_nonce),
        )
    except EncapsulationFailedError as e:
        raise DecryptionError(str(e))
    except ValueError as e:
        raise DecryptionError(f"Malformed envelope field: {e}")
