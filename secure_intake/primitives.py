# secure_intake/primitives.py
"""
Secure Intake Primitive Adapter

Capability functions only, no policy:
  - Randomness:   libsodium CSPRNG (PyNaCl)
  - Hashing:      BLAKE3 (blake3)
  - KDF:          HKDF-SHA-256, RFC 5869 (cryptography)
  - AEAD:         XSalsa20-Poly1305 secretbox (PyNaCl)
  - Agreement:    raw X25519 scalar multiplication (PyNaCl)

Wire encodings:
  - X25519 public values: lowercase hex (optional 0x prefix on input)
  - Nonces, wrapped keys, ciphertext, KEM ciphertext: standard base64
"""

from __future__ import annotations

import base64
import binascii
from typing import List, Optional, Tuple

import blake3
import nacl.bindings
import nacl.exceptions
import nacl.secret
import nacl.utils
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import DecryptionError, InvalidKeyError


# =============================================================================
# Constants
# =============================================================================

KEY_BYTES: int = nacl.secret.SecretBox.KEY_SIZE        # 32
NONCE_BYTES: int = nacl.secret.SecretBox.NONCE_SIZE    # 24
X25519_BYTES: int = nacl.bindings.crypto_scalarmult_BYTES  # 32

AEAD_NAME: str = "xsalsa20poly1305"


# =============================================================================
# Encoding
# =============================================================================

def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_b64(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64: {e}")


def to_hex(data: bytes) -> str:
    return data.hex()


def from_hex(text: str) -> bytes:
    """Decode hex, tolerating a 0x prefix and an odd digit count."""
    s = text[2:] if text.startswith(("0x", "0X")) else text
    if len(s) % 2:
        s = "0" + s
    return bytes.fromhex(s)


# =============================================================================
# Randomness / Hashing
# =============================================================================

def random_bytes(n: int) -> bytes:
    return nacl.utils.random(n)


def blake3_digest(data: bytes) -> bytes:
    """32-byte BLAKE3 digest."""
    return blake3.blake3(data).digest()


# =============================================================================
# Key Derivation
# =============================================================================

def hkdf_sha256(
    ikm: bytes,
    salt: Optional[bytes] = None,
    info: bytes = b"",
    length: int = 32,
) -> bytes:
    """HKDF-SHA-256 (extract-then-expand). A None salt means 32 zero bytes."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt if salt is not None else b"\x00" * 32,
        info=info,
    )
    return hkdf.derive(ikm)


# =============================================================================
# Symmetric AEAD
# =============================================================================

def secretbox_seal(key: bytes, plaintext: bytes, nonce: bytes) -> bytes:
    """XSalsa20-Poly1305 seal. Returns tag||ciphertext without the nonce."""
    return nacl.secret.SecretBox(key).encrypt(plaintext, nonce).ciphertext


def secretbox_open(key: bytes, ciphertext: bytes, nonce: bytes) -> bytes:
    try:
        return nacl.secret.SecretBox(key).decrypt(ciphertext, nonce)
    except (nacl.exceptions.CryptoError, ValueError, TypeError) as e:
        raise DecryptionError(f"secretbox authentication failed: {e}")


# =============================================================================
# X25519
# =============================================================================

def parse_x25519_public(hex_key: str) -> bytes:
    """Decode and length-check a hex X25519 public key."""
    if not isinstance(hex_key, str) or not hex_key:
        raise InvalidKeyError("X25519 public key must be a non-empty hex string")
    try:
        raw = from_hex(hex_key)
    except ValueError:
        raise InvalidKeyError("X25519 public key is not valid hex")
    if len(raw) != X25519_BYTES:
        raise InvalidKeyError(
            f"X25519 public key must be {X25519_BYTES} bytes, got {len(raw)}"
        )
    return raw


def x25519_keypair() -> Tuple[bytes, bytes]:
    """Fresh (secret, public) X25519 pair."""
    secret = random_bytes(X25519_BYTES)
    return secret, nacl.bindings.crypto_scalarmult_base(secret)


def x25519_shared(secret: bytes, public: bytes) -> bytes:
    """Raw X25519 shared secret. Low-order public points are rejected."""
    try:
        return nacl.bindings.crypto_scalarmult(secret, public)
    except (nacl.exceptions.CryptoError, RuntimeError, ValueError, TypeError) as e:
        raise InvalidKeyError(f"X25519 agreement failed: {e}")


# =============================================================================
# Host probe
# =============================================================================

def probe_primitives() -> Tuple[bool, List[str]]:
    """
    Exercise each basic primitive once.

    Returns:
        (ok, missing) where missing names the primitives that failed.
        Never touches the strong-suite module.
    """
    missing: List[str] = []

    try:
        random_bytes(32)
    except Exception:
        missing.append("CSPRNG")

    try:
        key = bytes(KEY_BYTES)
        nonce = bytes(NONCE_BYTES)
        if secretbox_open(key, secretbox_seal(key, b"probe", nonce), nonce) != b"probe":
            missing.append("XSalsa20-Poly1305")
    except Exception:
        missing.append("XSalsa20-Poly1305")

    try:
        a_sk, a_pk = x25519_keypair()
        b_sk, b_pk = x25519_keypair()
        if x25519_shared(a_sk, b_pk) != x25519_shared(b_sk, a_pk):
            missing.append("X25519")
    except Exception:
        missing.append("X25519")

    try:
        hkdf_sha256(b"probe")
        blake3_digest(b"probe")
    except Exception:
        missing.append("HKDF/BLAKE3")

    return not missing, missing
