# secure_intake/strong_suite.py
"""
Secure Intake: Lazy Strong-Suite Boundary

This is the only module that touches the post-quantum KEM library, and it
does so through importlib at first use, never at module scope. Importing
liboqs can build or fetch its native library and print to the console, so
the import must not happen as a side effect of importing secure_intake.

Lifecycle of the cell:
    EMPTY --load()--> LOADED          (cached suite instance)
    EMPTY --load()--> FAILED          (cached failure, re-raised fast)
    any   --reset()-> EMPTY

Usage:
    loader = StrongSuiteLoader()              # ML-KEM-768 via liboqs
    suite = loader.load()                     # may raise ModuleUnavailableError
    kem_ct, shared = suite.encapsulate(pk)    # may raise EncapsulationFailedError
"""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Callable, Optional, Tuple

from .errors import EncapsulationFailedError, ModuleUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_KEM_ALGORITHM = "ML-KEM-768"


# =============================================================================
# Suite interface
# =============================================================================

class StrongSuite(ABC):
    """Key-encapsulation capability used by the hybrid seal."""

    name: str = "strong"

    @abstractmethod
    def encapsulate(self, public_key: bytes) -> Tuple[bytes, bytes]:
        """Return (kem_ciphertext, shared_secret) for a recipient key."""
        pass

    @abstractmethod
    def decapsulate(self, secret_key: bytes, kem_ciphertext: bytes) -> bytes:
        """Recover the shared secret."""
        pass


class OqsKem(StrongSuite):
    """ML-KEM through liboqs-python."""

    def __init__(self, oqs_module: Any, algorithm: str = DEFAULT_KEM_ALGORITHM):
        self._oqs = oqs_module
        self.name = algorithm

    def encapsulate(self, public_key: bytes) -> Tuple[bytes, bytes]:
        try:
            with self._oqs.KeyEncapsulation(self.name) as kem:
                kem_ct, shared = kem.encap_secret(public_key)
        except Exception as e:
            raise EncapsulationFailedError(f"{self.name} encapsulation failed: {e}")
        return bytes(kem_ct), bytes(shared)

    def decapsulate(self, secret_key: bytes, kem_ciphertext: bytes) -> bytes:
        try:
            with self._oqs.KeyEncapsulation(self.name, secret_key) as kem:
                return bytes(kem.decap_secret(kem_ciphertext))
        except Exception as e:
            raise EncapsulationFailedError(f"{self.name} decapsulation failed: {e}")


def load_oqs_kem(algorithm: str = DEFAULT_KEM_ALGORITHM) -> StrongSuite:
    """Import liboqs and check the mechanism is enabled in this build."""
    oqs = importlib.import_module("oqs")
    enabled = oqs.get_enabled_kem_mechanisms()
    if algorithm not in enabled:
        raise ModuleUnavailableError(
            f"{algorithm} is not available in this liboqs build"
        )
    return OqsKem(oqs, algorithm)


# =============================================================================
# Lazy cell
# =============================================================================

class LoaderState(Enum):
    EMPTY = auto()
    LOADED = auto()
    FAILED = auto()


class StrongSuiteLoader:
    """
    One-shot load-or-fail cell around a strong-suite factory.

    Args:
        factory: Zero-argument callable returning a StrongSuite. Defaults
                 to ML-KEM-768 via liboqs.
    """

    def __init__(
        self,
        factory: Optional[Callable[[], StrongSuite]] = None,
        algorithm: str = DEFAULT_KEM_ALGORITHM,
    ):
        self._factory = factory or (lambda: load_oqs_kem(algorithm))
        self._suite: Optional[StrongSuite] = None
        self._failure: Optional[str] = None
        self.load_attempts = 0

    @property
    def state(self) -> LoaderState:
        if self._suite is not None:
            return LoaderState.LOADED
        if self._failure is not None:
            return LoaderState.FAILED
        return LoaderState.EMPTY

    def load(self) -> StrongSuite:
        """
        Return the strong suite, loading it on first call.

        Raises:
            ModuleUnavailableError: The module could not be loaded (now or
                on an earlier attempt since the last reset)
        """
        if self._suite is not None:
            return self._suite
        if self._failure is not None:
            raise ModuleUnavailableError(self._failure)

        self.load_attempts += 1
        try:
            suite = self._factory()
        except ModuleUnavailableError as e:
            self._failure = str(e)
            raise
        except Exception as e:
            self._failure = (
                "Hybrid encryption unavailable: strong-suite module failed "
                f"to load ({type(e).__name__}: {e})"
            )
            logger.debug("Strong-suite load failed", exc_info=True)
            raise ModuleUnavailableError(self._failure)

        self._suite = suite
        logger.debug("Strong suite loaded: %s", suite.name)
        return suite

    def reset(self) -> None:
        self._suite = None
        self._failure = None
