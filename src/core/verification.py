"""
Document Verification Workflow

Verification is a two-tier state machine:

    IDLE -> EXTRACTING -> NOT_SIGNED
                       -> STRIPPED -> REHASHING -> VERIFYING -> VALID
                                                             -> INVALID
                                                             -> TAMPERED
                                                             -> UNREGISTERED

Tier one is purely cryptographic: strip the envelope, re-canonicalize and
re-hash the pristine document, check the Ed25519 signature against the
embedded public key. A valid signature only proves that *some* key signed the
content. Tier two (when a registry is configured) ties the signature to a
registered identity: the registry entry for the signature must exist, name
the same public key and record the same content digest.

MALFORMED is reachable from EXTRACTING and REHASHING when the container
cannot be parsed.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import structlog

from crypto.signer import key_fingerprint, verify
from persistence.models import Identity, RegistryEntry

from .canonical import MalformedContainerError, content_digest
from .envelope import extract_and_strip
from .ports import IdentityStore, RegistryStore

logger = structlog.get_logger()


class VerificationState(Enum):
    """States of a verification run."""
    IDLE = "IDLE"
    EXTRACTING = "EXTRACTING"
    STRIPPED = "STRIPPED"
    REHASHING = "REHASHING"
    VERIFYING = "VERIFYING"
    NOT_SIGNED = "NOT_SIGNED"
    VALID = "VALID"
    INVALID = "INVALID"
    TAMPERED = "TAMPERED"
    UNREGISTERED = "UNREGISTERED"
    MALFORMED = "MALFORMED"


class VerificationOutcome(Enum):
    """Terminal verification outcomes."""
    NOT_SIGNED = "NOT_SIGNED"  # no envelope; not an error
    VALID = "VALID"
    INVALID = "INVALID"  # cryptographic mismatch
    TAMPERED = "TAMPERED"  # signature valid, attribution inconsistent
    UNREGISTERED = "UNREGISTERED"  # signature valid, no registry entry
    MALFORMED = "MALFORMED"  # not a parsable PDF


_TRANSITIONS = {
    VerificationState.IDLE: {VerificationState.EXTRACTING},
    VerificationState.EXTRACTING: {
        VerificationState.NOT_SIGNED,
        VerificationState.STRIPPED,
        VerificationState.MALFORMED,
    },
    VerificationState.STRIPPED: {VerificationState.REHASHING},
    VerificationState.REHASHING: {VerificationState.VERIFYING, VerificationState.MALFORMED},
    VerificationState.VERIFYING: {
        VerificationState.VALID,
        VerificationState.INVALID,
        VerificationState.TAMPERED,
        VerificationState.UNREGISTERED,
    },
}

TERMINAL_STATES = {
    VerificationState.NOT_SIGNED,
    VerificationState.VALID,
    VerificationState.INVALID,
    VerificationState.TAMPERED,
    VerificationState.UNREGISTERED,
    VerificationState.MALFORMED,
}


@dataclass
class VerificationResult:
    """Outcome of verifying one document."""
    outcome: VerificationOutcome
    message: str
    signature: Optional[bytes] = None
    signer_public_key: Optional[bytes] = None
    signer_identity_id: Optional[str] = None
    signer_label: Optional[str] = None
    content_digest: Optional[bytes] = None
    attributed: bool = False
    registry_entry: Optional[RegistryEntry] = None
    trail: List[VerificationState] = field(default_factory=list)
    latency_ms: float = 0.0

    @property
    def verified(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    @property
    def signature_valid(self) -> bool:
        """Whether the cryptographic tier passed, regardless of attribution."""
        return self.outcome in (
            VerificationOutcome.VALID,
            VerificationOutcome.TAMPERED,
            VerificationOutcome.UNREGISTERED,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "verified": self.verified,
            "message": self.message,
            "signature": self.signature.hex() if self.signature else None,
            "signer_public_key": self.signer_public_key.hex() if self.signer_public_key else None,
            "signer_identity_id": self.signer_identity_id,
            "signer_label": self.signer_label,
            "content_digest": self.content_digest.hex() if self.content_digest else None,
            "attributed": self.attributed,
            "trail": [s.value for s in self.trail],
            "latency_ms": self.latency_ms,
        }


class _Run:
    """State tracker for a single verification."""

    def __init__(self):
        self.state = VerificationState.IDLE
        self.trail: List[VerificationState] = [VerificationState.IDLE]

    def advance(self, new_state: VerificationState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal verification transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.trail.append(new_state)


@dataclass
class VerifierConfig:
    """Configuration for the document verifier."""
    resolve_unattributed_signer: bool = True  # label lookup when no registry is configured


class DocumentVerifier:
    """
    Classifies an uploaded document into exactly one VerificationOutcome.

    Without a registry only the cryptographic tier runs and a good signature
    yields VALID with attributed=False. With a registry, a good signature is
    VALID only when the registry agrees with the document.
    """

    def __init__(
        self,
        registry: Optional[RegistryStore] = None,
        identity_store: Optional[IdentityStore] = None,
        config: Optional[VerifierConfig] = None,
    ):
        if registry is not None and identity_store is None:
            raise ValueError("Registry attribution requires an identity store")
        self.registry = registry
        self.identity_store = identity_store
        self.config = config or VerifierConfig()

    def verify(self, document: bytes) -> VerificationResult:
        """
        Verify a (possibly) signed document.

        Never raises for bad input: unparsable bytes yield MALFORMED.
        """
        start_time = time.perf_counter()
        run = _Run()

        def finish(state: VerificationState, message: str, **details: Any) -> VerificationResult:
            run.advance(state)
            result = VerificationResult(
                outcome=VerificationOutcome(state.value),
                message=message,
                trail=list(run.trail),
                latency_ms=(time.perf_counter() - start_time) * 1000,
                **details,
            )
            logger.info(
                "document_verified",
                outcome=result.outcome.value,
                signature=result.signature.hex()[:16] if result.signature else None,
                latency_ms=result.latency_ms,
            )
            return result

        # Tier one: cryptographic validity
        run.advance(VerificationState.EXTRACTING)
        try:
            extracted = extract_and_strip(document)
        except MalformedContainerError as e:
            return finish(VerificationState.MALFORMED, f"Document could not be parsed: {e}")

        if extracted is None:
            return finish(
                VerificationState.NOT_SIGNED,
                "This document does not contain a signature.",
            )

        run.advance(VerificationState.STRIPPED)
        signature = extracted.signature
        public_key = extracted.public_key

        run.advance(VerificationState.REHASHING)
        try:
            _, document_hash = content_digest(extracted.stripped)
        except MalformedContainerError as e:
            return finish(
                VerificationState.MALFORMED,
                f"Stripped document could not be parsed: {e}",
                signature=signature,
                signer_public_key=public_key,
            )

        run.advance(VerificationState.VERIFYING)
        details: Dict[str, Any] = {
            "signature": signature,
            "signer_public_key": public_key,
            "content_digest": document_hash,
        }

        if not verify(signature, document_hash, public_key):
            logger.warning("signature_invalid", fingerprint=key_fingerprint(public_key))
            return finish(
                VerificationState.INVALID,
                "Signature verification failed. The document may have been tampered with.",
                **details,
            )

        if self.registry is None:
            signer = self._lookup_signer(public_key)
            if signer is not None:
                details["signer_identity_id"] = signer.identity_id
                details["signer_label"] = signer.label
            return finish(
                VerificationState.VALID,
                f"Signature is valid. Signed by {signer.label}." if signer else "Signature is valid.",
                **details,
            )

        # Tier two: attribution
        entry = self.registry.find_by_signature(signature)
        if entry is None:
            logger.warning("signature_unregistered", fingerprint=key_fingerprint(public_key))
            return finish(
                VerificationState.UNREGISTERED,
                "Signature is valid but was not issued through this registry.",
                **details,
            )

        details["registry_entry"] = entry
        details["signer_identity_id"] = entry.signer_identity_id
        recorded = self.identity_store.get(entry.signer_identity_id)

        if recorded is None:
            logger.warning("registry_signer_missing", signer_identity_id=entry.signer_identity_id)
            return finish(
                VerificationState.TAMPERED,
                "Registry entry names a signer that no longer exists.",
                **details,
            )

        details["signer_label"] = recorded.label

        if recorded.public_key != public_key:
            logger.warning(
                "signer_key_mismatch",
                embedded=key_fingerprint(public_key),
                recorded=key_fingerprint(recorded.public_key),
            )
            return finish(
                VerificationState.TAMPERED,
                "Embedded signer key does not match the registered signer.",
                **details,
            )

        if entry.content_digest != document_hash:
            logger.warning("registry_digest_mismatch", signer_identity_id=entry.signer_identity_id)
            return finish(
                VerificationState.TAMPERED,
                "Registered content digest does not match the document.",
                **details,
            )

        return finish(
            VerificationState.VALID,
            f"Document verified. Signed by {recorded.label}.",
            attributed=True,
            **details,
        )

    def _lookup_signer(self, public_key: bytes) -> Optional[Identity]:
        if self.identity_store is None or not self.config.resolve_unattributed_signer:
            return None
        try:
            return self.identity_store.find_by_public_key(public_key)
        except Exception as e:
            logger.warning("signer_lookup_failed", error=str(e))
            return None
