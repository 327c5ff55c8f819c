"""
Document Signing Workflow

Flow:
1. Canonicalize the uploaded PDF and hash the canonical bytes
2. Re-derive the wrapping key from the password and the identity's salt
3. Unwrap the private key (a wrong password stops here)
4. Sign the digest, then wipe the raw key immediately
5. Embed signature + public key into the canonical document
6. Record the signing event in the registry (best effort)

The raw private key only exists inside step 3-4's with-blocks, which zero it
on every exit path.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
import structlog

from crypto.keys import AuthenticationError, derived_key, unwrapped_key
from crypto.signer import key_fingerprint, sign
from persistence.models import RegistryEntry

from .canonical import MalformedContainerError, content_digest
from .envelope import EnvelopePresentError, PartialEnvelopeError, embed, has_envelope
from .ports import IdentityStore, RegistryStore

logger = structlog.get_logger()

DEFAULT_FILENAME = "document.pdf"


class SigningOutcome(Enum):
    """Signing outcomes."""
    SIGNED = "SIGNED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    UNKNOWN_IDENTITY = "UNKNOWN_IDENTITY"
    MALFORMED_CONTAINER = "MALFORMED_CONTAINER"
    ALREADY_SIGNED = "ALREADY_SIGNED"


@dataclass
class SigningResult:
    """
    Result of a signing call.

    On success carries the signed bytes plus the signature and public key for
    immediate display.
    """
    outcome: SigningOutcome
    signed_document: Optional[bytes] = None
    signature: Optional[bytes] = None
    public_key: Optional[bytes] = None
    content_digest: Optional[bytes] = None
    filename: Optional[str] = None
    registry_recorded: bool = False
    error_message: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def signed(self) -> bool:
        return self.outcome == SigningOutcome.SIGNED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "signature": self.signature.hex() if self.signature else None,
            "public_key": self.public_key.hex() if self.public_key else None,
            "content_digest": self.content_digest.hex() if self.content_digest else None,
            "filename": self.filename,
            "registry_recorded": self.registry_recorded,
            "error": self.error_message,
            "latency_ms": self.latency_ms,
        }


@dataclass
class SignerConfig:
    """Configuration for the document signer."""
    record_registry: bool = True


def signed_filename(filename: Optional[str]) -> str:
    """report.pdf -> report_signed.pdf"""
    name = filename or DEFAULT_FILENAME
    if name.lower().endswith(".pdf"):
        name = name[:-4]
    return f"{name}_signed.pdf"


class DocumentSigner:
    """
    Signs PDFs on behalf of a registered identity.

    The registry is an attribution aid: a failed registry write is logged but
    does not fail the signing call, since the signed document verifies
    cryptographically on its own.
    """

    def __init__(
        self,
        identity_store: IdentityStore,
        registry: Optional[RegistryStore] = None,
        config: Optional[SignerConfig] = None,
    ):
        self.identity_store = identity_store
        self.registry = registry
        self.config = config or SignerConfig()

    def sign(
        self,
        document: bytes,
        identity_id: str,
        password: str,
        filename: Optional[str] = None,
    ) -> SigningResult:
        """
        Sign a document with the identity's wrapped key.

        Args:
            document: Raw PDF bytes as uploaded
            identity_id: The caller's identity, already authenticated upstream
            password: Password protecting the identity's private key
            filename: Original file name, recorded in the registry

        Returns:
            SigningResult with outcome and, on success, the signed bytes
        """
        start_time = time.perf_counter()
        filename = filename or DEFAULT_FILENAME

        def failed(outcome: SigningOutcome, message: str) -> SigningResult:
            return SigningResult(
                outcome=outcome,
                filename=filename,
                error_message=message,
                latency_ms=(time.perf_counter() - start_time) * 1000,
            )

        identity = self.identity_store.get(identity_id)
        if identity is None:
            logger.warning("signing_identity_not_found", identity_id=identity_id)
            return failed(SigningOutcome.UNKNOWN_IDENTITY, f"Identity not found: {identity_id}")

        # Step 1: canonical form and its digest
        try:
            canonical, document_hash = content_digest(document)
        except MalformedContainerError as e:
            logger.warning("signing_malformed_document", identity_id=identity_id, error=str(e))
            return failed(SigningOutcome.MALFORMED_CONTAINER, str(e))

        if has_envelope(canonical):
            return failed(SigningOutcome.ALREADY_SIGNED, "Document is already signed")

        logger.info("signing_document_hashed", digest=document_hash.hex()[:16], filename=filename)

        # Steps 2-4: the raw key lives only inside these blocks
        try:
            with derived_key(password, identity.kdf_salt) as wrapping_key:
                with unwrapped_key(identity.wrapped_private_key, identity.nonce, wrapping_key) as private_key:
                    signature = sign(document_hash, private_key)
        except AuthenticationError:
            logger.warning("signing_key_unwrap_failed", identity_id=identity_id)
            return failed(
                SigningOutcome.INVALID_CREDENTIAL,
                "Invalid password. Unable to unwrap signing key.",
            )

        # Step 5
        try:
            signed_document = embed(canonical, signature, identity.public_key)
        except EnvelopePresentError as e:
            return failed(SigningOutcome.ALREADY_SIGNED, str(e))
        except PartialEnvelopeError as e:
            logger.warning("signing_partial_envelope", identity_id=identity_id, error=str(e))
            return failed(SigningOutcome.MALFORMED_CONTAINER, str(e))
        except MalformedContainerError as e:
            logger.error("signing_embed_failed", identity_id=identity_id, error=str(e))
            return failed(SigningOutcome.MALFORMED_CONTAINER, str(e))

        # Step 6
        registry_recorded = False
        if self.registry is not None and self.config.record_registry:
            registry_recorded = self._record(signature, document_hash, identity_id, filename)

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "document_signed",
            identity_id=identity_id,
            fingerprint=key_fingerprint(identity.public_key),
            signature=signature.hex()[:16],
            registry_recorded=registry_recorded,
            latency_ms=latency_ms,
        )

        return SigningResult(
            outcome=SigningOutcome.SIGNED,
            signed_document=signed_document,
            signature=signature,
            public_key=identity.public_key,
            content_digest=document_hash,
            filename=signed_filename(filename),
            registry_recorded=registry_recorded,
            latency_ms=latency_ms,
        )

    def _record(self, signature: bytes, document_hash: bytes, identity_id: str, filename: str) -> bool:
        entry = RegistryEntry(
            signature=signature,
            content_digest=document_hash,
            signer_identity_id=identity_id,
            filename=filename,
        )
        try:
            self.registry.insert(entry)
        except Exception as e:
            logger.error(
                "registry_write_failed",
                identity_id=identity_id,
                signature=signature.hex()[:16],
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        return True
