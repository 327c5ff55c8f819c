"""
DOCSEAL - Core Module
Password-protected document signing and verification for PDF.
"""

from .canonical import MalformedContainerError, canonicalize, content_digest, digest
from .envelope import (
    EnvelopePresentError,
    ExtractedEnvelope,
    PartialEnvelopeError,
    SignatureEnvelope,
    embed,
    extract_and_strip,
    has_envelope,
    peek_envelope,
)
from .identity import WeakPasswordError, create_identity, register_identity
from .signing import DocumentSigner, SignerConfig, SigningOutcome, SigningResult
from .verification import (
    DocumentVerifier,
    VerificationOutcome,
    VerificationResult,
    VerificationState,
    VerifierConfig,
)

__all__ = [
    "MalformedContainerError",
    "canonicalize",
    "content_digest",
    "digest",
    "EnvelopePresentError",
    "ExtractedEnvelope",
    "PartialEnvelopeError",
    "SignatureEnvelope",
    "embed",
    "extract_and_strip",
    "has_envelope",
    "peek_envelope",
    "WeakPasswordError",
    "create_identity",
    "register_identity",
    "DocumentSigner",
    "SignerConfig",
    "SigningOutcome",
    "SigningResult",
    "DocumentVerifier",
    "VerificationOutcome",
    "VerificationResult",
    "VerificationState",
    "VerifierConfig",
]
