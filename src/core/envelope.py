"""
Signature Envelope Codec

PDF has no first-class slot for arbitrary signing metadata that every reader
preserves, so the envelope rides in two existing Info fields:

    /Producer  <existing value>||SIG:<hex signature>
    /Creator   <existing value>||KEY:<hex public key>

Neither field affects rendering. The tag syntax is a persisted wire format:
documents signed earlier must keep verifying, so it must not change.

Stripping removes exactly the tagged substrings and re-saves with the
canonical writer options, which reproduces the canonical document that was
signed, byte for byte.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
import structlog

from .canonical import (
    open_document,
    read_carriers,
    serialize,
    write_carriers,
)

logger = structlog.get_logger()

SEPARATOR = "||"
SIGNATURE_TAG = "SIG:"
PUBLIC_KEY_TAG = "KEY:"

# Even-length hex runs only, so the payload always decodes
SIGNATURE_PATTERN = re.compile(r"\|\|SIG:((?:[0-9a-fA-F]{2})+)")
PUBLIC_KEY_PATTERN = re.compile(r"\|\|KEY:((?:[0-9a-fA-F]{2})+)")


class EnvelopePresentError(Exception):
    """The document already carries a signature envelope."""


class PartialEnvelopeError(Exception):
    """Only one of the two envelope tokens is present; the document reads as unsigned."""


@dataclass(frozen=True)
class SignatureEnvelope:
    """Signature and claimed signer key carried by a document."""
    signature: bytes
    public_key: bytes


@dataclass(frozen=True)
class ExtractedEnvelope:
    """An envelope together with the document bytes it was stripped from."""
    signature: bytes
    public_key: bytes
    stripped: bytes

    @property
    def envelope(self) -> SignatureEnvelope:
        return SignatureEnvelope(signature=self.signature, public_key=self.public_key)


def encode_signature_token(signature: bytes) -> str:
    return f"{SEPARATOR}{SIGNATURE_TAG}{bytes(signature).hex()}"


def encode_public_key_token(public_key: bytes) -> str:
    return f"{SEPARATOR}{PUBLIC_KEY_TAG}{bytes(public_key).hex()}"


def _match_carriers(
    signature_field: str,
    key_field: str,
) -> Tuple[Optional["re.Match[str]"], Optional["re.Match[str]"]]:
    return SIGNATURE_PATTERN.search(signature_field), PUBLIC_KEY_PATTERN.search(key_field)


def _remove(value: str, match: "re.Match[str]") -> str:
    return value[:match.start()] + value[match.end():]


def embed(canonical: bytes, signature: bytes, public_key: bytes) -> bytes:
    """
    Append the envelope tokens to the carrier fields and re-save.

    The input must be canonical; the modification date is not touched.
    """
    with open_document(canonical) as doc:
        signature_field, key_field = read_carriers(doc)
        sig_match, key_match = _match_carriers(signature_field, key_field)
        if sig_match and key_match:
            raise EnvelopePresentError("Document already carries a signature envelope")
        if sig_match or key_match:
            tag = SIGNATURE_TAG if sig_match else PUBLIC_KEY_TAG
            raise PartialEnvelopeError(
                f"Document carries a stray {SEPARATOR}{tag} token without its counterpart"
            )

        write_carriers(
            doc,
            signature_field + encode_signature_token(signature),
            key_field + encode_public_key_token(public_key),
        )
        signed = serialize(doc)

    logger.debug("envelope_embedded", signature=bytes(signature).hex()[:16], signed_bytes=len(signed))
    return signed


def extract_and_strip(signed: bytes) -> Optional[ExtractedEnvelope]:
    """
    Pull the envelope out of a document and return the pristine bytes.

    Returns None when either token is missing (the document is not signed).
    Raises MalformedContainerError for unparsable input.
    """
    with open_document(signed) as doc:
        signature_field, key_field = read_carriers(doc)
        sig_match, key_match = _match_carriers(signature_field, key_field)
        if sig_match is None or key_match is None:
            return None

        signature = bytes.fromhex(sig_match.group(1))
        public_key = bytes.fromhex(key_match.group(1))

        write_carriers(doc, _remove(signature_field, sig_match), _remove(key_field, key_match))
        stripped = serialize(doc)

    logger.debug("envelope_stripped", signature=signature.hex()[:16], stripped_bytes=len(stripped))
    return ExtractedEnvelope(signature=signature, public_key=public_key, stripped=stripped)


def peek_envelope(data: bytes) -> Optional[SignatureEnvelope]:
    """Read the envelope for display, without stripping. Unparsable input reads as unsigned."""
    try:
        with open_document(data) as doc:
            sig_match, key_match = _match_carriers(*read_carriers(doc))
    except Exception as e:
        logger.debug("envelope_peek_failed", error=str(e))
        return None

    if sig_match is None or key_match is None:
        return None
    return SignatureEnvelope(
        signature=bytes.fromhex(sig_match.group(1)),
        public_key=bytes.fromhex(key_match.group(1)),
    )


def has_envelope(data: bytes) -> bool:
    """Cheap presence check; never mutates and never raises."""
    return peek_envelope(data) is not None
