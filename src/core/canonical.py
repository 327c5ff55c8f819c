"""
PDF Canonicalization and Content Hashing

Two semantically identical PDFs can serialize differently, and a PDF can
serialize differently on every load/save cycle. Signatures are therefore
computed over a canonical form: the document is parsed and re-saved with a
fixed set of writer options, so that re-saving an already canonical document
reproduces it byte for byte.

Writer options:
- full rewrite, no incremental update
- garbage=3: unused objects and free xref entries are dropped and the
  remaining objects renumbered compactly (free entries would get a new
  generation number on every save)
- streams left as they are (no deflate/inflate)
- the trailer /ID is kept (no_new_id), the Info /ModDate is never written

The two carrier fields used by the signature envelope (/Producer and
/Creator) are re-set to their decoded value during canonicalization. This
fixes their string encoding to the one the envelope codec writes back when
it strips a signature, which is what makes the strip round trip exact.
"""

import hashlib
from contextlib import contextmanager
from typing import Dict, Generator, Tuple
import structlog

import pymupdf

logger = structlog.get_logger()

SIGNATURE_CARRIER = "producer"
KEY_CARRIER = "creator"

DIGEST_SIZE = 32


class MalformedContainerError(Exception):
    """The input is not a usable PDF (unparsable, encrypted or empty)."""


@contextmanager
def open_document(data: bytes) -> Generator[pymupdf.Document, None, None]:
    """Open PDF bytes, closing the document when the block exits."""
    if not data:
        raise MalformedContainerError("Document is empty")

    try:
        doc = pymupdf.open(stream=bytes(data), filetype="pdf")
    except Exception as e:
        raise MalformedContainerError(f"Unable to parse PDF: {e}") from e

    try:
        if doc.needs_pass or doc.is_encrypted:
            raise MalformedContainerError("Encrypted PDFs are not supported")
        if doc.page_count == 0:
            raise MalformedContainerError("PDF has no pages")
        yield doc
    finally:
        doc.close()


def read_carriers(doc: pymupdf.Document) -> Tuple[str, str]:
    """Current (signature carrier, key carrier) values; missing fields read as ''."""
    metadata = doc.metadata or {}
    return metadata.get(SIGNATURE_CARRIER) or "", metadata.get(KEY_CARRIER) or ""


def write_carriers(doc: pymupdf.Document, signature_field: str, key_field: str) -> None:
    """Set both carrier fields. ModDate and every other Info key are left alone."""
    values: Dict[str, str] = {
        SIGNATURE_CARRIER: signature_field,
        KEY_CARRIER: key_field,
    }
    try:
        doc.set_metadata(values)
    except Exception as e:
        raise MalformedContainerError(f"Unable to update document info: {e}") from e


def serialize(doc: pymupdf.Document) -> bytes:
    """Write the document with the canonical writer options."""
    try:
        return doc.tobytes(
            garbage=3,
            clean=False,
            deflate=False,
            no_new_id=True,
        )
    except Exception as e:
        raise MalformedContainerError(f"Unable to serialize PDF: {e}") from e


def canonicalize(raw: bytes) -> bytes:
    """
    Return the canonical byte form of a PDF.

    Idempotent: canonicalize(canonicalize(x)) == canonicalize(x).
    """
    with open_document(raw) as doc:
        signature_field, key_field = read_carriers(doc)
        write_carriers(doc, signature_field, key_field)
        canonical = serialize(doc)

    logger.debug("document_canonicalized", input_bytes=len(raw), canonical_bytes=len(canonical))
    return canonical


def digest(data: bytes) -> bytes:
    """SHA-256 over the whole buffer."""
    return hashlib.sha256(data).digest()


def content_digest(raw: bytes) -> Tuple[bytes, bytes]:
    """Canonicalize a document and hash it. Returns (canonical_bytes, digest)."""
    canonical = canonicalize(raw)
    return canonical, digest(canonical)
