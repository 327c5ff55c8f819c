"""
Tests for the Document Signing Workflow
"""

import pytest
from core.canonical import content_digest, open_document
from core.envelope import peek_envelope
from core.signing import (
    DocumentSigner,
    SignerConfig,
    SigningOutcome,
    signed_filename,
)
from crypto.signer import verify


class FailingRegistry:
    """Registry whose writes always fail."""

    def insert(self, entry):
        raise RuntimeError("registry unavailable")

    def find_by_signature(self, signature):
        return None


class TestSignedFilename:
    """Test output file naming."""

    def test_pdf_suffix_replaced(self):
        assert signed_filename("report.pdf") == "report_signed.pdf"

    def test_upper_case_suffix(self):
        assert signed_filename("REPORT.PDF") == "REPORT_signed.pdf"

    def test_no_suffix(self):
        assert signed_filename("contract") == "contract_signed.pdf"

    def test_default(self):
        assert signed_filename(None) == "document_signed.pdf"


class TestDocumentSigner:
    """Test signing end to end against a real database."""

    def test_sign_success(self, identity_repo, registry_repo, alice, password, sample_pdf):
        signer = DocumentSigner(identity_repo, registry=registry_repo)

        result = signer.sign(sample_pdf, alice.identity_id, password, filename="report.pdf")

        assert result.outcome == SigningOutcome.SIGNED
        assert result.signed
        assert result.filename == "report_signed.pdf"
        assert result.public_key == alice.public_key
        assert len(result.signature) == 64
        assert result.registry_recorded is True
        assert result.latency_ms > 0

    def test_signature_covers_canonical_digest(self, identity_repo, alice, password, sample_pdf):
        signer = DocumentSigner(identity_repo)

        result = signer.sign(sample_pdf, alice.identity_id, password)
        _, expected = content_digest(sample_pdf)

        assert result.content_digest == expected
        assert verify(result.signature, expected, alice.public_key)

    def test_envelope_embedded(self, identity_repo, alice, password, sample_pdf):
        result = DocumentSigner(identity_repo).sign(sample_pdf, alice.identity_id, password)

        envelope = peek_envelope(result.signed_document)

        assert envelope.signature == result.signature
        assert envelope.public_key == alice.public_key

    def test_content_preserved(self, identity_repo, alice, password, sample_pdf):
        result = DocumentSigner(identity_repo).sign(sample_pdf, alice.identity_id, password)

        with open_document(result.signed_document) as doc:
            assert doc.page_count == 1
            assert "Quarterly Report" in doc[0].get_text()
            assert doc.metadata["title"] == "Quarterly Report"

    def test_registry_entry_written(self, identity_repo, registry_repo, alice, password, sample_pdf):
        result = DocumentSigner(identity_repo, registry=registry_repo).sign(
            sample_pdf, alice.identity_id, password, filename="report.pdf"
        )

        entry = registry_repo.find_by_signature(result.signature)

        assert entry.signer_identity_id == alice.identity_id
        assert entry.content_digest == result.content_digest
        assert entry.filename == "report.pdf"

    def test_record_registry_disabled(self, identity_repo, registry_repo, alice, password, sample_pdf):
        signer = DocumentSigner(
            identity_repo,
            registry=registry_repo,
            config=SignerConfig(record_registry=False),
        )

        result = signer.sign(sample_pdf, alice.identity_id, password)

        assert result.signed
        assert result.registry_recorded is False
        assert registry_repo.count() == 0

    def test_wrong_password(self, identity_repo, registry_repo, alice, sample_pdf):
        """A wrong password is reported, not raised."""
        signer = DocumentSigner(identity_repo, registry=registry_repo)

        result = signer.sign(sample_pdf, alice.identity_id, "not the password")

        assert result.outcome == SigningOutcome.INVALID_CREDENTIAL
        assert result.signed_document is None
        assert result.signature is None
        assert registry_repo.count() == 0

    def test_unknown_identity(self, identity_repo, password, sample_pdf):
        result = DocumentSigner(identity_repo).sign(sample_pdf, "no-such-identity", password)

        assert result.outcome == SigningOutcome.UNKNOWN_IDENTITY
        assert result.signed_document is None

    def test_malformed_document(self, identity_repo, alice, password):
        result = DocumentSigner(identity_repo).sign(b"not a pdf at all", alice.identity_id, password)

        assert result.outcome == SigningOutcome.MALFORMED_CONTAINER
        assert result.error_message

    def test_already_signed(self, identity_repo, alice, bob, password, sample_pdf):
        signer = DocumentSigner(identity_repo)
        first = signer.sign(sample_pdf, alice.identity_id, password)

        second = signer.sign(first.signed_document, bob.identity_id, password)

        assert second.outcome == SigningOutcome.ALREADY_SIGNED

    def test_lone_token_is_not_reported_as_signed(self, identity_repo, alice, password, pdf_factory):
        """A document that verifies as unsigned is never called ALREADY_SIGNED."""
        document = pdf_factory(producer="Acme||SIG:" + "ab" * 64, creator="Word")

        result = DocumentSigner(identity_repo).sign(document, alice.identity_id, password)

        assert result.outcome == SigningOutcome.MALFORMED_CONTAINER
        assert "stray" in result.error_message

    def test_registry_failure_does_not_fail_signing(self, identity_repo, alice, password, sample_pdf):
        """The signed document is still returned when the registry write fails."""
        signer = DocumentSigner(identity_repo, registry=FailingRegistry())

        result = signer.sign(sample_pdf, alice.identity_id, password)

        assert result.outcome == SigningOutcome.SIGNED
        assert result.signed_document is not None
        assert result.registry_recorded is False

    def test_private_key_wiped_when_signing_raises(
        self, monkeypatch, identity_repo, alice, password, sample_pdf
    ):
        """The unwrapped key is zeroed even if the signature step blows up."""
        captured = {}

        def exploding_sign(digest, private_key):
            captured["key"] = private_key
            assert any(private_key)
            raise RuntimeError("signature engine failure")

        monkeypatch.setattr("core.signing.sign", exploding_sign)

        with pytest.raises(RuntimeError):
            DocumentSigner(identity_repo).sign(sample_pdf, alice.identity_id, password)

        assert captured["key"] == bytearray(len(captured["key"]))

    def test_private_key_wiped_after_success(
        self, monkeypatch, identity_repo, alice, password, sample_pdf
    ):
        from crypto.signer import sign as real_sign

        captured = {}

        def recording_sign(digest, private_key):
            captured["key"] = private_key
            return real_sign(digest, private_key)

        monkeypatch.setattr("core.signing.sign", recording_sign)

        result = DocumentSigner(identity_repo).sign(sample_pdf, alice.identity_id, password)

        assert result.signed
        assert captured["key"] == bytearray(32)

    def test_to_dict(self, identity_repo, alice, password, sample_pdf):
        result = DocumentSigner(identity_repo).sign(sample_pdf, alice.identity_id, password)
        data = result.to_dict()

        assert data["outcome"] == "SIGNED"
        assert data["signature"] == result.signature.hex()
        assert "signed_document" not in data
