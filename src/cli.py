"""
Docseal CLI

Commands:
  register    - Create a signing identity
  identities  - Show a registered identity
  sign        - Sign a PDF with an identity's key
  verify      - Verify a signed PDF
  inspect     - Show the signature envelope of a PDF without verifying it
"""

import argparse
import getpass
import json
import sys
from pathlib import Path


def _settings():
    from core.config import Settings
    return Settings.from_env()


def _repositories(settings):
    from persistence import IdentityRepository, RegistryRepository, get_database

    db = get_database(settings.database_url)
    return IdentityRepository(db), RegistryRepository(db)


def _read_document(path: str, settings) -> bytes:
    file_path = Path(path)
    if not file_path.is_file():
        print(f"Error: file not found: {path}")
        sys.exit(1)
    size = file_path.stat().st_size
    if size > settings.max_document_bytes:
        print(f"Error: {path} is {size} bytes; the limit is {settings.max_document_bytes}")
        sys.exit(1)
    return file_path.read_bytes()


def _password(args, prompt: str = "Password: ") -> str:
    if args.password is not None:
        return args.password
    return getpass.getpass(prompt)


def _short(value: bytes) -> str:
    text = value.hex()
    return f"{text[:12]}...{text[-12:]}"


def cmd_register(args, settings):
    """Create a signing identity."""
    from core.identity import WeakPasswordError, register_identity
    from crypto.signer import key_fingerprint
    from persistence import ConflictError

    identities, _ = _repositories(settings)

    password = _password(args, "Choose a password: ")
    if args.password is None and getpass.getpass("Repeat password: ") != password:
        print("Error: passwords do not match")
        sys.exit(1)

    try:
        identity = register_identity(
            identities,
            args.label,
            password,
            min_password_length=settings.min_password_length,
        )
    except (WeakPasswordError, ValueError, ConflictError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print("Identity created")
    print(f"  ID: {identity.identity_id}")
    print(f"  Label: {identity.label}")
    print(f"  Public key: {identity.public_key.hex()}")
    print(f"  Fingerprint: {key_fingerprint(identity.public_key)}")


def cmd_identities(args, settings):
    """Show a registered identity and its recent signatures."""
    from crypto.signer import key_fingerprint

    identities, registry = _repositories(settings)
    identity = identities.get(args.identity_id) or identities.find_by_label(args.identity_id)
    if identity is None:
        print(f"Error: identity not found: {args.identity_id}")
        sys.exit(1)

    print(f"Identity {identity.identity_id}")
    print(f"  Label: {identity.label}")
    print(f"  Public key: {identity.public_key.hex()}")
    print(f"  Fingerprint: {key_fingerprint(identity.public_key)}")
    print(f"  Created: {identity.created_at}")
    entries = registry.list_by_signer(identity.identity_id, limit=args.limit)
    print(f"  Signed documents: {len(entries)}")
    for entry in entries:
        print(f"    {entry.created_at[:19]}  {entry.filename}  {_short(entry.signature)}")


def cmd_sign(args, settings):
    """Sign a PDF."""
    from core.signing import DocumentSigner, SignerConfig

    identities, registry = _repositories(settings)
    document = _read_document(args.file, settings)

    identity = identities.get(args.identity) or identities.find_by_label(args.identity)
    identity_id = identity.identity_id if identity else args.identity

    record = settings.record_registry and not args.no_registry
    signer = DocumentSigner(
        identities,
        registry=registry if record else None,
        config=SignerConfig(record_registry=record),
    )
    result = signer.sign(
        document,
        identity_id,
        _password(args),
        filename=Path(args.file).name,
    )

    if not result.signed:
        print(f"Signing failed: {result.outcome.value}")
        print(f"  {result.error_message}")
        sys.exit(1)

    output = Path(args.output) if args.output else Path(args.file).with_name(result.filename)
    output.write_bytes(result.signed_document)

    print(f"Document signed: {output}")
    print(f"  Signature: {_short(result.signature)}")
    print(f"  Public key: {_short(result.public_key)}")
    print(f"  Registered: {'Yes' if result.registry_recorded else 'No'}")


def cmd_verify(args, settings):
    """Verify a signed PDF."""
    from core.verification import DocumentVerifier, VerificationOutcome

    identities, registry = _repositories(settings)
    document = _read_document(args.file, settings)

    use_registry = settings.require_registry and not args.no_registry
    verifier = DocumentVerifier(
        registry=registry if use_registry else None,
        identity_store=identities,
    )
    result = verifier.verify(document)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Outcome: {result.outcome.value}")
        print(f"  {result.message}")
        if result.signer_public_key:
            print(f"  Signer key: {_short(result.signer_public_key)}")
        if result.signer_label:
            print(f"  Signer: {result.signer_label}")

    failing = {
        VerificationOutcome.INVALID,
        VerificationOutcome.TAMPERED,
        VerificationOutcome.MALFORMED,
    }
    if result.outcome in failing:
        sys.exit(2)


def cmd_inspect(args, settings):
    """Show the signature envelope without verifying."""
    from core.envelope import peek_envelope

    document = _read_document(args.file, settings)
    envelope = peek_envelope(document)
    if envelope is None:
        print("Not signed")
        return

    print("Signature envelope present")
    print(f"  Signature: {envelope.signature.hex()}")
    print(f"  Public key: {envelope.public_key.hex()}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Docseal - password-protected PDF signing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # register
    register_parser = subparsers.add_parser("register", help="Create a signing identity")
    register_parser.add_argument("--label", required=True, help="Display identity (e.g. e-mail)")
    register_parser.add_argument("--password", help="Password (prompted if omitted)")

    # identities
    identities_parser = subparsers.add_parser("identities", help="Show an identity")
    identities_parser.add_argument("identity_id", help="Identity ID or label")
    identities_parser.add_argument("--limit", type=int, default=20)

    # sign
    sign_parser = subparsers.add_parser("sign", help="Sign a PDF")
    sign_parser.add_argument("file", help="PDF to sign")
    sign_parser.add_argument("--identity", required=True, help="Identity ID or label")
    sign_parser.add_argument("--password", help="Password (prompted if omitted)")
    sign_parser.add_argument("--output", help="Output path (default: <name>_signed.pdf)")
    sign_parser.add_argument("--no-registry", action="store_true", help="Do not record in the registry")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a signed PDF")
    verify_parser.add_argument("file", help="PDF to verify")
    verify_parser.add_argument("--no-registry", action="store_true", help="Cryptographic check only")
    verify_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Show the signature envelope")
    inspect_parser.add_argument("file", help="PDF to inspect")

    args = parser.parse_args(argv)

    settings = _settings()

    from core.log import configure_logging
    configure_logging(settings.log_level, json_format=settings.log_format == "json")

    if args.command == "register":
        cmd_register(args, settings)
    elif args.command == "identities":
        cmd_identities(args, settings)
    elif args.command == "sign":
        cmd_sign(args, settings)
    elif args.command == "verify":
        cmd_verify(args, settings)
    elif args.command == "inspect":
        cmd_inspect(args, settings)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
