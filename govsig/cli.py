#!/usr/bin/env python3
"""
govsig Command Line Interface

Usage:
    govsig-keygen [--output governance.key] [--seed SEED] [--show-private]
    govsig-sign binary|bundle|checksums --file <file> --key <key> [--output signature.json]
    govsig-sign release --version <v> --commit <hash> --key <key>
    govsig-verify binary --file <file> --signature <sig> --public-key <key>
    govsig-verify binary --file <file> --signature <sig> --public-keys <k1,k2,k3> --threshold 2-of-3
    govsig-aggregate --signatures <sig1> <sig2> ... [--output aggregate.json]

Exit codes:
    0  success
    1  verification failed
    2  malformed input (bad key, envelope, threshold, missing file)
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from . import config
from .aggregator import aggregate
from .artifacts import ArtifactTarget, BinaryType
from .envelope import load_envelope
from .errors import (
    GovernanceError,
    InvalidInputError,
    InvalidKeyError,
    SerializationError,
)
from .keys import Keypair, PublicKey
from .logging_config import audit_log, configure_logging, set_operation_id
from .messages import BudgetDecision, ModuleApproval, Release, TargetType
from .multisig import MultisigPolicy, parse_threshold
from .signing import SigningService, Target
from .verifier import verify_quorum, verify_target

EXIT_OK = 0
EXIT_VERIFICATION_FAILED = 1
EXIT_INPUT_ERROR = 2

SUBCOMMAND_TYPES = {
    "binary": TargetType.BINARY,
    "bundle": TargetType.BUNDLE,
    "checksums": TargetType.CHECKSUMS,
    "release": TargetType.RELEASE,
    "module": TargetType.MODULE_APPROVAL,
    "budget": TargetType.BUDGET_DECISION,
}


# ============================================================
# File helpers
# ============================================================

def load_json(path: str) -> Any:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        try:
            return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializationError(f"{path} is not valid JSON: {e}") from e


def save_json(data: Dict[str, Any], path: str) -> None:
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def load_keypair(path: str) -> Keypair:
    """Load a key file written by govsig-keygen."""
    data = load_json(path)
    secret_hex = data.get("secret_key") if isinstance(data, dict) else None
    if not isinstance(secret_hex, str):
        raise SerializationError(f"Invalid key file format: {path}")
    return Keypair.from_secret_hex(secret_hex)


def load_public_key(value: str) -> PublicKey:
    """Accept either a key file path or a hex-encoded public key."""
    if os.path.exists(value):
        data = load_json(value)
        pubkey_hex = data.get("public_key") if isinstance(data, dict) else None
        if not isinstance(pubkey_hex, str):
            raise SerializationError(f"Invalid public key file format: {value}")
        return PublicKey.from_hex(pubkey_hex)
    try:
        return PublicKey.from_hex(value)
    except InvalidKeyError as e:
        raise InvalidKeyError(f"'{value}' is neither a key file nor a valid public key ({e.message})")


def parse_comma_separated(values: Optional[List[str]]) -> List[str]:
    """Flatten repeated and comma-separated arguments, dropping empties."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


# ============================================================
# Output
# ============================================================

class OutputFormatter:
    """Renders tool results as text or JSON."""

    def __init__(self, fmt: str = "text"):
        self.json = fmt == "json"

    def render(self, data: Dict[str, Any], text: str) -> str:
        return json.dumps(data, indent=2) if self.json else text

    def format_error(self, error: BaseException, code: Optional[str] = None) -> str:
        code = code or getattr(error, "code", type(error).__name__)
        message = getattr(error, "message", None) or str(error)
        if self.json:
            return json.dumps({"success": False, "error": code, "message": message}, indent=2)
        return f"Error [{code}]: {message}"


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument(
        "--log-level",
        default=config.effective_log_level(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (logs go to stderr)"
    )


def _run(handler: Callable, args: argparse.Namespace) -> int:
    """Run a tool handler, mapping errors onto exit codes."""
    configure_logging(args.log_level, config.is_json_logging(), config.LOG_FILE or None)
    set_operation_id()
    formatter = OutputFormatter(args.format)
    try:
        return handler(args, formatter)
    except GovernanceError as e:
        print(formatter.format_error(e), file=sys.stderr)
        return EXIT_INPUT_ERROR
    except FileNotFoundError as e:
        print(formatter.format_error(e, "FILE_NOT_FOUND"), file=sys.stderr)
        return EXIT_INPUT_ERROR
    except OSError as e:
        print(formatter.format_error(e, "IO_ERROR"), file=sys.stderr)
        return EXIT_INPUT_ERROR


# ============================================================
# Targets
# ============================================================

def _add_target_subcommands(subparsers, parent: argparse.ArgumentParser, signing: bool) -> None:
    binary = subparsers.add_parser("binary", parents=[parent], help="Release binary")
    binary.add_argument("-f", "--file", required=True, help="Path to the binary")
    bundle = subparsers.add_parser("bundle", parents=[parent], help="Verification bundle (.tar.gz)")
    bundle.add_argument("-f", "--file", required=True, help="Path to the bundle")
    checksums = subparsers.add_parser("checksums", parents=[parent], help="SHA256SUMS manifest")
    checksums.add_argument("-f", "--file", required=True, help="Path to the SHA256SUMS file")

    if signing:
        binary.add_argument(
            "-b", "--binary-type",
            choices=list(BinaryType.ALL),
            default=BinaryType.APPLICATION,
            help="Binary type"
        )
        for p in (binary, bundle, checksums):
            p.add_argument("-v", "--version", help="Version recorded in metadata")

    release = subparsers.add_parser("release", parents=[parent], help="Release decision")
    release.add_argument("-v", "--version", required=True, help="Version string")
    release.add_argument("-c", "--commit", required=True, help="Commit hash")

    module = subparsers.add_parser("module", parents=[parent], help="Module approval")
    module.add_argument("-n", "--name", required=True, help="Module name")
    module.add_argument("-v", "--version", required=True, help="Module version")

    budget = subparsers.add_parser("budget", parents=[parent], help="Budget decision")
    budget.add_argument("-a", "--amount", type=int, required=True, help="Amount in satoshis")
    budget.add_argument("-p", "--purpose", required=True, help="Purpose description")


def target_from_args(args: argparse.Namespace) -> Target:
    """Build the signing target selected by the subcommand."""
    target_type = SUBCOMMAND_TYPES[args.target]
    if target_type.is_artifact:
        return ArtifactTarget.from_file(target_type, args.file)
    if target_type == TargetType.RELEASE:
        return Release(version=args.version, commit_hash=args.commit)
    if target_type == TargetType.MODULE_APPROVAL:
        return ModuleApproval(module_name=args.name, version=args.version)
    if target_type == TargetType.BUDGET_DECISION:
        return BudgetDecision(amount=args.amount, purpose=args.purpose)
    raise InvalidInputError(f"Unknown target: {args.target}")


def _describe(target: Target) -> str:
    if isinstance(target, ArtifactTarget):
        return f"{target.target_type.value} {target.content_hash_hex}"
    return target.description()


# ============================================================
# keygen
# ============================================================

def cmd_keygen(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Generate a governance keypair."""
    keypair = Keypair.from_seed(args.seed) if args.seed else Keypair.generate()
    public_hex = keypair.public_key.to_hex()

    key_data = {
        "public_key": public_hex,
        "secret_key": keypair.export_secret().hex(),
        "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    save_json(key_data, args.output)
    os.chmod(args.output, 0o600)
    audit_log.key_generated(public_hex, deterministic=bool(args.seed))

    data = {"success": True, "public_key": public_hex, "output_file": args.output}
    text = f"Generated governance keypair\nPublic key: {public_hex}\n"
    if args.show_private:
        data["secret_key"] = key_data["secret_key"]
        text += f"Secret key: {key_data['secret_key']}\n"
    text += f"Saved to: {args.output}"
    print(formatter.render(data, text))
    return EXIT_OK


def keygen_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="govsig-keygen",
        description="Generate governance keypairs"
    )
    parser.add_argument("-o", "--output", default=config.KEY_OUTPUT, help="Output key file")
    parser.add_argument("--seed", help="Derive the keypair deterministically from a seed (>= 32 bytes)")
    parser.add_argument("--show-private", action="store_true", help="Print the secret key")
    _add_common_options(parser)
    args = parser.parse_args(argv)
    return _run(cmd_keygen, args)


# ============================================================
# sign
# ============================================================

def cmd_sign(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Sign a message or artifact and write a signature envelope."""
    keypair = load_keypair(args.key)
    target = target_from_args(args)

    envelope = SigningService(keypair).sign_target(
        target,
        binary_type=getattr(args, "binary_type", None),
        version=getattr(args, "version", None),
    )
    save_json(envelope.to_dict(), args.output)

    data = {
        "success": True,
        "target_type": envelope.target_type.value,
        "target_hash": envelope.target_hash,
        "signer": envelope.signer,
        "signature": envelope.signature,
        "output_file": args.output,
    }
    text = (
        f"Signed {_describe(target)}\n"
        f"Signer: {envelope.signer}\n"
        f"Signature: {envelope.signature}\n"
        f"Saved to: {args.output}"
    )
    print(formatter.render(data, text))
    return EXIT_OK


def sign_main(argv: Optional[List[str]] = None) -> int:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("-k", "--key", required=True, help="Key file from govsig-keygen")
    parent.add_argument("-o", "--output", default=config.SIGNATURE_OUTPUT, help="Output envelope file")
    _add_common_options(parent)

    parser = argparse.ArgumentParser(
        prog="govsig-sign",
        description="Sign release artifacts and governance messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  govsig-sign binary -f bllvm --binary-type consensus --version 0.1.0 -k maintainer.key
  govsig-sign checksums -f SHA256SUMS -k maintainer.key -o SHA256SUMS.sig.json
  govsig-sign release -v 1.0.0 -c deadbeef -k maintainer.key
        """
    )
    subparsers = parser.add_subparsers(dest="target", required=True, help="What to sign")
    _add_target_subcommands(subparsers, parent, signing=True)
    args = parser.parse_args(argv)
    return _run(cmd_sign, args)


# ============================================================
# verify
# ============================================================

def _policy_from_args(args: argparse.Namespace) -> MultisigPolicy:
    keys = [load_public_key(v) for v in parse_comma_separated(args.public_keys)]
    if args.threshold is None:
        raise InvalidInputError("--threshold is required with --public-keys")
    if "-of-" in args.threshold:
        threshold, total = parse_threshold(args.threshold)
        if total != len(keys):
            raise InvalidInputError(f"Expected {total} public keys, got {len(keys)}")
    else:
        try:
            threshold = int(args.threshold)
        except ValueError:
            raise InvalidInputError(f"Invalid threshold '{args.threshold}'")
    return MultisigPolicy(threshold, keys)


def cmd_verify(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Verify signature envelope(s) against a target and key or policy."""
    paths = parse_comma_separated(args.signature)
    envelopes = [load_envelope(p) for p in paths]
    envelope = envelopes[0] if len(envelopes) == 1 else aggregate(envelopes)
    target = target_from_args(args)

    if args.public_key and args.public_keys:
        raise InvalidInputError("use either --public-key or --public-keys, not both")
    if args.public_key and args.threshold is not None:
        raise InvalidInputError("--threshold applies only with --public-keys")
    if args.public_key:
        result = verify_target(envelope, target, load_public_key(args.public_key))
    elif args.public_keys:
        result = verify_quorum(envelope, target, _policy_from_args(args))
    else:
        raise InvalidInputError("one of --public-key or --public-keys is required")

    data = {
        "success": result.is_valid(),
        "target": _describe(target),
        "target_type": envelope.target_type.value,
        "target_hash": envelope.target_hash,
        **result.to_dict(),
    }
    lines = [
        "Verification Results",
        f"Target: {_describe(target)}",
        f"Envelope hash: {envelope.target_hash}",
    ]
    if "got" in result.details:
        lines.append(f"Valid signers: {result.details['got']} of {result.details['need']} required")
    if result.is_valid():
        lines.append("\n✓ Verification PASSED")
    else:
        lines.append(f"\n✗ Verification FAILED [{result.failure.value}]: {result.reason}")
    print(formatter.render(data, "\n".join(lines)))
    return EXIT_OK if result.is_valid() else EXIT_VERIFICATION_FAILED


def verify_main(argv: Optional[List[str]] = None) -> int:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "-s", "--signature", action="append", required=True,
        help="Signature envelope (single or aggregated); repeat or comma-separate to merge several"
    )
    parent.add_argument("--public-key", help="Single public key (hex or key file)")
    parent.add_argument(
        "--public-keys", action="append",
        help="Authorized public keys (hex or key files); repeat or comma-separate"
    )
    parent.add_argument("-t", "--threshold", help="Required signatures: N or N-of-M")
    _add_common_options(parent)

    parser = argparse.ArgumentParser(
        prog="govsig-verify",
        description="Verify signature envelopes against artifacts and governance messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  govsig-verify binary -f bllvm -s signature.json --public-key maintainer.pub
  govsig-verify checksums -f SHA256SUMS -s aggregate.json --public-keys a.key,b.key,c.key -t 2-of-3
        """
    )
    subparsers = parser.add_subparsers(dest="target", required=True, help="What to verify")
    _add_target_subcommands(subparsers, parent, signing=False)
    args = parser.parse_args(argv)
    return _run(cmd_verify, args)


# ============================================================
# aggregate
# ============================================================

def cmd_aggregate(args: argparse.Namespace, formatter: OutputFormatter) -> int:
    """Merge signature envelopes for one target."""
    paths = parse_comma_separated([p for group in args.signatures for p in group])
    if not paths:
        raise InvalidInputError("at least one --signatures path is required")
    merged = aggregate([load_envelope(p) for p in paths], threshold=args.threshold)
    save_json(merged.to_dict(), args.output)

    data = {
        "success": True,
        "target_type": merged.target_type.value,
        "target_hash": merged.target_hash,
        "signers": merged.signers(),
        "output_file": args.output,
    }
    text = (
        f"Aggregated {len(paths)} envelope(s) for {merged.target_type.value} {merged.target_hash}\n"
        f"Signers: {len(merged.signatures)}\n"
        f"Saved to: {args.output}"
    )
    print(formatter.render(data, text))
    return EXIT_OK


def aggregate_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="govsig-aggregate",
        description="Merge signature envelopes from several maintainers"
    )
    parser.add_argument(
        "-s", "--signatures", nargs="+", action="append", required=True,
        help="Signature envelope files"
    )
    parser.add_argument("-o", "--output", default=config.AGGREGATE_OUTPUT, help="Output envelope file")
    parser.add_argument("-t", "--threshold", type=int, help="Informational threshold to record")
    _add_common_options(parser)
    args = parser.parse_args(argv)
    return _run(cmd_aggregate, args)


if __name__ == "__main__":
    tools = {
        "keygen": keygen_main,
        "sign": sign_main,
        "verify": verify_main,
        "aggregate": aggregate_main,
    }
    if len(sys.argv) < 2 or sys.argv[1] not in tools:
        print(f"usage: python -m govsig.cli {{{','.join(tools)}}} ...", file=sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)
    sys.exit(tools[sys.argv[1]](sys.argv[2:]))
