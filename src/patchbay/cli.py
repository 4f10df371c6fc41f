"""Command-line interface for patchbay."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from patchbay.controller import Patch
from patchbay.logging_setup import configure_logging
from patchbay.models import PatchDocument
from patchbay.schema import UnknownModuleKindError, builtin_registry
from patchbay.validate import validate_patch
from patchbay.visualize import patch_to_dot, patch_to_dot_file


def _load_document(path: str) -> PatchDocument:
    """Load and parse a patch JSON file."""
    text = Path(path).read_text()
    data = json.loads(text)
    return PatchDocument.model_validate(data)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    patch, errors = Patch.from_document(_load_document(args.file))
    if args.warn_dangling:
        errors.extend(
            e
            for e in validate_patch(
                patch.modules, patch.schemas, patch.connections.list(), warn_dangling=True
            )
            if e.severity == "warning"
        )

    has_errors = any(e.severity == "error" for e in errors)
    has_warnings = any(e.severity == "warning" for e in errors)

    for err in errors:
        prefix = "warning" if err.severity == "warning" else "error"
        print(f"{prefix}: [{err.rule}] {err}", file=sys.stderr)

    if has_errors:
        return 1
    if has_warnings:
        print("valid (with warnings)")
    else:
        print("valid")
    return 0


def _cmd_compile(args: argparse.Namespace) -> int:
    patch, rejections = Patch.from_document(_load_document(args.file))
    report = patch.compiler.last_report or patch.compile()

    if args.json:
        payload = {
            "name": patch.name,
            "generation": report.generation,
            "cables": report.cables(),
            "failures": [f.model_dump(mode="json") for f in report.failures],
            "rejections": [{"rule": r.rule, "message": str(r)} for r in rejections],
        }
        print(json.dumps(payload, indent=2))
    else:
        for conn in report.wired:
            print(f"connect {conn}")
        for rej in rejections:
            print(f"rejected: [{rej.rule}] {rej}", file=sys.stderr)
        for failure in report.failures:
            print(f"unresolved: [{failure.kind}] {failure}", file=sys.stderr)

    return 1 if rejections or report.failures else 0


def _cmd_dot(args: argparse.Namespace) -> int:
    patch, _rejections = Patch.from_document(_load_document(args.file))
    if args.output:
        patch_to_dot_file(patch, args.output)
    else:
        sys.stdout.write(patch_to_dot(patch))
    return 0


def _cmd_kinds(args: argparse.Namespace) -> int:
    for schema in builtin_registry():
        print(f"{schema.kind} ({schema.engine_type})")
        for port in schema.ports:
            slots = f" x{port.slot_count}" if port.multi_slot else ""
            print(f"  port  {port.name:<10} {port.direction:<6} {port.signal_kind}{slots}")
        for param in schema.params:
            flag = "" if param.automatable else " (fixed)"
            print(f"  param {param.name:<10} default={param.default}{flag}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the patchbay CLI."""
    parser = argparse.ArgumentParser(
        prog="patchbay",
        description="Validate, compile and visualize modular synth patches.",
    )
    parser.add_argument("--log-level", help="Override PATCHBAY_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command")

    # validate
    p_validate = sub.add_parser("validate", help="Validate patch JSON")
    p_validate.add_argument("file", help="Patch JSON file")
    p_validate.add_argument(
        "--warn-dangling",
        action="store_true",
        help="Warn on audio chains that never reach the destination",
    )

    # compile
    p_compile = sub.add_parser("compile", help="Compile patch against the in-memory engine")
    p_compile.add_argument("file", help="Patch JSON file")
    p_compile.add_argument("--json", action="store_true", help="Print the report as JSON")

    # dot
    p_dot = sub.add_parser("dot", help="Generate DOT visualization")
    p_dot.add_argument("file", help="Patch JSON file")
    p_dot.add_argument("-o", "--output", help="Output directory")

    # kinds
    sub.add_parser("kinds", help="List module kinds, ports and parameters")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help(sys.stderr)
        return 1

    configure_logging(args.log_level)

    try:
        if args.command == "validate":
            return _cmd_validate(args)
        elif args.command == "compile":
            return _cmd_compile(args)
        elif args.command == "dot":
            return _cmd_dot(args)
        elif args.command == "kinds":
            return _cmd_kinds(args)
    except FileNotFoundError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"error: invalid JSON: {e}", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"error: invalid patch: {e}", file=sys.stderr)
        return 1
    except UnknownModuleKindError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0  # pragma: no cover


if __name__ == "__main__":
    sys.exit(main())
