from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .authorizer import Authorizer
from .core.engine import DecisionEngine
from .core.errors import AbacxError
from .core.model import Subject
from .dsl.lint import analyze_document
from .dsl.validate import schema_errors
from .store.memory import InMemoryPolicyStore
from .store.policy_loader import parse_policy_text

EXIT_OK = 0
EXIT_SCHEMA_ERRORS = 2
EXIT_LINT_ERRORS = 3
EXIT_DENIED = 4
EXIT_USAGE = 64
EXIT_ENV = 78


class _UsageError(Exception):
    pass


def _print(obj: Any, fmt: str = "json") -> None:
    if isinstance(obj, str):
        sys.stdout.write(obj if obj.endswith("\n") else obj + "\n")
        return
    if fmt == "json":
        sys.stdout.write(json.dumps(obj, ensure_ascii=False, indent=2, default=str) + "\n")
    else:
        sys.stdout.write(str(obj) + "\n")


def _read_doc(path: Optional[str], fmt: Optional[str] = None) -> Dict[str, Any]:
    try:
        if path in (None, "-"):
            text, filename = sys.stdin.read(), None
        else:
            with open(path, "r", encoding="utf-8") as f:
                text, filename = f.read(), path
    except OSError as e:
        raise _UsageError(f"cannot read policy document: {e}") from e
    return parse_policy_text(text, fmt=fmt, filename=filename)


def _parse_json_arg(raw: Optional[str], name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        val = json.loads(raw)
    except json.JSONDecodeError as e:
        raise _UsageError(f"{name} must be a JSON object: {e}") from e
    if not isinstance(val, dict):
        raise _UsageError(f"{name} must be a JSON object")
    return val


def _format_issues_text(issues: List[Dict[str, Any]]) -> str:
    if not issues:
        return "OK"
    lines = []
    for it in issues:
        where = it.get("path") or (f"policies[{it['index']}]" if "index" in it else "")
        code = it.get("code")
        head = f"{code}: " if code else ""
        lines.append(f"{where}: {head}{it.get('message')}" if where else f"{head}{it.get('message')}")
    return "\n".join(lines)


def _emit(issues: List[Dict[str, Any]], fmt: str) -> None:
    if fmt == "text":
        _print(_format_issues_text(issues))
    else:
        _print(issues)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


def cmd_validate(args: argparse.Namespace) -> int:
    doc = _read_doc(args.policy, getattr(args, "input_format", None))
    try:
        errors = schema_errors(doc)
    except RuntimeError as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_ENV
    _emit(errors, args.format)
    return EXIT_SCHEMA_ERRORS if errors else EXIT_OK


def cmd_lint(args: argparse.Namespace) -> int:
    doc = _read_doc(args.policy, getattr(args, "input_format", None))
    issues = analyze_document(doc)
    _emit(issues, args.format)
    return EXIT_LINT_ERRORS if issues and args.strict else EXIT_OK


def cmd_check(args: argparse.Namespace) -> int:
    doc = _read_doc(args.policy, getattr(args, "input_format", None))
    try:
        errors = schema_errors(doc)
    except RuntimeError as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_ENV
    if errors:
        _emit(errors, args.format)
        return EXIT_SCHEMA_ERRORS
    issues = analyze_document(doc)
    _emit(issues, args.format)
    return EXIT_LINT_ERRORS if issues and args.strict else EXIT_OK


def cmd_decide(args: argparse.Namespace) -> int:
    doc = _read_doc(args.policy, getattr(args, "input_format", None))
    attrs = _parse_json_arg(args.attrs, "--attrs")
    resource = _parse_json_arg(args.resource, "--resource") or None
    try:
        store = InMemoryPolicyStore.from_document(doc)
    except AbacxError as e:
        sys.stderr.write(f"invalid policy document: {e}\n")
        return EXIT_SCHEMA_ERRORS
    authorizer = Authorizer(DecisionEngine(store), roles=store)
    decision = authorizer.evaluate_sync(Subject(id=args.subject, attrs=attrs), args.permission, resource)
    out = {
        "allowed": decision.allowed,
        "effect": decision.effect,
        "reason": decision.reason,
        "policy_id": decision.policy_id,
        "role_id": decision.role_id,
    }
    if decision.error is not None:
        out["error"] = str(decision.error)
    if args.format == "text":
        _print(f"{decision.effect} ({decision.reason})")
    else:
        _print(out)
    return EXIT_OK if decision.allowed else EXIT_DENIED


# --------------------------------------------------------------------------- #
# Parser
# --------------------------------------------------------------------------- #


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="abacx", description="Policy document tooling")
    p.add_argument("--version", action="version", version=f"abacx {__version__}")
    sub = p.add_subparsers(dest="command")

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("policy", nargs="?", help="policy document (JSON/YAML); '-' or omitted reads stdin")
        sp.add_argument("--format", choices=("json", "text"), default="json")
        sp.add_argument("--input-format", choices=("json", "yaml"), default=None)

    sp = sub.add_parser("validate", help="validate a document against the JSON schema")
    common(sp)
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("lint", help="report semantic issues")
    common(sp)
    sp.add_argument("--strict", action="store_true", help="non-zero exit code when issues are found")
    sp.set_defaults(func=cmd_lint)

    sp = sub.add_parser("check", help="validate, then lint")
    common(sp)
    sp.add_argument("--strict", action="store_true")
    sp.set_defaults(func=cmd_check)

    sp = sub.add_parser("decide", help="evaluate one permission for a subject")
    common(sp)
    sp.add_argument("--subject", required=True, help="subject id")
    sp.add_argument("--permission", required=True)
    sp.add_argument("--attrs", default=None, help="subject attributes as a JSON object")
    sp.add_argument("--resource", default=None, help="resource attributes as a JSON object")
    sp.set_defaults(func=cmd_decide)
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE
    try:
        return int(func(args))
    except _UsageError as e:
        sys.stderr.write(f"abacx: {e}\n")
        return EXIT_USAGE
    except ImportError as e:
        sys.stderr.write(f"abacx: {e}\n")
        return EXIT_ENV
    except ValueError as e:
        # JSONDecodeError is a ValueError; so is a non-mapping document
        sys.stderr.write(f"abacx: cannot parse policy document: {e}\n")
        return EXIT_SCHEMA_ERRORS


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
