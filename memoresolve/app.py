import argparse
import json
from pathlib import Path
from typing import Any

from . import __version__
from .cleanup import cleanup_expired_clarifications
from .config import ResolutionConfig
from .embeddings import build_embedder
from .env import load_env
from .errors import ConfigError, PlanValidationError
from .logger import get_logger
from .resolution import ResolutionCoordinator
from .schema import parse_plan
from .services import DomainServices
from .storage import StoreBackedServices


def emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def load_json(path: Path) -> Any:
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def build_config(args: argparse.Namespace) -> ResolutionConfig:
    try:
        config = ResolutionConfig.from_env()
    except ConfigError as e:
        raise SystemExit(f"Configuration error: {e}")
    overrides = {}
    if getattr(args, "db", None):
        overrides["db_path"] = Path(args.db)
    if getattr(args, "store", None):
        overrides["store_path"] = Path(args.store)
    if getattr(args, "language", None):
        overrides["default_language"] = args.language
    if overrides:
        config = config.with_overrides(**overrides)
    get_logger().logger.setLevel(config.log_level.upper())
    return config


def build_coordinator(config: ResolutionConfig) -> ResolutionCoordinator:
    embedder = build_embedder(config.embeddings_url, config.embeddings_model, config.embeddings_api_key)
    services = StoreBackedServices.from_path(config.store_path, embedder)
    return ResolutionCoordinator.from_services(services, config)


def cmd_resolve(args: argparse.Namespace) -> None:
    config = build_config(args)
    plan = load_json(Path(args.plan))
    coordinator = build_coordinator(config)
    try:
        result = coordinator.run_turn(args.user, plan=plan)
    except PlanValidationError as e:
        emit({"status": "invalid_plan", "errors": e.errors})
        raise SystemExit(2)
    emit(result.to_dict())


def cmd_reply(args: argparse.Namespace) -> None:
    config = build_config(args)
    coordinator = build_coordinator(config)
    result = coordinator.run_turn(args.user, selection=args.selection)
    emit(result.to_dict())


def ledger_coordinator(config: ResolutionConfig) -> ResolutionCoordinator:
    """Coordinator for commands that only touch the ledger; no store is loaded."""
    return ResolutionCoordinator.from_services(DomainServices(), config)


def cmd_pending(args: argparse.Namespace) -> None:
    config = build_config(args)
    pending = ledger_coordinator(config).pending(args.user)
    if pending is None:
        emit({"user_id": args.user, "pending": None})
        return
    payload = pending.to_payload()
    payload["attempts"] = pending.attempts
    payload["expires_at"] = pending.expires_at.isoformat() if pending.expires_at else None
    emit({"user_id": args.user, "pending": payload})


def cmd_cancel(args: argparse.Namespace) -> None:
    config = build_config(args)
    cancelled = ledger_coordinator(config).cancel_pending(args.user)
    emit({"user_id": args.user, "cancelled": cancelled})


def cmd_validate(args: argparse.Namespace) -> None:
    plan = load_json(Path(args.plan))
    try:
        steps = parse_plan(plan)
    except PlanValidationError as e:
        emit({"valid": False, "errors": e.errors})
        raise SystemExit(2)
    emit({"valid": True, "steps": [s.to_dict() for s in steps]})


def cmd_cleanup(args: argparse.Namespace) -> None:
    config = build_config(args)
    before, after = cleanup_expired_clarifications(config.db_path, config.clarification_ttl_seconds)
    emit({"before": before, "after": after, "removed": before - after})


def _add_location_args(sub: argparse.ArgumentParser, store: bool = False) -> None:
    sub.add_argument("--db", help="Path to the clarification ledger (default: data/memoresolve.db)")
    if store:
        sub.add_argument("--store", help="Path to JSON store with the user's entities (default: data/store.json)")
        sub.add_argument("--language", choices=["he", "en", "other"], help="Language for questions")


def main():
    # Load .env if present (MEMORESOLVE_* settings, embeddings credentials)
    load_env()
    parser = argparse.ArgumentParser(prog="memoresolve", description="Entity resolution and disambiguation CLI")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    res = subparsers.add_parser("resolve", help="Resolve a plan JSON for a user")
    res.add_argument("--user", required=True, help="User id")
    res.add_argument("--plan", required=True, help="Path to plan JSON (list of steps or {\"steps\": [...]})")
    _add_location_args(res, store=True)
    res.set_defaults(func=cmd_resolve)

    rep = subparsers.add_parser("reply", help="Answer the user's pending clarification")
    rep.add_argument("--user", required=True, help="User id")
    rep.add_argument("--selection", required=True, help="Reply text, e.g. \"2\", \"1,3\" or \"both\"")
    _add_location_args(rep, store=True)
    rep.set_defaults(func=cmd_reply)

    pen = subparsers.add_parser("pending", help="Show the user's pending clarification")
    pen.add_argument("--user", required=True, help="User id")
    _add_location_args(pen)
    pen.set_defaults(func=cmd_pending)

    can = subparsers.add_parser("cancel", help="Drop the user's pending clarification")
    can.add_argument("--user", required=True, help="User id")
    _add_location_args(can)
    can.set_defaults(func=cmd_cancel)

    val = subparsers.add_parser("validate", help="Validate a plan JSON")
    val.add_argument("--plan", required=True, help="Path to plan JSON")
    val.set_defaults(func=cmd_validate)

    cln = subparsers.add_parser("cleanup", help="Delete expired pending clarifications")
    _add_location_args(cln)
    cln.set_defaults(func=cmd_cleanup)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
