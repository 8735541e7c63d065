"""CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

from .coach import GeminiCoach
from .config import AppConfig, load_config
from .controller import ReconciliationController
from .insights import (
    average_ticket,
    category_totals,
    forecast_budget,
    shopping_suggestions,
    spending_trend,
    summarize_users,
    total_saved,
)
from .store import LocalCache, create_remote_store
from .vision import create_extractor
from .wakelock import create_wake_lock


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="smartreceipts",
        description="Scan grocery receipts, track spending against a budget and chat with a coach",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the config file (TOML)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable logging")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show the signed-in user and sync state")

    signin = sub.add_parser("signin", help="Sign in with an existing account")
    signin.add_argument("email")

    signup = sub.add_parser("signup", help="Create an account with an access code")
    signup.add_argument("email")
    signup.add_argument("--code", required=True, help="Access code")
    signup.add_argument("--name", default="", help="Display name")

    sub.add_parser("logout", help="Sign out and clear the local cache")

    scan = sub.add_parser("scan", help="Extract and save receipts from images or PDFs")
    scan.add_argument("files", nargs="+")
    scan.add_argument("--json", action="store_true", help="Output as JSON")

    history = sub.add_parser("history", help="List saved receipts")
    history.add_argument("--json", action="store_true", help="Output as JSON")

    sub.add_parser("forecast", help="Project this month's spend against the budget")
    sub.add_parser("report", help="Spend per category and recent trend")
    sub.add_parser("suggest", help="Shopping list suggestions from past purchases")

    chat = sub.add_parser("chat", help="Ask the coach a question")
    chat.add_argument("message")

    cloud = sub.add_parser("cloud", help="Enable or disable cloud sync")
    cloud.add_argument("mode", choices=["on", "off"])

    export = sub.add_parser("export", help="Write a JSON backup")
    export.add_argument("file")

    imp = sub.add_parser("import", help="Restore a JSON backup")
    imp.add_argument("file")

    sub.add_parser("users", help="List all users (owner only)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    load_dotenv()
    config = load_config(args.config)
    sys.exit(asyncio.run(_run(config, args)))


def build_controller(config: AppConfig) -> ReconciliationController:
    extractor = None
    try:
        extractor = create_extractor(config)
    except ValueError as e:
        print(str(e), file=sys.stderr)

    return ReconciliationController(
        local=LocalCache(config.storage.cache_dir),
        remote=create_remote_store(config),
        extractor=extractor,
        coach=GeminiCoach(
            api_key=config.vision.gemini.api_key,
            model=config.coach.model,
        ),
        wake_lock=create_wake_lock(),
        debounce_seconds=config.sync.debounce_seconds,
        admin_emails=config.admin.emails,
    )


async def _run(config: AppConfig, args) -> int:
    controller = build_controller(config)
    await controller.boot()
    try:
        needs_session = args.command not in ("signin", "signup", "status")
        if needs_session and not controller.state.user_profile.email:
            print("Not signed in. Use `smartreceipts signin EMAIL` first.", file=sys.stderr)
            return 1

        match args.command:
            case "status":
                return _cmd_status(controller)
            case "signin":
                return await _cmd_signin(controller, args)
            case "signup":
                return await _cmd_signup(controller, args)
            case "logout":
                controller.logout()
                print("Signed out.")
                return 0
            case "scan":
                return await _cmd_scan(controller, args)
            case "history":
                return _cmd_history(controller, args)
            case "forecast":
                return _cmd_forecast(controller)
            case "report":
                return _cmd_report(controller)
            case "suggest":
                return _cmd_suggest(controller)
            case "chat":
                return await _cmd_chat(controller, args)
            case "cloud":
                controller.set_cloud_enabled(args.mode == "on")
                print(f"Cloud sync {'enabled' if args.mode == 'on' else 'disabled'}.")
                return 0
            case "export":
                Path(args.file).write_text(
                    json.dumps(controller.export_backup(), ensure_ascii=False, indent=2),
                    encoding="utf-8",
                )
                print(f"Backup written: {args.file}")
                return 0
            case "import":
                return _cmd_import(controller, args)
            case "users":
                return await _cmd_users(controller)
        return 1
    finally:
        await controller.flush()
        controller.close()


def _cmd_status(controller: ReconciliationController) -> int:
    state = controller.state
    profile = state.user_profile
    if not profile.email:
        print("Not signed in.")
    else:
        print(f"User:     {profile.user_name or '-'} <{profile.email}>")
        print(f"Account:  {profile.account_status} ({profile.role})")
        print(f"Receipts: {len(state.history)}")
        print(f"Budget:   {profile.monthly_budget:.2f}")
    backend = "cloud" if controller.is_cloud_active else "local only"
    print(f"Sync:     {'on' if state.is_cloud_enabled else 'off'} [{backend}]")
    return 0


async def _cmd_signin(controller: ReconciliationController, args) -> int:
    if await controller.sign_in(args.email):
        print(f"Signed in as {controller.state.user_profile.email}.")
        return 0
    print(f"Sign-in failed: {controller.state.error}", file=sys.stderr)
    return 1


async def _cmd_signup(controller: ReconciliationController, args) -> int:
    if await controller.sign_up(args.email, args.code, user_name=args.name):
        profile = controller.state.user_profile
        print(f"Account created for {profile.email} ({profile.account_status}).")
        return 0
    print(f"Sign-up failed: {controller.state.error}", file=sys.stderr)
    return 1


async def _cmd_scan(controller: ReconciliationController, args) -> int:
    files: list[tuple[bytes, str]] = []
    for name in args.files:
        path = Path(name)
        if not path.exists():
            print(f"File not found: {path}", file=sys.stderr)
            return 1
        mime_type = mimetypes.guess_type(name)[0] or "image/jpeg"
        files.append((path.read_bytes(), mime_type))

    print(f"Processing {len(files)} file(s)...")
    try:
        drafts = await controller.process_batch(files)
    except (RuntimeError, ValueError, ImportError) as e:
        print(str(e), file=sys.stderr)
        return 1

    saved = [controller.save_receipt(d) for d in drafts]
    if args.json:
        print(json.dumps([r.to_dict() for r in saved], ensure_ascii=False, indent=2))
    else:
        for r in saved:
            print(f"  {r.meta.date} {r.meta.store:<20} {r.meta.total_spent:>8.2f}  "
                  f"({len(r.items)} items, quality {r.meta.scan_quality})")
            mismatched = [i.name_clean for i in r.items if i.has_price_mismatch]
            if mismatched:
                print(f"    check prices: {', '.join(mismatched)}")
            if r.coach_message:
                print(f"    {r.coach_message}")
    if controller.state.error:
        print(f"Some files could not be read: {controller.state.error}", file=sys.stderr)
        return 1
    return 0


def _cmd_history(controller: ReconciliationController, args) -> int:
    history = controller.state.history
    if args.json:
        print(json.dumps([r.to_dict() for r in history], ensure_ascii=False, indent=2))
        return 0
    if not history:
        print("No receipts yet.")
        return 0
    for r in history:
        print(f"  {r.id[:8]}  {r.meta.date} {r.meta.store:<20} {r.meta.total_spent:>8.2f}")
    return 0


def _cmd_forecast(controller: ReconciliationController) -> int:
    state = controller.state
    f = forecast_budget(state.user_profile, state.history)
    print(f"Day {f.day} of {f.days_in_month}")
    if not f.has_data:
        print("No spending recorded this month.")
        return 0
    print(f"Spent:     {f.spent_so_far:.2f} of {f.monthly_budget:.2f} ({f.utilization_pct:.0f}%)")
    print(f"Projected: {f.projected_spend:.2f} ({f.projected_utilization_pct:.0f}%)")
    if f.is_over_budget:
        print("Warning: on track to exceed the budget.")
    return 0


def _cmd_report(controller: ReconciliationController) -> int:
    history = controller.state.history
    print("Spend per category:")
    for category, total in category_totals(history):
        print(f"  {category:<15} {total:>8.2f}")
    print("Recent receipts:")
    for day, total in spending_trend(history):
        print(f"  {day:<12} {total:>8.2f}")
    print(f"Average ticket: {average_ticket(history):.2f}")
    print(f"Total saved:    {total_saved(history):.2f}")
    return 0


def _cmd_suggest(controller: ReconciliationController) -> int:
    suggestions = shopping_suggestions(controller.state.history)
    if not suggestions:
        print("No suggestions yet.")
        return 0
    for s in suggestions:
        print(f"  {s.name:<25} x{s.count:<3} best {s.best_price:.2f} at {s.preferred_store}")
    return 0


async def _cmd_chat(controller: ReconciliationController, args) -> int:
    try:
        answer = await controller.send_chat_message(args.message)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1
    if answer is None:
        print(f"Coach unavailable: {controller.state.error}", file=sys.stderr)
        return 1
    print(answer)
    return 0


def _cmd_import(controller: ReconciliationController, args) -> int:
    try:
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
        controller.import_backup(data)
    except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
        print(f"Invalid backup file: {e}", file=sys.stderr)
        return 1
    print(f"Imported {len(controller.state.history)} receipts.")
    return 0


async def _cmd_users(controller: ReconciliationController) -> int:
    try:
        profiles = await controller.list_users()
    except PermissionError as e:
        print(str(e), file=sys.stderr)
        return 1
    stats = summarize_users(profiles)
    print(f"Users: {stats['total']} (active {stats['active']})")
    if stats["codes"]:
        print(f"Codes: {', '.join(stats['codes'])}")
    for p in profiles:
        print(f"  {p.email:<30} {p.account_status:<8} {p.role}")
    return 0


if __name__ == "__main__":
    main()
