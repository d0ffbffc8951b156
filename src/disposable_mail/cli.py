"""Command-line interface for the Disposable Mail client.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

import structlog

from disposable_mail import __version__
from disposable_mail.backup import backup_filename, read_backup, write_backup
from disposable_mail.config import Settings, get_settings
from disposable_mail.exceptions import DisposableMailError, NetworkError
from disposable_mail.models import DateFilter, FilterSpec, Message, StatusFilter, View
from disposable_mail.session import MailboxSession
from disposable_mail.sync import TabSynchronizer

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="disposable-mail", description="Disposable Mail client")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite profile database (default: settings db_path)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("generate", help="Bind a fresh disposable address to the active account")
    subparsers.add_parser("fetch", help="Fetch the provider inbox and store new messages")

    list_parser = subparsers.add_parser("list", help="List one view of the active account")
    list_parser.add_argument(
        "--view",
        choices=[v.value for v in View],
        default=View.UPDATES.value,
        help="inbox lists read mail, updates lists unread mail (default: updates)",
    )
    list_parser.add_argument("--page", type=int, default=1, help="Page number (clamped to range)")
    list_parser.add_argument("--status", choices=[s.value for s in StatusFilter], default="all")
    list_parser.add_argument("--date", choices=[d.value for d in DateFilter], default="all")
    list_parser.add_argument(
        "--from",
        dest="date_from",
        type=date.fromisoformat,
        default=None,
        help="Start of a custom date range (YYYY-MM-DD)",
    )
    list_parser.add_argument(
        "--to",
        dest="date_to",
        type=date.fromisoformat,
        default=None,
        help="End of a custom date range (YYYY-MM-DD)",
    )
    list_parser.add_argument("--search", default="", help="Case-insensitive text to look for")

    for name, help_text in (
        ("open", "Show a message and mark it read"),
        ("star", "Toggle the starred flag of a message"),
        ("delete", "Delete a message permanently"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("message_id", help="Message identifier")

    subparsers.add_parser("clear", help="Delete every message of the active account")
    subparsers.add_parser("delete-read", help="Delete the read messages of the active account")
    subparsers.add_parser("mark-all-read", help="Mark every message of the active account read")

    accounts_parser = subparsers.add_parser("accounts", help="Manage mailbox accounts")
    accounts_sub = accounts_parser.add_subparsers(dest="accounts_command", required=True)
    accounts_sub.add_parser("list", help="List registered accounts")
    add_parser = accounts_sub.add_parser("add", help="Register a new account")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument("--email", default=None, help="Existing disposable address to bind")
    switch_parser = accounts_sub.add_parser("switch", help="Make an account active")
    switch_parser.add_argument("account_id", help="Account identifier")

    backup_parser = subparsers.add_parser("backup", help="Export or import profile backups")
    backup_sub = backup_parser.add_subparsers(dest="backup_command", required=True)
    export_parser = backup_sub.add_parser("export", help="Write a backup file")
    export_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Destination file (default: tempmail-backup-<date>.json)",
    )
    import_parser = backup_sub.add_parser("import", help="Replace profile state from a backup file")
    import_parser.add_argument("path", type=Path, help="Backup file to import")

    subparsers.add_parser("stats", help="Show usage analytics")

    watch_parser = subparsers.add_parser(
        "watch",
        help="Refresh the inbox periodically and keep other sessions in sync",
    )
    watch_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    return parser


def _format_message(message: Message) -> str:
    state = "READ" if message.is_read else "UNREAD"
    star = "*" if message.starred else " "
    return f"{star} {state}\t{message.created_at.isoformat()}\t{message.id}\t{message.sender}\t{message.subject}"


async def _cmd_generate(session: MailboxSession, args: argparse.Namespace) -> int:
    email = await session.generate_address()
    print(email)
    return 0


async def _cmd_fetch(session: MailboxSession, args: argparse.Namespace) -> int:
    result = await session.refresh_inbox()
    print(
        f"{result.inserted} new, {result.duplicates} already stored, "
        f"{result.tombstoned} deleted, {result.malformed} skipped"
    )
    return 0 if result.ok else 1


async def _cmd_list(session: MailboxSession, args: argparse.Namespace) -> int:
    spec = FilterSpec(
        status=StatusFilter(args.status),
        date=DateFilter(args.date),
        date_from=args.date_from,
        date_to=args.date_to,
        search=args.search,
    )
    await session.apply_filter(spec)
    view = View(args.view)
    mailbox = await session.change_page(view, args.page)
    page = mailbox.read if view is View.INBOX else mailbox.unread

    for message in page.items:
        print(_format_message(message))
    print(f"\nPage {page.page}/{page.total_pages} ({page.total_count} messages, {mailbox.unread_total_count} unread)")
    return 0


async def _cmd_open(session: MailboxSession, args: argparse.Namespace) -> int:
    message = await session.open_message(args.message_id)
    print(f"From: {message.sender}")
    print(f"Date: {message.created_at.isoformat()}")
    print(f"Subject: {message.subject}")
    print()
    print(message.body)
    return 0


async def _cmd_star(session: MailboxSession, args: argparse.Namespace) -> int:
    starred = await session.toggle_star(args.message_id)
    print("starred" if starred else "unstarred")
    return 0


async def _cmd_delete(session: MailboxSession, args: argparse.Namespace) -> int:
    removed = await session.delete_message(args.message_id)
    print("deleted" if removed else "not found")
    return 0 if removed else 1


async def _cmd_bulk(session: MailboxSession, args: argparse.Namespace) -> int:
    if args.command == "clear":
        result = await session.clear_account()
    elif args.command == "delete-read":
        result = await session.delete_read()
    else:
        result = await session.mark_all_read()

    print(f"{result.applied}/{result.requested} applied")
    for failure in result.failures:
        print(f"  failed {failure.message_id}: {failure.error}")
    return 0 if result.ok else 1


async def _cmd_accounts(session: MailboxSession, args: argparse.Namespace) -> int:
    if args.accounts_command == "add":
        account = await session.add_account(args.name, args.email)
        print(account.id)
        return 0

    if args.accounts_command == "switch":
        await session.switch_account(args.account_id)

    for account in session.accounts.all():
        marker = ">" if account.id == session.active_account_id else " "
        print(f"{marker} {account.id}\t{account.display_name}\t{account.email_address or '(no address)'}")
    return 0


async def _cmd_backup(session: MailboxSession, args: argparse.Namespace) -> int:
    if args.backup_command == "export":
        path = write_backup(args.output or Path(backup_filename()), await session.export_backup())
        print(f"Backup written to {path}")
        return 0

    result = await session.import_backup(read_backup(args.path))
    print(f"Imported {result.applied} messages")
    for failure in result.failures:
        print(f"  failed {failure.message_id}: {failure.error}")
    return 0 if result.ok else 1


async def _cmd_stats(session: MailboxSession, args: argparse.Namespace) -> int:
    analytics = session.analytics_snapshot()
    print(f"Messages received: {analytics.messages_received}")
    print(f"Messages read: {analytics.messages_read}")
    print(f"Addresses generated: {analytics.emails_generated}")
    print(f"Storage used: {analytics.storage_used} bytes")
    print(f"Last sync: {analytics.last_sync.isoformat() if analytics.last_sync else 'never'}")
    return 0


async def _auto_refresh(session: MailboxSession, stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        try:
            result = await session.refresh_inbox()
            if result.inserted:
                print(f"{result.inserted} new message(s)")
        except NetworkError as exc:
            logger.warning("auto_refresh_failed", account_id=session.active_account_id, error=str(exc))
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=session.profile_settings.refresh_interval)
        except asyncio.TimeoutError:
            pass


async def _cmd_watch(session: MailboxSession, args: argparse.Namespace) -> int:
    stop_event = asyncio.Event()
    synchronizer = TabSynchronizer(session)
    tasks = [
        asyncio.create_task(_auto_refresh(session, stop_event)),
        asyncio.create_task(synchronizer.run(stop_event)),
    ]
    try:
        if args.duration is not None:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        stop_event.set()
        await asyncio.gather(*tasks)
    return 0


_COMMANDS = {
    "generate": _cmd_generate,
    "fetch": _cmd_fetch,
    "list": _cmd_list,
    "open": _cmd_open,
    "star": _cmd_star,
    "delete": _cmd_delete,
    "clear": _cmd_bulk,
    "delete-read": _cmd_bulk,
    "mark-all-read": _cmd_bulk,
    "accounts": _cmd_accounts,
    "backup": _cmd_backup,
    "stats": _cmd_stats,
    "watch": _cmd_watch,
}


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    async with MailboxSession(settings) as session:
        return await _COMMANDS[args.command](session, args)


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Disposable Mail CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
    )

    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.db is not None:
        settings = settings.model_copy(update={"db_path": parsed.db})

    logger.info("disposable_mail_started", version=__version__, debug=settings.debug, command=parsed.command)

    if parsed.command not in _COMMANDS:
        logger.error("unknown_command", command=parsed.command)
        return 2

    try:
        return asyncio.run(_run(settings, parsed))
    except KeyboardInterrupt:
        return 130
    except DisposableMailError as exc:
        logger.error("command_failed", command=parsed.command, error_type=type(exc).__name__, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
