"""Main entry point for the notification client."""

import argparse
import asyncio
import logging
import os
import sys
import webbrowser
from dataclasses import replace
from typing import Callable, Optional

from .cache import NotificationCache
from .config import AppConfig, HydrationPolicy, SortMode, load_config
from .coordinator import MutationCoordinator
from .errors import AuthenticationError, OctotermError, RateLimitError
from .gateway import GitHubGateway
from .worker import (
    MarkAsRead,
    NotificationRemoved,
    NotificationsReplaced,
    OpenUrlResolved,
    OperationFailed,
    PipelineWorker,
    Refresh,
    ResolveOpenUrl,
)

logger = logging.getLogger(__name__)

SHELL_HELP = "r: refresh  l: list  m N: mark row N read  o N: open row N  q: quit"


def _configure_logging(level_name: str) -> None:
    # stdout carries command output; logs go to stderr.
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def apply_overrides(
    config: AppConfig,
    policy: Optional[str] = None,
    sort: Optional[str] = None,
) -> AppConfig:
    """Return a copy of config with command-line choices taking precedence."""
    pipeline = config.pipeline
    if policy:
        pipeline = replace(pipeline, hydration_policy=HydrationPolicy(policy))
    if sort:
        pipeline = replace(pipeline, sort_mode=SortMode(sort))
    return replace(config, pipeline=pipeline)


def print_inbox(cache: NotificationCache, out: Callable[[str], None] = print) -> None:
    """Print one numbered summary line per cached notification."""
    snapshot = cache.snapshot()
    if not snapshot:
        out("No unread notifications.")
        return
    for index, notification in enumerate(snapshot):
        out(f"{index:>3}  [{notification.id}] {notification.summary_line()}")


def describe_error(error: BaseException) -> str:
    """Status-line text for a failed operation."""
    if isinstance(error, RateLimitError):
        return f"Rate limited by GitHub, try again later. ({error})"
    if isinstance(error, AuthenticationError):
        return f"Authentication failed: {error}"
    return f"Error: {error}"


async def _run_command(config: AppConfig, args) -> None:
    cache = NotificationCache()
    async with GitHubGateway(config.github) as gateway:
        coordinator = MutationCoordinator(gateway, cache, config.pipeline)
        await coordinator.refresh()

        if args.command == "list":
            print_inbox(cache)
        elif args.command == "read":
            await coordinator.mark_as_read(args.id)
            print(f"Marked {args.id} as read.")
        elif args.command == "open":
            url = await coordinator.resolve_open_url(args.id)
            if args.print_url or not webbrowser.open(url):
                print(url)


def _row_id(worker: PipelineWorker, arg: str) -> Optional[str]:
    try:
        notification = worker.cache.get(int(arg))
    except ValueError:
        notification = None
    if notification is None:
        print(f"No row {arg!r}.")
        return None
    return notification.id


def _report(worker: PipelineWorker) -> None:
    """Wait for the answer to one submitted request and print it."""
    response = worker.responses.get()
    if isinstance(response, NotificationsReplaced):
        print_inbox(worker.cache)
    elif isinstance(response, NotificationRemoved):
        print(f"Marked {response.notification_id} as read.")
    elif isinstance(response, OpenUrlResolved):
        if not webbrowser.open(response.url):
            print(response.url)
    elif isinstance(response, OperationFailed):
        print(describe_error(response.error))


def run_shell(config: AppConfig) -> None:
    """Interactive loop driving the background worker."""
    with PipelineWorker(config) as worker:
        print(SHELL_HELP)
        worker.submit(Refresh())
        _report(worker)
        while True:
            try:
                line = input("octoterm> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not line:
                continue
            command, _, arg = line.partition(" ")
            if command == "q":
                break
            if command == "l":
                print_inbox(worker.cache)
                continue
            if command == "r":
                worker.submit(Refresh())
            elif command in ("m", "o"):
                notification_id = _row_id(worker, arg.strip())
                if notification_id is None:
                    continue
                worker.submit(MarkAsRead(notification_id) if command == "m" else ResolveOpenUrl(notification_id))
            else:
                print(SHELL_HELP)
                continue
            _report(worker)


def main():
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Terminal client for your GitHub notification inbox"
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in HydrationPolicy],
        default=None,
        help="What to do when one notification fails to load (default: HYDRATION_POLICY or 'strict')"
    )
    parser.add_argument(
        "--sort",
        choices=[m.value for m in SortMode],
        default=None,
        help="Inbox ordering (default: SORT_MODE or 'recency')"
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("list", help="Print the unread inbox")
    read_parser = subparsers.add_parser("read", help="Mark a notification as read")
    read_parser.add_argument("id", help="Notification thread id")
    open_parser = subparsers.add_parser("open", help="Open a notification in the browser")
    open_parser.add_argument("id", help="Notification thread id")
    open_parser.add_argument("--print-url", action="store_true", help="Print the URL instead of opening it")
    subparsers.add_parser("shell", help="Interactive inbox (default)")

    args = parser.parse_args()

    _configure_logging(os.getenv("LOG_LEVEL", "INFO").upper())

    try:
        config = apply_overrides(load_config(), args.policy, args.sort)
        if args.command in (None, "shell"):
            run_shell(config)
        else:
            asyncio.run(_run_command(config, args))
    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        sys.exit(2)
    except (OctotermError, ValueError) as e:
        logger.error(describe_error(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
