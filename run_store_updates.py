#!/usr/bin/env python3
"""
Store Updates - CLI

Track new, updated and removed store extensions from the command line.

Usage:
    python run_store_updates.py refresh
    python run_store_updates.py refresh --auto --limit 20 --json
    python run_store_updates.py status
    python run_store_updates.py changelog my-extension --latest
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from catalog.refresh_gate import GateStatus
from catalog.timeline import filter_by_kind, filter_by_platform
from catalog.urls import changelog_browser_url, create_store_deeplink
from workflows.store_updates import PipelineConfig, StoreUpdatesPipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

KIND_LABELS = {"new": "NEW", "updated": "UPD", "removed": "DEL"}


async def run_refresh(args) -> int:
    """Run one reconciliation pass and print the timeline."""
    config = PipelineConfig.from_env()

    async with StoreUpdatesPipeline(config) as pipeline:
        outcome = await pipeline.refresh(manual=not args.auto)

    if outcome.blocked:
        print(outcome.blocked_message)
        return 2 if outcome.rate_limited else 1

    events = filter_by_kind(outcome.timeline, args.kind)
    events = filter_by_platform(events, args.platform)
    if args.limit:
        events = events[: args.limit]

    if args.json:
        payload = outcome.to_dict()
        payload["timeline"] = [event.to_dict() for event in events]
        print(json.dumps(payload, indent=2))
        return 0

    print(f"\n{'='*60}")
    print("STORE UPDATES")
    print(f"{'='*60}")
    for event in events:
        when = event.occurred_at.strftime("%Y-%m-%d %H:%M")
        print(f"[{KIND_LABELS[event.kind.value]}] {when}  {event.title}")
        if event.summary:
            print(f"      {event.summary}")
        print(f"      {create_store_deeplink(event.item_url)}")
    print(f"{'='*60}")
    print(
        f"New: {outcome.stats.new_events}  Updated: {outcome.stats.updated_events}  "
        f"Removed: {outcome.stats.removed_events}"
    )
    return 0


async def run_status(args) -> int:
    """Print refresh gate state."""
    config = PipelineConfig.from_env()

    async with StoreUpdatesPipeline(config) as pipeline:
        status = await pipeline.gate.status()
        message = await pipeline.gate.check_refresh_allowed()
        state = pipeline.gate.state

    print(f"Status: {status.value}")
    print(f"Last fetch (epoch ms): {state.last_fetch_epoch_ms or 'never'}")
    if status is GateStatus.LIMITED:
        print(f"Rate limit resets (epoch ms): {state.rate_limit_reset_epoch_ms}")
    print(message or "Manual refresh allowed")
    return 0


async def run_changelog(args) -> int:
    """Print an extension's changelog (or its latest section)."""
    config = PipelineConfig.from_env()

    async with StoreUpdatesPipeline(config) as pipeline:
        if args.latest:
            text = await pipeline.latest_changes(args.slug)
        else:
            text = await pipeline.packages.fetch_changelog(args.slug)

    if not text:
        print(f"No changelog available for {args.slug}")
        return 1

    print(text)
    print(f"\n{changelog_browser_url(args.slug)}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Store Updates CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_store_updates.py refresh
  python run_store_updates.py refresh --kind updated --platform windows
  python run_store_updates.py status
  python run_store_updates.py changelog my-extension --latest
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    refresh_parser = subparsers.add_parser("refresh", help="Fetch and classify store changes")
    refresh_parser.add_argument("--auto", action="store_true", help="Background refresh (skip the manual-refresh gate)")
    refresh_parser.add_argument("--kind", choices=["all", "new", "updated", "removed"], default="all")
    refresh_parser.add_argument("--platform", default="all", help="all, macOS or windows (default: all)")
    refresh_parser.add_argument("--limit", type=int, default=0, help="Max events to print (default: all)")
    refresh_parser.add_argument("--json", action="store_true", help="Output JSON")

    subparsers.add_parser("status", help="Show refresh gate state")

    changelog_parser = subparsers.add_parser("changelog", help="Show an extension's changelog")
    changelog_parser.add_argument("slug", help="Extension slug (directory name)")
    changelog_parser.add_argument("--latest", action="store_true", help="Only the most recent section")

    return parser


def main():
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args()

    if args.command == "refresh":
        exit_code = asyncio.run(run_refresh(args))
    elif args.command == "status":
        exit_code = asyncio.run(run_status(args))
    elif args.command == "changelog":
        exit_code = asyncio.run(run_changelog(args))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
