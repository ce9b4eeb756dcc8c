"""
Operator commands for the Odesli resolution cache.

    python -m app.cli stats
    python -m app.cli cleanup          # cron: 0 2 * * *
    python -m app.cli popular --limit 20
"""

import argparse
import asyncio
import sys

from app.core.resolution_cache import ResolutionCache
from app.dependencies import get_resolution_cache
from app.models.database import dispose_engine

import structlog

logger = structlog.get_logger()


def _print_stats(stats: dict) -> None:
    print(f"  Total entries:   {stats['total_entries']}")
    print(f"  Valid entries:   {stats['valid_entries']}")
    print(f"  Expired entries: {stats['expired_entries']}")
    print(f"  Total hits:      {stats['total_hits']}")
    if not stats.get("cache_enabled", True):
        print("  (cache store unreachable)")


def _print_popular(entries: list[dict]) -> None:
    for i, song in enumerate(entries, 1):
        print(
            f"  {i}. {song['title']} - {song['artist']} "
            f"({song['hit_count']} hits, {song['platforms_count']} platforms)"
        )


async def show_stats(cache: ResolutionCache) -> int:
    stats = await cache.stats()
    print("Odesli cache statistics:")
    _print_stats(stats)
    print(f"  Avg platforms:   {stats['avg_platform_count']}")
    print(f"  Last cached at:  {stats['last_cached_at'] or '-'}")
    return 0


async def cleanup(cache: ResolutionCache) -> int:
    before = await cache.stats()
    print("Before cleanup:")
    _print_stats(before)

    deleted = await cache.cleanup_expired()
    print(f"\nRemoved {deleted} expired entries")

    after = await cache.stats()
    print("\nAfter cleanup:")
    _print_stats(after)

    if after["total_entries"] > 0:
        print("\nTop cached songs:")
        _print_popular(await cache.popular(5))
    return 0


async def show_popular(cache: ResolutionCache, limit: int) -> int:
    entries = await cache.popular(limit)
    if not entries:
        print("No cached songs yet.")
        return 0
    print(f"Top {len(entries)} cached songs:")
    _print_popular(entries)
    return 0


async def run(args: argparse.Namespace, cache: ResolutionCache) -> int:
    if args.command == "stats":
        return await show_stats(cache)
    if args.command == "cleanup":
        return await cleanup(cache)
    return await show_popular(cache, args.limit)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app.cli", description="SmartLink Odesli cache maintenance")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="Show cache statistics")
    sub.add_parser("cleanup", help="Delete expired cache entries")
    popular = sub.add_parser("popular", help="List the most requested cached songs")
    popular.add_argument("--limit", type=int, default=10, help="Number of entries to show")
    return parser


async def _main(argv: list[str] | None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return await run(args, get_resolution_cache())
    except Exception as exc:
        logger.error("cli_command_failed", command=args.command, error=str(exc))
        print(f"Command failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_main(argv))


if __name__ == "__main__":
    sys.exit(main())
