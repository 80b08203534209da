"""Command-line interface for the profile crawler."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional

from profilecrawl.config import Config
from profilecrawl.constants import CRAWL_TOPIC
from profilecrawl.container import Components, build_components
from profilecrawl.database import LocalSqliteStore
from profilecrawl.errors import JobNotFoundError, StorageError
from profilecrawl.logging_config import logging_from_config
from profilecrawl.models import JobPriority, JobStatus, Profile
from profilecrawl.services import JobService

logger = logging.getLogger(__name__)


def load_config(args) -> Config:
    config = Config.from_file(args.config) if args.config else Config.from_env()
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file
    return config


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set the stop event on SIGINT/SIGTERM so in-flight items can finish."""
    loop = asyncio.get_running_loop()

    def request_stop(signame: str) -> None:
        if not stop_event.is_set():
            logger.warning(f"Received {signame}, finishing in-flight items before exit")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig.name)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(stop_event.set))


def print_report(report: dict, output: str) -> None:
    if output == "json":
        print(json.dumps(report, indent=2))
        return

    print(f"\n{'=' * 60}")
    print(f"Crawl job {report['job_id']}: {report['status'].upper()}")
    print(f"{'=' * 60}")
    print(f"  Total:        {report['total']}")
    print(f"  Processed:    {report['processed']}")
    print(f"  Failed:       {report['failed']}")
    print(f"  Success rate: {report['success_rate']:.1f}%")
    counts = report["counts"]
    print(f"  Items:        {counts['ok']} ok, {counts['error']} error, "
          f"{counts['blocked']} blocked, {counts['pending']} pending")

    if report["failures"]:
        print("\nFailures:")
        for failure in report["failures"]:
            code = failure["last_status_code"] if failure["last_status_code"] is not None else "-"
            print(f"  [{failure['status']}] {failure['url']} (HTTP {code}, "
                  f"{failure['attempts']} attempt(s)): {failure['error']}")
    print()


def print_profiles(profiles: list[Profile], output: str) -> None:
    if output == "json":
        print(json.dumps([
            {
                "source_url": p.source_url,
                "username": p.username,
                "display_name": p.display_name,
                "bio": p.bio,
                "avatar_url": p.avatar_url,
                "cover_url": p.cover_url,
                "public_stats": p.public_stats,
                "links": p.links,
                "scraped_at": p.scraped_at.isoformat(),
            }
            for p in profiles
        ], indent=2))
        return

    if not profiles:
        print("No profiles found.")
        return

    for p in profiles:
        print(f"{p.display_name or '(no name)'} @{p.username or '-'}")
        print(f"  {p.source_url}")
        if p.bio:
            print(f"  {p.bio[:120]}")
        if p.public_stats:
            print("  " + ", ".join(f"{v} {k}" for k, v in p.public_stats.items()))
        print(f"  scraped {p.scraped_at:%Y-%m-%d %H:%M}")


async def _wait_for_jobs(components: Components, stop_event: asyncio.Event) -> None:
    drained = asyncio.create_task(components.queue.join(CRAWL_TOPIC))
    stopped = asyncio.create_task(stop_event.wait())
    done, pending = await asyncio.wait({drained, stopped}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    if stopped in done:
        await components.worker.stop()


async def crawl_command(args, config: Config) -> int:
    if args.concurrency:
        config.item_concurrency = args.concurrency
    async with build_components(config, enable_rendering=not args.no_render) as components:
        worker = components.worker
        install_signal_handlers(worker.stop_event)

        created = await components.job_service.create_crawl_job(args.urls, JobPriority(args.priority))
        print(f"Created job {created.job.id} with {created.job.total} URL(s)", file=sys.stderr)

        await worker.start()
        await _wait_for_jobs(components, worker.stop_event)

        report = components.job_service.get_job_report(created.job.id)
        print_report(report, args.output)

    if report["status"] == JobStatus.RUNNING.value:
        print(f"Job interrupted; resume with: profilecrawl job run {report['job_id']}", file=sys.stderr)
        return 130
    return 0 if report["status"] == JobStatus.DONE.value else 1


async def job_run_command(args, config: Config) -> int:
    async with build_components(config, enable_rendering=not args.no_render) as components:
        stop_event = asyncio.Event()
        install_signal_handlers(stop_event)
        summary = await components.orchestrator.run(args.job_id, stop_event=stop_event)
        print_report(components.job_service.get_job_report(summary.job_id), args.output)
    return 0 if summary.status == JobStatus.DONE else 1


def job_show_command(args, store: LocalSqliteStore) -> int:
    print_report(JobService(store).get_job_report(args.job_id), args.output)
    return 0


def job_list_command(args, store: LocalSqliteStore) -> int:
    jobs = store.list_jobs(status=JobStatus(args.status) if args.status else None, limit=args.limit)
    if args.output == "json":
        print(json.dumps([
            {
                "job_id": job.id,
                "status": job.status.value,
                "priority": job.priority.value,
                "total": job.total,
                "processed": job.processed,
                "failed": job.failed,
                "created_at": job.created_at.isoformat(),
            }
            for job in jobs
        ], indent=2))
        return 0

    if not jobs:
        print("No jobs found.")
    for job in jobs:
        print(f"{job.id}  {job.status.value:<8} {job.priority.value:<6} "
              f"{job.processed}/{job.failed}/{job.total}  {job.created_at:%Y-%m-%d %H:%M}")
    return 0


def job_delete_command(args, store: LocalSqliteStore) -> int:
    if store.delete_job(args.job_id):
        print(f"Deleted job {args.job_id}")
        return 0
    raise JobNotFoundError(args.job_id)


def profiles_command(args, store: LocalSqliteStore) -> int:
    if args.query:
        profiles = store.search_profiles(args.query, limit=args.limit)
    else:
        profiles = store.list_profiles(limit=args.limit, offset=args.offset)
    print_profiles(profiles, args.output)
    if args.output == "text":
        print(f"\n{len(profiles)} of {store.count_profiles()} profile(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="profilecrawl",
        description="Profile Crawler - crawl public profile pages and track crawl jobs",
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging verbosity (default: from config, INFO)",
    )
    parser.add_argument("--log-file", help="Write logs to file in addition to console")
    parser.add_argument("--config", "-c", help="YAML configuration file (default: environment)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    output_parent = argparse.ArgumentParser(add_help=False)
    output_parent.add_argument(
        "--output", "-o", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )

    crawl_parser = subparsers.add_parser("crawl", parents=[output_parent], help="Crawl one or more profile URLs.")
    crawl_parser.add_argument("urls", nargs="+", help="Profile URLs to crawl")
    crawl_parser.add_argument(
        "--priority", choices=[p.value for p in JobPriority], default=JobPriority.NORMAL.value,
        help="Job priority (default: normal)",
    )
    crawl_parser.add_argument("--concurrency", type=int, help="Items processed in parallel (default: from config)")
    crawl_parser.add_argument("--no-render", action="store_true", help="Disable JS rendering (HTTP only)")
    crawl_parser.set_defaults(async_func=crawl_command)

    job_parser = subparsers.add_parser("job", help="Inspect and manage crawl jobs.")
    job_subparsers = job_parser.add_subparsers(dest="job_command", required=True)

    show_parser = job_subparsers.add_parser("show", parents=[output_parent], help="Show a job report.")
    show_parser.add_argument("job_id")
    show_parser.set_defaults(store_func=job_show_command)

    list_parser = job_subparsers.add_parser("list", parents=[output_parent], help="List recent jobs.")
    list_parser.add_argument("--status", choices=[s.value for s in JobStatus])
    list_parser.add_argument("--limit", type=int, default=20)
    list_parser.set_defaults(store_func=job_list_command)

    run_parser = job_subparsers.add_parser("run", parents=[output_parent], help="Run or resume a job.")
    run_parser.add_argument("job_id")
    run_parser.add_argument("--no-render", action="store_true", help="Disable JS rendering (HTTP only)")
    run_parser.set_defaults(async_func=job_run_command)

    delete_parser = job_subparsers.add_parser("delete", help="Delete a job and its items.")
    delete_parser.add_argument("job_id")
    delete_parser.set_defaults(store_func=job_delete_command)

    profiles_parser = subparsers.add_parser("profiles", parents=[output_parent], help="List or search stored profiles.")
    profiles_parser.add_argument("query", nargs="?", help="Search username, display name and bio")
    profiles_parser.add_argument("--limit", type=int, default=20)
    profiles_parser.add_argument("--offset", type=int, default=0)
    profiles_parser.set_defaults(store_func=profiles_command)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args)
    logging_from_config(config)

    try:
        if hasattr(args, "async_func"):
            return asyncio.run(args.async_func(args, config))
        if hasattr(args, "store_func"):
            store = LocalSqliteStore(config.database_url)
            try:
                return args.store_func(args, store)
            finally:
                store.close()
    except JobNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except StorageError as e:
        logger.error(f"Storage error: {e}")
        return 3

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
