"""leadpilot: bulk lead enrichment from the command line.

Commands (all take --parent, the lead list id):
  launch   Start enriching the list (or only --lead ID ...), then watch it
  watch    Resume watching a job left running by an earlier launch
  status   Print the persisted job merged with one live status read
  pause    Pause the running job
  resume   Resume a paused job
  stop     Stop the job and forget it locally
  quota    Print the remaining daily enrichment quota

CLI: python -m leadpilot.main launch --parent <list id>
"""

import argparse
import asyncio
import logging
import sys

from leadpilot.config import settings
from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.errors import ApiError, EnrichmentError
from leadpilot.enrich.models import EnrichmentJob, Notice
from leadpilot.enrich.quota import QuotaGuard
from leadpilot.enrich.session import OrchestratorSession
from leadpilot.logging_utils import configure_logging

logger = logging.getLogger("leadpilot.main")


def _print_notice(notice: Notice) -> None:
    print(f"[{notice.kind}] {notice.message}")


def _print_progress(job: EnrichmentJob) -> None:
    c = job.counters
    print(
        f"{job.status.value}: {c.processed}/{job.total_targets} ({job.progress_pct}%) "
        f"enriched={c.enriched} cached={c.cached} failed={c.failed}"
    )


async def show_quota(client: EnrichmentApiClient) -> int:
    snapshot = await QuotaGuard(client).refresh_quota()
    if snapshot is None:
        print("Quota unknown (refresh failed)")
        return 1
    print(f"Remaining: {snapshot.remaining}")
    print(f"Used today: {snapshot.today_usage_count} / {snapshot.today_allocated_quota}")
    print(f"Resets at: {snapshot.resets_at}")
    print(f"Plan: {snapshot.plan} (premium: {snapshot.is_premium})")
    return 0


async def show_status(session: OrchestratorSession) -> int:
    job = await session.restore(watch=False)
    if job is None:
        print(f"No active enrichment job for {session.parent_id}")
        return 0
    try:
        job = job.merge_status(await session.client.job_status(job.job_id))
    except ApiError as exc:
        print(f"Live status unavailable ({exc.message}); showing last known state")
    print(f"Job {job.job_id} started {job.started_at.isoformat()}")
    _print_progress(job)
    return 0


async def run_command(args: argparse.Namespace) -> int:
    client = EnrichmentApiClient()
    if args.command == "quota":
        return await show_quota(client)

    session = OrchestratorSession(
        args.parent,
        client,
        on_notice=_print_notice,
        on_update=_print_progress,
        poll_interval_seconds=args.interval,
    )
    try:
        if args.command == "status":
            return await show_status(session)

        job = await session.restore(watch=args.command in ("launch", "watch"))
        if args.command == "launch":
            result = await session.launch(args.lead or None, label=args.label)
            if args.no_watch:
                if result.append_task is not None:
                    await result.append_task
                return 0
            await session.wait()
        elif args.command == "watch":
            if job is None:
                print(f"No active enrichment job for {args.parent}")
                return 1
            await session.wait()
        elif job is None:
            print(f"No active enrichment job for {args.parent}")
            return 1
        elif args.command == "pause":
            await session.pause()
        elif args.command == "resume":
            await session.resume()
        elif args.command == "stop":
            await session.stop()
        return 0
    except EnrichmentError as exc:
        logger.error("cli.command_failed", extra={"command": args.command, "error": exc.message})
        return 1
    finally:
        session.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadpilot", description="Bulk lead enrichment orchestrator")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("launch", "watch", "status", "pause", "resume", "stop"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--parent", required=True, help="Lead list (pipeline) id")
        cmd.add_argument("--interval", type=float, default=None, help="Poll interval in seconds")
        if name == "launch":
            cmd.add_argument("--lead", action="append", help="Lead id to enrich; repeatable (default: all)")
            cmd.add_argument("--label", default=None, help="Job name shown by the backend")
            cmd.add_argument("--no-watch", action="store_true", help="Return once all batches are queued")

    sub.add_parser("quota")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    try:
        code = asyncio.run(run_command(args))
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
