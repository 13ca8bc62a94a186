#!/usr/bin/env python3
"""
Policy Jobs CLI

Command-line interface for policy table generation.

Usage:
    policy-jobs batch -t A:g1,g2 -t B --date "2024-05-01" --content "..." --register
    policy-jobs generate A --groups g1,g2 --date "2024-05-01" --content-file record.json
    policy-jobs status <job_id>
    policy-jobs register <artifact_id>
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple

from tqdm import tqdm

from config.settings import settings
from config.logging_config import get_logger, set_console_level

from .batch import BatchOrchestrator, BatchRun, OrchestratorConfig, SingleFlightLane
from .batch.status_store import Snapshot
from .errors import PolicyJobError, RemoteRenderFailure, ValidationError
from .models import JobRequest, JobResult, JobStatus
from .payloads import build_apply_content
from .poller import PollerConfig, StatusPoller
from .preferences import GroupPreferenceStore
from .registration import RegistrationCoordinator, eligible_results
from .relay_client import PolicyTableRelayClient
from .submitter import JobSubmitter

logger = get_logger(__name__)


def print_status(target: str, status: Optional[JobStatus]):
    """Print one target's status line"""
    if status is None:
        print(f"  [-] {target}: not submitted")
        return

    icon = {
        "queued": "[QUEUED]",
        "processing": "[PROCESSING]",
        "completed": "[COMPLETED]",
        "failed": "[FAILED]",
    }.get(status.state.value, "[?]")

    print(f"  {icon} {target} ({status.job_id or '-'}) {status.progress}%")
    if status.queue_position is not None:
        wait = status.queue_info.estimated_wait_seconds
        print(f"     Queue position: {status.queue_position}" + (f" | Est. wait: {wait:.0f}s" if wait else ""))
    if status.result:
        print(f"     Image: {status.result.image_url}")
        if status.result.spreadsheet_url:
            print(f"     Spreadsheet: {status.result.spreadsheet_url}")
    if status.error:
        print(f"     Error: {status.error}" + (f" ({status.failure_reason})" if status.failure_reason else ""))


def parse_target(value: str) -> Tuple[str, FrozenSet[str]]:
    """'A:g1,g2' -> ('A', {'g1', 'g2'}); 'A' -> ('A', {})"""
    target_id, _, groups = value.partition(":")
    return target_id.strip(), frozenset(g.strip() for g in groups.split(",") if g.strip())


def resolve_content(args) -> str:
    if args.content_file:
        try:
            record = json.loads(Path(args.content_file).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ValidationError(f"Cannot read {args.content_file}: {e}", field="content_file") from e
        return build_apply_content(record)
    return args.content or ""


def resolve_groups(
    targets: List[Tuple[str, FrozenSet[str]]],
    preferences: Optional[GroupPreferenceStore],
) -> List[Tuple[str, FrozenSet[str]]]:
    """Fill targets without explicit groups from saved preferences."""
    resolved = []
    for target_id, groups in targets:
        if not groups and preferences is not None:
            groups = preferences.load(settings.user_id, target_id)
            if groups:
                logger.info(f"Using saved groups for {target_id}: {sorted(groups)}")
        resolved.append((target_id, groups))
    return resolved


def create_relay() -> PolicyTableRelayClient:
    return PolicyTableRelayClient(
        base_url=settings.relay_base_url,
        timeout=settings.request_timeout,
        headers=settings.identity_headers,
    )


def create_orchestrator(relay: PolicyTableRelayClient) -> BatchOrchestrator:
    config = OrchestratorConfig(
        settle_delay=settings.settle_delay,
        fast_interval=settings.poll_fast_interval,
        slow_interval=settings.poll_slow_interval,
        stall_threshold=settings.poll_stall_threshold,
    )
    submitter = JobSubmitter(
        relay,
        max_retries=settings.submit_max_retries,
        retry_delay=settings.submit_retry_delay,
    )
    return BatchOrchestrator(
        relay,
        submitter=submitter,
        lane=SingleFlightLane(settle_delay=config.settle_delay),
        config=config,
    )


class BatchProgress:
    """Store listener driving a tqdm bar over terminal targets."""

    def __init__(self, total: int):
        self.bar = tqdm(
            total=total,
            desc="Generating",
            unit="target",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}] {postfix}"
        )
        self._done = set()

    def __call__(self, snapshot: Snapshot):
        for target_id, entry in snapshot.items():
            if entry.is_terminal and target_id not in self._done:
                self._done.add(target_id)
                self.bar.update(1)
            elif not entry.is_terminal and target_id in self._done:
                # retried
                self._done.discard(target_id)
                self.bar.update(-1)
            elif entry.status is not None and not entry.is_terminal:
                position = entry.status.queue_position
                self.bar.set_postfix_str(
                    f"{target_id}: {entry.state.value} {entry.status.progress}%"
                    + (f" (queue {position})" if position is not None else "")
                )

    def close(self):
        self.bar.close()


async def run_batch(args) -> int:
    preferences = GroupPreferenceStore(settings.preferences_db)
    targets = resolve_groups([parse_target(t) for t in args.targets], preferences)

    try:
        content = resolve_content(args)
        run = BatchRun.create(targets, args.date, content)
        for request in run.requests:
            request.validate()
    except ValidationError as e:
        print(f"  [X] {e}")
        return 2

    async with create_relay() as relay:
        orchestrator = create_orchestrator(relay)
        progress = BatchProgress(len(run.requests))
        run.subscribe(progress)
        try:
            summary = await orchestrator.execute(run)
            if args.retry_failed and summary.failed:
                print(f"\n[>] Retrying {summary.failed} failed target(s)...")
                summary = await orchestrator.retry_failed(run)
        finally:
            progress.close()

        snapshot = run.snapshot()
        print("\n[i] Results:")
        for target_id in run.target_ids:
            print_status(target_id, snapshot[target_id].status)
        print(f"\n[i] Completed {summary.completed}/{summary.total}, failed {summary.failed}")

        for request in run.requests:
            if snapshot[request.target_id].is_completed:
                preferences.save(settings.user_id, request.target_id, request.access_group_ids)

        if args.register:
            results = eligible_results(run.snapshot())
            if results:
                coordinator = RegistrationCoordinator(relay, store=run.store)
                registration = await coordinator.register_all(results)
                print(
                    f"[i] Registered {registration.registered}, "
                    f"already registered {registration.already_registered}, "
                    f"failed {registration.failed}"
                )
                for target_id in registration.failed_targets:
                    print(f"  [X] {target_id}: {registration.outcomes[target_id].reason}")

        run.close()

    return 0 if summary.failed == 0 else 1


async def run_generate(args) -> int:
    preferences = GroupPreferenceStore(settings.preferences_db)
    target_id, groups = resolve_groups([parse_target(f"{args.target}:{args.groups}")], preferences)[0]
    try:
        request = JobRequest(target_id, args.date, resolve_content(args), groups)
    except ValidationError as e:
        print(f"  [X] {e}")
        return 2

    async with create_relay() as relay:
        submitter = JobSubmitter(
            relay,
            max_retries=settings.submit_max_retries,
            retry_delay=settings.submit_retry_delay,
        )
        try:
            submission = await submitter.submit(request)
            if submission.adopted:
                print(f"  [i] Job already in flight, following {submission.job_id}")
            poller = StatusPoller(
                relay,
                submission.job_id,
                on_update=lambda status: logger.info(
                    f"{target_id}: {status.state.value} {status.progress}%"
                ),
                config=PollerConfig(
                    fast_interval=settings.poll_fast_interval,
                    slow_interval=settings.poll_slow_interval,
                    stall_threshold=settings.poll_stall_threshold,
                ),
                initial_status=submission.status,
            )
            final = await poller.run()
            if final is None:
                print(f"  [!] Stopped polling {submission.job_id}; the remote job keeps running")
                return 1
            print_status(target_id, final)
            final.raise_for_failure()
        except RemoteRenderFailure as e:
            print(f"  [X] Render failed: {e}")
            return 1
        except PolicyJobError as e:
            print(f"  [X] {e}")
            return 1

    preferences.save(settings.user_id, target_id, groups)
    return 0


async def run_status(args) -> int:
    async with create_relay() as relay:
        try:
            status = await relay.get_status(args.job_id)
        except PolicyJobError as e:
            print(f"  [X] {e}")
            return 1
    print_status(args.job_id, status)
    return 0


async def run_register(args) -> int:
    async with create_relay() as relay:
        coordinator = RegistrationCoordinator(relay)
        state = await coordinator.register_one(JobResult(artifact_id=args.artifact_id))
    print(f"  {args.artifact_id}: {state.outcome.value}" + (f" ({state.reason})" if state.reason else ""))
    return 0 if state.is_published else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Policy table generation client"
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show poll ticks and debug output on the console")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Batch command
    batch_parser = subparsers.add_parser("batch", help="Generate tables for several targets, one at a time")
    batch_parser.add_argument("-t", "--target", dest="targets", action="append", required=True,
                              help="Target as ID or ID:group1,group2 (repeatable)")
    _add_content_arguments(batch_parser)
    batch_parser.add_argument("--register", action="store_true",
                              help="Publish completed artifacts")
    batch_parser.add_argument("--retry-failed", action="store_true",
                              help="Retry failed targets once after the first pass")

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate a table for one target")
    generate_parser.add_argument("target", help="Target ID")
    generate_parser.add_argument("-g", "--groups", default="",
                                 help="Comma-separated access group IDs (default: saved selection)")
    _add_content_arguments(generate_parser)

    # Status command
    status_parser = subparsers.add_parser("status", help="Show a job's status")
    status_parser.add_argument("job_id", help="Job ID")

    # Register command
    register_parser = subparsers.add_parser("register", help="Publish a rendered artifact")
    register_parser.add_argument("artifact_id", help="Artifact ID")

    return parser


def _add_content_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("-d", "--date", required=True, help="Apply date text")
    content = parser.add_mutually_exclusive_group(required=True)
    content.add_argument("-c", "--content", help="Apply content text")
    content.add_argument("--content-file", help="JSON record with content or support items")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        set_console_level("DEBUG")

    commands = {
        "batch": run_batch,
        "generate": run_generate,
        "status": run_status,
        "register": run_register,
    }

    try:
        return asyncio.run(commands[args.command](args))
    except KeyboardInterrupt:
        print("\n\n[!] Stopped polling; remote jobs keep running")
        return 130


if __name__ == "__main__":
    sys.exit(main())
