"""Application entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Sequence

from config import Config, load_config
from core import ApplicationError, ParticipantStatus, PriorityTier, setup_logger
from core.app_initializer import ApplicationInitializer
from waitlist import AdmissionProcessor

logger = logging.getLogger("childcare.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="childcare",
        description="Childcare waitlist and admission allocation engine",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Create or update the database schema")

    p = sub.add_parser("enter-waitlist", help="Put a reviewed child on the waitlist")
    p.add_argument("participant_id", type=int)
    p.add_argument("institution_id", type=int)

    p = sub.add_parser("admit-pass", help="Admit waiting children while seats are available")
    p.add_argument("institution_id", type=int)

    p = sub.add_parser("manual-admit", help="Admit one child into a given class")
    p.add_argument("participant_id", type=int)
    p.add_argument("class_id", type=int)

    p = sub.add_parser("change-status", help="Move a participant to another status")
    p.add_argument("participant_id", type=int)
    p.add_argument("status", choices=[s.value for s in ParticipantStatus])
    p.add_argument("--reason", default=None)

    p = sub.add_parser("snapshot", help="Print the waitlist in queue order")
    p.add_argument("institution_id", type=int)
    p.add_argument("--name", default=None, help="Filter by part of the child's name")

    p = sub.add_parser("stats", help="Print capacity, quota and waitlist figures")
    p.add_argument("institution_id", type=int)

    p = sub.add_parser("lottery", help="Draw lots for the open seats")
    p.add_argument("institution_id", type=int)
    p.add_argument("--seed", default=None, help="Reuse a seed to reproduce a draw")

    return parser


async def _migrate(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    # Schema is applied by the initializer
    print("Schema up to date")


async def _enter_waitlist(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    order = await processor.enter_waitlist(args.participant_id, args.institution_id)
    print(f"Participant {args.participant_id} is waiting at position {order}")


async def _admit_pass(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    result = await processor.run_admission_pass(args.institution_id)
    print(
        f"Processed {result.total_processed}: admitted {len(result.admitted)}, "
        f"kept waiting {len(result.skipped)}"
    )
    for decision in result.admitted:
        print(f"  + {decision.participant_id} -> class {decision.class_id} (tier {decision.tier.value})")
    for decision in result.skipped:
        print(f"  - {decision.participant_id}: {decision.reason}")


async def _manual_admit(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    result = await processor.manual_admit(args.participant_id, args.class_id)
    print(f"Participant {result.participant_id} admitted to class {result.class_id}")
    if result.warning:
        print(f"WARNING: {result.warning}")
        for entry in result.skipped_ahead:
            print(f"  #{entry.current_order} {entry.name} ({entry.participant_id})")


async def _change_status(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    participant = await processor.change_status(
        args.participant_id, ParticipantStatus(args.status), reason=args.reason)
    print(f"Participant {participant.participant_id} is now {participant.status.value}")


async def _snapshot(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    entries = await processor.get_waitlist_snapshot(args.institution_id, name=args.name)
    if not entries:
        print("Waitlist is empty")
        return
    for entry in entries:
        print(
            f"{entry.current_order:>4}  {entry.name:<30} {entry.age_label:>8}  "
            f"tier {entry.tier.value}  {entry.reason or ''}".rstrip()
        )


async def _stats(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    stats = await processor.get_waitlist_statistics(args.institution_id)
    print(f"Capacity {stats.total_capacity}, enrolled {stats.total_enrolled}, free {stats.free_seats}")
    for tier in PriorityTier:
        print(
            f"  tier {tier.value}: waiting {stats.waiting_by_tier[tier]}, "
            f"admitted {stats.admitted_by_tier[tier]}, "
            f"quota {stats.quotas.legal[tier]} (open {stats.quotas.remaining[tier]})"
        )
    for occupancy in stats.classes:
        print(
            f"  {occupancy.class_name}: {occupancy.current_students}/{occupancy.capacity} "
            f"ages [{occupancy.min_age_months}, {occupancy.max_age_months}) months"
        )


async def _lottery(processor: AdmissionProcessor, args: argparse.Namespace) -> None:
    result = await processor.run_lottery_draw(args.institution_id, seed=args.seed)
    print(f"Lottery run {result.run_id} seed={result.seed}")
    print(f"Admitted {len(result.admitted)}, waitlisted {result.waitlisted}")


COMMANDS: Dict[str, Callable[[AdmissionProcessor, argparse.Namespace], Awaitable[None]]] = {
    "migrate": _migrate,
    "enter-waitlist": _enter_waitlist,
    "admit-pass": _admit_pass,
    "manual-admit": _manual_admit,
    "change-status": _change_status,
    "snapshot": _snapshot,
    "stats": _stats,
    "lottery": _lottery,
}


async def run(args: argparse.Namespace, config: Config) -> int:
    """Run one command against a freshly initialized engine."""
    app = ApplicationInitializer(config)
    try:
        processor = await app.initialize()
        await COMMANDS[args.command](processor, args)
        return 0
    except ApplicationError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await app.cleanup()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ApplicationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logger(
        name="",
        level=config.log_level,
        log_file=str(Path(config.log_folder) / "childcare.log"),
        colored=True,
    )

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
