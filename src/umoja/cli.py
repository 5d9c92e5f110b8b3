"""UmojaHub CLI — command-line interface for the reputation and workflow engine.

Usage:
    umoja status
    umoja register-farmer --id f-1 --name Wanjiku --phone +254700000001
    umoja verify-farmer --id f-1 --admin admin-1 --approve
    umoja record-order --farmer f-1 --amount 12500
    umoja trust-score --farmer f-1
    umoja create-engagement --student s-1 --track AI_BRIEF --title "Crop tracker" --stack React
    umoja lecturer-review --engagement E --lecturer l-1 --decision VERIFIED \
        --score problem_understanding=4 --comment-file problem_understanding=notes.txt ...
    umoja check-invariants

Settings come from the environment (a .env file in the working
directory is loaded first):
    UMOJA_CONFIG_DIR   policy directory (default: config/)
    UMOJA_DATA_DIR     where store.json and audit.jsonl live (default: data/)
    UMOJA_LOG_LEVEL    logging level (default: WARNING)
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from umoja.errors import UmojaError
from umoja.models.engagement import LecturerDecision, ProjectTrack
from umoja.notify.dispatcher import LoggingNotifier
from umoja.persistence.audit_log import AuditLog
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.service import ServiceResult, UmojaService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(config_dir: Path, data_dir: Path) -> UmojaService:
    """Create an UmojaService with durable persistence."""
    data_dir.mkdir(parents=True, exist_ok=True)
    resolver = PolicyResolver.from_config_dir(config_dir)
    return UmojaService(
        resolver,
        store=DocumentStore(storage_path=data_dir / "store.json"),
        audit_log=AuditLog(storage_path=data_dir / "audit.jsonl"),
        notifier=LoggingNotifier(),
    )


def _print_json(value: Any) -> None:
    if dataclasses.is_dataclass(value):
        value = dataclasses.asdict(value)
    print(json.dumps(value, indent=2, default=str))


def _print_result(result: ServiceResult, label: str) -> int:
    if result.success:
        print(f"{label}: {result.data['user_id']}")
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def _pairs(values: list[str], option: str) -> dict[str, str]:
    """Parse repeated KEY=VALUE options."""
    pairs: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"{option} expects KEY=VALUE, got {item!r}")
        pairs[key.strip()] = value
    return pairs


def _scores(values: list[str]) -> dict[str, int]:
    scores: dict[str, int] = {}
    for key, value in _pairs(values, "--score").items():
        try:
            scores[key] = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"--score {key} must be an integer, got {value!r}")
    return scores


def _comments(args: argparse.Namespace) -> dict[str, str]:
    comments = _pairs(args.comment, "--comment")
    for key, path in _pairs(args.comment_file, "--comment-file").items():
        comments[key] = Path(path).read_text(encoding="utf-8")
    return comments


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def cmd_status(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.status())
    return 0


def cmd_register_farmer(args: argparse.Namespace, service: UmojaService) -> int:
    return _print_result(
        service.register_farmer(args.id, args.name, args.phone), "Registered farmer",
    )


def cmd_register_student(args: argparse.Namespace, service: UmojaService) -> int:
    return _print_result(
        service.register_student(args.id, args.name, args.phone, args.stack),
        "Registered student",
    )


def cmd_register_lecturer(args: argparse.Namespace, service: UmojaService) -> int:
    return _print_result(
        service.register_lecturer(args.id, args.name, args.phone, args.institution),
        "Registered lecturer",
    )


def cmd_verify_farmer(args: argparse.Namespace, service: UmojaService) -> int:
    if args.approve:
        score = service.gate.approve(args.id, args.admin)
        print(f"Approved {args.id}: composite {score.composite_score} ({score.tier.value})")
    else:
        service.gate.reject(args.id, args.admin, args.reason or "")
        print(f"Rejected {args.id}")
    return 0


def cmd_resubmit_verification(args: argparse.Namespace, service: UmojaService) -> int:
    status = service.resubmit_verification(args.id)
    print(f"Verification for {args.id} is {status.value}")
    return 0


def cmd_record_order(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.ledger.record_order_completed(args.farmer, args.amount))
    return 0


def cmd_record_rating(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.ledger.record_rating(args.farmer, args.stars))
    return 0


def cmd_record_confirmation(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.ledger.record_confirmation(args.farmer, not args.late))
    return 0


def cmd_record_dispute(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.ledger.record_dispute(args.farmer, args.ruled_against))
    return 0


def cmd_trust_score(args: argparse.Namespace, service: UmojaService) -> int:
    _print_json(service.ledger.get_score(args.farmer))
    return 0


def cmd_create_engagement(args: argparse.Namespace, service: UmojaService) -> int:
    engagement = service.workflow.create_engagement(
        args.student, args.track, args.title, args.stack,
    )
    print(f"Created engagement: {engagement.engagement_id} (tier: {engagement.tier.value})")
    return 0


def cmd_submit_engagement(args: argparse.Namespace, service: UmojaService) -> int:
    engagement = service.workflow.submit(args.engagement, args.student)
    print(f"Engagement {engagement.engagement_id} is {engagement.status.value}")
    return 0


def cmd_peer_review(args: argparse.Namespace, service: UmojaService) -> int:
    review = service.workflow.submit_peer_review(
        args.engagement, args.reviewer, _scores(args.score), _comments(args),
    )
    print(f"Peer review {review.peer_review_id} {review.status.value}")
    return 0


def cmd_lecturer_review(args: argparse.Namespace, service: UmojaService) -> int:
    review = service.workflow.submit_lecturer_review(
        args.engagement,
        args.lecturer,
        args.decision,
        _scores(args.score),
        _comments(args),
        rejection_reason=args.reason,
    )
    print(f"Lecturer review {review.review_id}: {review.decision.value}")
    return 0


def cmd_lecturer_stats(args: argparse.Namespace, service: UmojaService) -> int:
    stats = service.workflow.lecturer_stats(args.lecturer)
    _print_json({
        **dataclasses.asdict(stats),
        "average_scores": stats.average_scores,
        "average_comment_words": stats.average_comment_words,
        "verification_rate": stats.verification_rate,
    })
    return 0


def cmd_portfolio(args: argparse.Namespace, service: UmojaService) -> int:
    portfolio = service.aggregator.get_portfolio(args.student)
    _print_json({**dataclasses.asdict(portfolio), "average_score": portfolio.average_score})
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run policy invariant checks."""
    # tools/ ships beside the package, not inside it
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(
        args.config / PolicyResolver.TRUST_FILENAME,
        args.config / PolicyResolver.EDUCATION_FILENAME,
    )


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------

def _add_review_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--engagement", required=True, help="Engagement ID")
    parser.add_argument(
        "--score", action="append", default=[], metavar="DIM=N",
        help="Score for one dimension (repeat per dimension)",
    )
    parser.add_argument(
        "--comment", action="append", default=[], metavar="DIM=TEXT",
        help="Comment for one dimension (repeat per dimension)",
    )
    parser.add_argument(
        "--comment-file", action="append", default=[], metavar="DIM=PATH",
        help="Read a dimension's comment from a file",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="umoja",
        description="UmojaHub — reputation and workflow engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("UMOJA_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: $UMOJA_CONFIG_DIR or config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=Path(os.environ.get("UMOJA_DATA_DIR", DEFAULT_DATA)),
        help="Path to data directory (default: $UMOJA_DATA_DIR or data/)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("UMOJA_LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $UMOJA_LOG_LEVEL or WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show system status")

    # register-*
    for role in ("farmer", "student", "lecturer"):
        p_reg = sub.add_parser(f"register-{role}", help=f"Register a {role}")
        p_reg.add_argument("--id", required=True, help="User ID")
        p_reg.add_argument("--name", required=True, help="First name")
        p_reg.add_argument("--phone", required=True, help="Phone number for notifications")
        if role == "student":
            p_reg.add_argument(
                "--stack", action="append", default=[], help="Tech-stack preference (repeatable)",
            )
        if role == "lecturer":
            p_reg.add_argument("--institution", required=True, help="University affiliation")

    # verify-farmer
    p_ver = sub.add_parser("verify-farmer", help="Approve or reject a pending verification")
    p_ver.add_argument("--id", required=True, help="Farmer ID")
    p_ver.add_argument("--admin", required=True, help="Deciding admin ID")
    decision = p_ver.add_mutually_exclusive_group(required=True)
    decision.add_argument("--approve", action="store_true", help="Approve the submission")
    decision.add_argument("--reject", action="store_true", help="Reject the submission")
    p_ver.add_argument("--reason", help="Rejection reason (required with --reject)")

    # resubmit-verification
    p_resub = sub.add_parser("resubmit-verification", help="Re-open a rejected verification")
    p_resub.add_argument("--id", required=True, help="Farmer ID")

    # trust events
    p_order = sub.add_parser("record-order", help="Record a completed order")
    p_order.add_argument("--farmer", required=True, help="Farmer ID")
    p_order.add_argument("--amount", required=True, type=float, help="Order amount")

    p_rating = sub.add_parser("record-rating", help="Record a buyer rating")
    p_rating.add_argument("--farmer", required=True, help="Farmer ID")
    p_rating.add_argument("--stars", required=True, type=int, help="Stars (1-5)")

    p_conf = sub.add_parser("record-confirmation", help="Record a paid-order confirmation")
    p_conf.add_argument("--farmer", required=True, help="Farmer ID")
    p_conf.add_argument("--late", action="store_true", help="Confirmation was late")

    p_disp = sub.add_parser("record-dispute", help="Record a resolved dispute")
    p_disp.add_argument("--farmer", required=True, help="Farmer ID")
    p_disp.add_argument(
        "--ruled-against", action="store_true", help="Dispute was ruled against the farmer",
    )

    p_score = sub.add_parser("trust-score", help="Show a farmer's trust score")
    p_score.add_argument("--farmer", required=True, help="Farmer ID")

    # engagements
    p_create = sub.add_parser("create-engagement", help="Start a project engagement")
    p_create.add_argument("--student", required=True, help="Student ID")
    p_create.add_argument(
        "--track", required=True, choices=[t.value for t in ProjectTrack], help="Project track",
    )
    p_create.add_argument("--title", required=True, help="Project title")
    p_create.add_argument("--stack", action="append", default=[], help="Tech stack (repeatable)")

    p_submit = sub.add_parser("submit-engagement", help="Submit an engagement for review")
    p_submit.add_argument("--engagement", required=True, help="Engagement ID")
    p_submit.add_argument("--student", required=True, help="Submitting student ID")

    p_peer = sub.add_parser("peer-review", help="Submit an assigned peer review")
    _add_review_options(p_peer)
    p_peer.add_argument("--reviewer", required=True, help="Reviewer ID")

    p_lect = sub.add_parser("lecturer-review", help="Submit a lecturer rubric decision")
    _add_review_options(p_lect)
    p_lect.add_argument("--lecturer", required=True, help="Lecturer ID")
    p_lect.add_argument(
        "--decision", required=True, choices=[d.value for d in LecturerDecision],
        help="Final decision",
    )
    p_lect.add_argument("--reason", help="Rejection reason (required with REJECTED)")

    p_stats = sub.add_parser("lecturer-stats", help="Show a lecturer's review statistics")
    p_stats.add_argument("--lecturer", required=True, help="Lecturer ID")

    p_port = sub.add_parser("portfolio", help="Show a student's portfolio")
    p_port.add_argument("--student", required=True, help="Student ID")

    # check-invariants
    sub.add_parser("check-invariants", help="Run policy invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "register-farmer": cmd_register_farmer,
        "register-student": cmd_register_student,
        "register-lecturer": cmd_register_lecturer,
        "verify-farmer": cmd_verify_farmer,
        "resubmit-verification": cmd_resubmit_verification,
        "record-order": cmd_record_order,
        "record-rating": cmd_record_rating,
        "record-confirmation": cmd_record_confirmation,
        "record-dispute": cmd_record_dispute,
        "trust-score": cmd_trust_score,
        "create-engagement": cmd_create_engagement,
        "submit-engagement": cmd_submit_engagement,
        "peer-review": cmd_peer_review,
        "lecturer-review": cmd_lecturer_review,
        "lecturer-stats": cmd_lecturer_stats,
        "portfolio": cmd_portfolio,
    }

    if args.command == "check-invariants":
        return cmd_check_invariants(args)

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    service = None
    try:
        service = _make_service(args.config, args.data)
        return handler(args, service)
    except UmojaError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    except argparse.ArgumentTypeError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return 1
    finally:
        if service is not None:
            service.close()


if __name__ == "__main__":
    raise SystemExit(main())
