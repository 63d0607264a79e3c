from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from dotenv import load_dotenv

from audit_processor.dispatch import AuditDispatcher
from audit_processor.guard.field_guard import FieldGuard
from audit_processor.processor import create_processor
from audit_processor.utils.error_handler import ConfigurationError


logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=os.getenv("AUDIT_PROCESSOR_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--dotenv",
        dest="dotenv_path",
        default=".env",
        help="Path to .env file to load (default: .env at repo root)",
    )


def build_process_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audit-processor process",
        description="Process one or more pending audits into findings and narrative reports",
    )
    parser.add_argument(
        "--audit-id",
        dest="audit_ids",
        action="append",
        required=True,
        help="Audit record id to process (repeatable)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="Worker threads for concurrent runs (default: dispatch.max_workers from config)",
    )
    parser.add_argument(
        "--serialize-per-audit",
        action="store_true",
        help="Never run two audits with the same id at the same time.",
    )
    parser.add_argument(
        "--output",
        dest="output_path",
        default="",
        help="Optional output JSON file path. If not set, prints to stdout.",
    )
    _add_common_arguments(parser)
    return parser


def build_policy_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audit-processor policy",
        description="Show the write-shield field policies",
    )
    parser.add_argument(
        "--kind",
        choices=["audit", "finding"],
        default="",
        help="Only show the policy for one entity kind.",
    )
    _add_common_arguments(parser)
    return parser


def _configure_logging(log_level: str) -> None:
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    logging.basicConfig(level=level)

    # Pipeline events go to stderr so stdout stays valid JSON.
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )

    # Reduce noisy transport logs; keep pipeline milestone logs readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


def _emit(payload: Any, output_path: str) -> None:
    text = json.dumps(payload, indent=2)
    if not output_path:
        print(text)
        return
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(text, encoding="utf-8")
    logger.info("[output] wrote=%s", str(output_file))


def run_process(
    audit_ids: list[str],
    output_path: str = "",
    workers: int = 0,
    serialize_per_audit: bool = False,
) -> int:
    try:
        processor = create_processor()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    logger.info("[plan] processing %d audit(s)", len(audit_ids))

    with AuditDispatcher(
        processor,
        max_workers=workers or None,
        serialize_per_audit=serialize_per_audit,
        collect_results=True,
    ) as dispatcher:
        for audit_id in audit_ids:
            dispatcher.submit(audit_id)
        results = dispatcher.wait()

    processor.store.close()

    _emit([r.to_output_dict() for r in results], output_path)

    failed = [r for r in results if not r.ok]
    for r in failed:
        logger.error("[process] %s status=%s error=%s", r.audit_record_id, r.status.value, r.error)
    if failed or len(results) != len(audit_ids):
        return 1
    return 0


def run_policy(kind: str = "") -> int:
    policies = FieldGuard().describe()
    if kind:
        policies = {kind: policies[kind]}
    _emit(policies, "")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    argv_list = list(argv) if argv is not None else sys.argv[1:]

    if argv_list and argv_list[0] == "policy":
        args = build_policy_parser().parse_args(argv_list[1:])
        _configure_logging(args.log_level)
        return run_policy(kind=args.kind)

    if argv_list and argv_list[0] == "process":
        argv_list = argv_list[1:]

    args = build_process_parser().parse_args(argv_list)
    _configure_logging(args.log_level)
    load_dotenv(args.dotenv_path)

    return run_process(
        audit_ids=args.audit_ids,
        output_path=args.output_path,
        workers=int(args.workers),
        serialize_per_audit=bool(args.serialize_per_audit),
    )


if __name__ == "__main__":
    raise SystemExit(main())
