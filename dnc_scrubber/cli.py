"""Command line interface for scrubbing a contact list against the registry."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from .config import load_configuration
from .factory import build_orchestrator, build_registry, build_scope
from .ingestion import export_scrub_result, load_records
from .models import JobStatus


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid ISO date: {value!r}") from exc


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Screen a contact list against Do Not Call registries and litigator lists",
    )
    parser.add_argument("input", help="Path to the contact list (CSV, TSV or XLSX)")
    parser.add_argument("output", help="Path where the scrub result should be written (CSV, TSV or XLSX)")
    parser.add_argument(
        "--config",
        required=True,
        help="Path to the scrub configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--submitted-by",
        default=None,
        help="Identifier of the user submitting the batch",
    )
    parser.add_argument(
        "--last-contact-date",
        type=_parse_datetime,
        default=None,
        help="Reference date (ISO format) for the recently-added check; defaults to now",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Maximum number of worker threads used for normalization and scoring",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = load_configuration(args.config)
    scope = build_scope(config)
    store, _ = build_registry(config)
    records = load_records(args.input)

    with build_orchestrator(config, store, max_workers=args.max_workers) as orchestrator:
        job_id = orchestrator.submit_scrub_job(
            records,
            scope,
            submitted_by=args.submitted_by,
            last_contact_date=args.last_contact_date,
        )
        job = orchestrator.wait(job_id)
        if job.status != JobStatus.COMPLETED:
            logging.error("Scrub job %s failed: %s", job_id, job.failure_reason)
            return 1
        result = orchestrator.get_job_result(job_id)

    export_scrub_result(result, args.output)
    summary = result.summary
    logging.info(
        "Scrubbed %s records: %s clean, %s caution, %s blocked, %s invalid, %s duplicates removed (grade %s)",
        summary.total,
        summary.clean,
        summary.caution,
        summary.blocked,
        summary.invalid,
        summary.duplicates_removed,
        summary.compliance_grade,
    )
    logging.info("Scrub result written to %s", Path(args.output).resolve())
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
