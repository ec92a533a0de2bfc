"""Command line entry point for the transaction audit report."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from transaction_audit.config import AnalyticsConfig
from transaction_audit.foundation.dataset import ReferentialPolicy
from transaction_audit.pandas.loader import CSV_FILES, load_dataset_from_csv
from transaction_audit.reports import build_report

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 500 * 1024 * 1024  # 500 MiB cap across the input CSVs


def _check_input_size(directory: Path) -> None:
    total = sum(
        (directory / filename).stat().st_size
        for filename in CSV_FILES.values()
        if (directory / filename).is_file()
    )
    if total > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input files in {directory} total {total} bytes; exceeds limit of "
            f"{MAX_INPUT_BYTES} bytes"
        )


def _resolve_output(path: Path) -> Path:
    output_path = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_path.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output path {output_path} must reside within the current working directory"
        )
    return output_path


def run_report_cli(argv: list[str] | None = None) -> int:
    """Build the full analytics report from a directory of CSV exports.

    The directory must contain ``customers.csv``, ``merchants.csv``,
    ``categories.csv`` and ``transactions.csv``; ``date_table.csv`` is used
    when present. Unset options fall back to ``TXN_AUDIT_*`` environment
    variables, then to the defaults of :class:`AnalyticsConfig`.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Compute transaction KPIs and write them as JSON"
    )
    parser.add_argument(
        "input", type=Path, help="Directory containing the four CSV relations"
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for writing the report as JSON (defaults to stdout).",
    )
    parser.add_argument(
        "--as-of",
        type=str,
        help="As-of date for recency and churn (ISO format: YYYY-MM-DD). "
        "Defaults to the day after the last transaction.",
    )
    parser.add_argument(
        "--referential-policy",
        choices=[policy.value for policy in ReferentialPolicy],
        help="How to treat transactions referencing missing dimension rows.",
    )
    parser.add_argument(
        "--inactivity-days",
        type=int,
        help="Days without transactions before a customer is a churn risk.",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Run analyzers concurrently on a thread pool.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = AnalyticsConfig.from_env()
    overrides = {}
    if args.referential_policy:
        overrides["referential_policy"] = ReferentialPolicy(args.referential_policy)
    if args.inactivity_days is not None:
        overrides["inactivity_days"] = args.inactivity_days
    if args.parallel:
        overrides["parallel"] = True
    if overrides:
        config = replace(config, **overrides)

    as_of_date = date.fromisoformat(args.as_of) if args.as_of else None
    output_path = _resolve_output(args.output) if args.output else None

    if not args.input.is_dir():
        logger.error(f"Input directory not found: {args.input}")
        return 1
    _check_input_size(args.input)

    logger.info(f"Loading dataset from {args.input}")
    dataset = load_dataset_from_csv(args.input, config.referential_policy)
    if dataset.mismatches:
        logger.warning(
            f"{len(dataset.mismatches)} referential mismatches "
            f"(policy={config.referential_policy.value})"
        )

    report = build_report(dataset, config, as_of_date=as_of_date)
    payload = report.as_dict()

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True)
        logger.info(f"Report written to {output_path}")
    else:  # stdout fallback enables piping in shell usage.
        json.dump(payload, fp=sys.stdout, indent=2, sort_keys=True)
        print()

    return 0


def main() -> None:
    raise SystemExit(run_report_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
