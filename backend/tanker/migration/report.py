# backend/tanker/migration/report.py
"""Human-readable summary of a migration run, written to the log."""

import logging
from typing import List

from ..schemas.migration import MigrationReport


def format_report(report: MigrationReport) -> List[str]:
    title = "Migration dry run" if report.dry_run else "Migration"
    outcome = "completed successfully" if report.success else f"finished with {len(report.errors)} error(s)"
    lines = [f"{title} {outcome}"]
    for name, count in report.migrated.model_dump().items():
        lines.append(f"  {name}: {count}")
    if report.warnings:
        lines.append(f"  warnings: {len(report.warnings)}")
    return lines


def log_report(report: MigrationReport, logger: logging.Logger) -> None:
    for line in format_report(report):
        logger.info(line)
    for warning in report.warnings:
        logger.warning(warning)
    for error in report.errors:
        logger.error(error)
