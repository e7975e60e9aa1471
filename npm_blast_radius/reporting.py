"""
Reporting and export utilities.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .models import BlastRadiusRecord


logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "source_package",
    "source_version",
    "dependent",
    "dependent_version_range",
    "dependent_latest_version",
    "last_update",
    "dependent_matched_version",
    "dependency_type",
    "is_dev_dependency",
    "source_version_satisfies",
    "dependent_source",
    "compromised_published_at",
    "dependent_version_published_at",
    "resolved_at_dependent_release",
    "resolved_now",
    "likely_impacted_at_release",
    "still_impacted_now",
    "uses_exact_pin",
    "error",
]


def format_row(record: BlastRadiusRecord) -> Dict[str, str]:
    """Render a record as CSV cell strings (booleans as true/false)."""
    row = record.to_row()
    return {
        column: ("true" if row[column] else "false") if isinstance(row[column], bool) else (row[column] or "")
        for column in OUTPUT_COLUMNS
    }


class CsvRowSink:
    """Append-only CSV output shared by concurrent workers.

    Rows are serialised and written one at a time under a lock and flushed
    immediately, so a row is either fully on disk or not at all.
    """

    def __init__(self, path: Path, append: bool = False) -> None:
        self.path = Path(path)
        self.append = append
        self.wrote_header = False
        self._count = 0
        self._lock = threading.Lock()
        self._handle = None

    def open(self) -> "CsvRowSink":
        existing = self.append and self.path.exists() and self.path.stat().st_size > 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, "a" if self.append else "w", newline="", encoding="utf-8")
        if not existing:
            pd.DataFrame(columns=OUTPUT_COLUMNS).to_csv(self._handle, index=False, lineterminator="\n")
            self._handle.flush()
            self.wrote_header = True
        return self

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "CsvRowSink":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def count(self) -> int:
        return self._count

    def write(self, record: BlastRadiusRecord) -> None:
        if self._handle is None:
            raise RuntimeError(f"Output {self.path} is not open")
        frame = pd.DataFrame([format_row(record)], columns=OUTPUT_COLUMNS)
        line = frame.to_csv(header=False, index=False, lineterminator="\n")
        with self._lock:
            self._handle.write(line)
            self._handle.flush()
            self._count += 1


def read_output_csv(path: Path) -> Optional[pd.DataFrame]:
    """Load a previously written output file, keeping every cell as text."""
    path = Path(path)
    if not path.exists():
        return None
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def summarize_impact(df: pd.DataFrame) -> pd.DataFrame:
    """Per source package: dependents, impacted at release, still impacted, pins, errors."""
    columns = ["source_package", "source_version", "dependents", "impacted_at_release",
               "still_impacted_now", "exact_pins", "errors"]
    if df is None or df.empty:
        return pd.DataFrame(columns=columns)
    flags = df.assign(
        impacted_at_release=df["likely_impacted_at_release"].str.lower() == "true",
        still_impacted=df["still_impacted_now"].str.lower() == "true",
        exact_pin=df["uses_exact_pin"].str.lower() == "true",
        failed=df["error"].str.len() > 0,
    )
    summary = (
        flags.groupby(["source_package", "source_version"], sort=False)
        .agg(
            dependents=("dependent", "count"),
            impacted_at_release=("impacted_at_release", "sum"),
            still_impacted_now=("still_impacted", "sum"),
            exact_pins=("exact_pin", "sum"),
            errors=("failed", "sum"),
        )
        .reset_index()
    )
    return summary[columns]


def log_summary(summary: pd.DataFrame) -> None:
    logger.info("=" * 60)
    logger.info("BLAST RADIUS SUMMARY")
    logger.info("=" * 60)
    for row in summary.itertuples(index=False):
        logger.info(
            "%s@%s: %d dependents, %d impacted at release, %d still impacted, %d exact pins, %d errors",
            row.source_package, row.source_version or "*", row.dependents,
            row.impacted_at_release, row.still_impacted_now, row.exact_pins, row.errors,
        )
    logger.info("=" * 60)
