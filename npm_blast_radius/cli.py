"""
Command-line interface for the blast-radius tool.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List

import pandas as pd
from dotenv import find_dotenv, load_dotenv
from tqdm import tqdm

from . import __version__
from .analyzer import BlastRadiusAnalyzer
from .config import BlastRadiusConfig
from .discovery import DependentDiscovery, default_sources
from .fetch import FetchClient
from .registry import RegistryClient
from .reporting import CsvRowSink, log_summary, read_output_csv, summarize_impact


logger = logging.getLogger(__name__)


def _load_input_csv(path: Path) -> List[Dict[str, str]]:
    """Read ``package,version`` rows; headers are trimmed and lower-cased."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(column).strip().lower() for column in df.columns]
    if "package" not in df.columns:
        raise ValueError(f"Input CSV {path} is missing required column: package")
    if "version" not in df.columns:
        df["version"] = ""

    rows = []
    for record in df.to_dict(orient="records"):
        package = str(record["package"]).strip()
        if not package:
            continue
        rows.append({"package": package, "version": str(record["version"]).strip()})
    return rows


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="npm-blast-radius",
        description=(
            "Map the blast radius of compromised npm packages "
            "(direct dependents, attribution, and timing signals)."
        ),
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "-i", "--input",
        required=True,
        help="Input CSV with columns: package,version"
    )

    parser.add_argument(
        "-o", "--output",
        default="dependents.csv",
        help="Output CSV path. Default: dependents.csv"
    )

    parser.add_argument(
        "--max",
        dest="max_dependents",
        type=int,
        default=0,
        help="Cap dependents per source package (0 = no cap). Default: 0"
    )

    parser.add_argument(
        "-c", "--concurrency",
        type=int,
        default=None,
        help="Concurrent dependent analyses. Default: $CONCURRENCY or 8"
    )

    parser.add_argument(
        "--include-dev",
        action="store_true",
        help="Include devDependencies when attributing usage"
    )

    parser.add_argument(
        "--no-peer",
        action="store_true",
        help="Exclude peerDependencies (included by default)"
    )

    parser.add_argument(
        "--append",
        action="store_true",
        help="Append to the output (skip the header if the file already has content)"
    )

    parser.add_argument(
        "--progress",
        type=int,
        default=25,
        help="Log every N dependents processed. Default: 25"
    )

    parser.add_argument("--quiet", action="store_true", help="Minimal logging")
    parser.add_argument("--verbose", action="store_true", help="Extra diagnostics about discovery sources")

    parser.add_argument(
        "--no-libraries",
        action="store_true",
        help="Disable the Libraries.io fallback"
    )

    parser.add_argument(
        "--no-scrape",
        action="store_true",
        help="Disable the npm website scraping fallback"
    )

    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="HTTP request timeout in milliseconds. Default: $HTTP_TIMEOUT_MS or 15000"
    )

    return parser


def configure_logging(quiet: bool, verbose: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)
    # Keep urllib3 connection chatter out of --verbose output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.quiet, args.verbose)
    load_dotenv(find_dotenv(usecwd=True))

    try:
        config = BlastRadiusConfig.from_env(
            max_dependents=args.max_dependents,
            concurrency=args.concurrency,
            include_dev=args.include_dev,
            include_peer=not args.no_peer,
            use_libraries_io=not args.no_libraries,
            use_scrape=not args.no_scrape,
            timeout_ms=args.timeout,
            progress_every=args.progress,
        )
    except ValueError as e:
        parser.error(str(e))

    input_path = Path(args.input)
    try:
        rows = _load_input_csv(input_path)
    except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        print(f"Error: cannot read input {input_path}: {e}", file=sys.stderr)
        sys.exit(1)
    logger.info("Loaded %d source packages from %s", len(rows), input_path)

    fetcher = FetchClient(config)
    registry = RegistryClient(fetcher)
    discovery = DependentDiscovery(default_sources(fetcher, config))
    output_path = Path(args.output).resolve()

    try:
        with CsvRowSink(output_path, append=args.append) as sink:
            analyzer = BlastRadiusAnalyzer(config, registry, discovery, sink)
            for row in tqdm(rows, desc="Source packages", unit="pkg", disable=args.quiet):
                analyzer.process_package(row["package"], row["version"])
    except OSError as e:
        print(f"Error: cannot write output {output_path}: {e}", file=sys.stderr)
        sys.exit(1)

    header_note = " (with header)" if sink.wrote_header else ""
    print(f"Wrote {sink.count} rows to {output_path}{header_note}")

    if not args.quiet:
        log_summary(summarize_impact(read_output_csv(output_path)))


if __name__ == "__main__":
    main()
