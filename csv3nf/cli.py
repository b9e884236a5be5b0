"""Command line runner: normalize one CSV file and write the artifacts to disk."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from charset_normalizer import from_bytes

from .config import NormalizerConfig
from .errors import Csv3nfError
from .normalizer import NormalizationResult, normalize_csv
from .report import ArtifactWriter

logger = logging.getLogger("csv3nf")

DEFAULT_OUTPUT = "output"


def decode_bytes(raw: bytes) -> str:
    """Decode with charset-normalizer's best guess, falling back to UTF-8."""
    encoding = "utf-8"
    match = from_bytes(raw).best()
    if match is not None and match.encoding:
        encoding = match.encoding
    if raw.startswith(b"\xef\xbb\xbf") and encoding.lower().replace("-", "_") in ("utf_8", "utf8"):
        encoding = "utf-8-sig"
    try:
        return raw.decode(encoding)
    except (LookupError, UnicodeDecodeError):
        logger.warning("Could not decode input as %s; falling back to UTF-8", encoding)
        return raw.decode("utf-8", errors="replace")


class Runner:
    """Reads the input, runs the pipeline and writes one timestamped run folder."""

    def __init__(self, args: argparse.Namespace) -> None:
        self.args = args
        ts = datetime.now(timezone.utc).strftime("run_%Y%m%d_%H%M%S")
        self.output_root = Path(args.output) / ts

    def config(self) -> NormalizerConfig:
        options = {
            "include_sample_data": self.args.sample_data,
            "include_views": self.args.views,
        }
        if self.args.single_threshold is not None:
            options["redundancy_threshold_single_column"] = self.args.single_threshold
        if self.args.combination_threshold is not None:
            options["redundancy_threshold_combination"] = self.args.combination_threshold
        if self.args.max_sample_rows is not None:
            options["max_sample_rows"] = self.args.max_sample_rows
        return NormalizerConfig.from_options(options)

    def run(self) -> NormalizationResult:
        source = Path(self.args.input)
        logger.info("Normalizing %s", source)
        text = decode_bytes(source.read_bytes())
        result = normalize_csv(text, self.config())
        writer = ArtifactWriter(self.output_root)
        writer.write_result(result, source.name)
        logger.info("Run complete. Artifacts at %s", self.output_root)
        if self.args.print_sql:
            sys.stdout.write(result.sql)
        return result


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="csv3nf", description="Infer a 3NF relational schema and its DDL from a CSV file."
    )
    parser.add_argument("input", help="Path to the CSV file to normalize.")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help="Base folder for run artifacts.")
    parser.add_argument("--single-threshold", type=float, help="Single-column redundancy threshold (percent).")
    parser.add_argument("--combination-threshold", type=float, help="Combination redundancy threshold (percent).")
    parser.add_argument("--sample-data", action="store_true", help="Append sample INSERT statements.")
    parser.add_argument("--max-sample-rows", type=int, help="Rows per entity in the sample data.")
    parser.add_argument("--views", action="store_true", help="Append one view per entity.")
    parser.add_argument("--print-sql", action="store_true", help="Also print the DDL to stdout.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    try:
        Runner(args).run()
    except (Csv3nfError, OSError) as exc:
        logger.error("Failed normalizing %s: %s", args.input, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
