"""Command line entry point.

Usage:
    excel-record-extraction CONFIG.json FILE [FILE ...]

Prints every extracted record as one JSON object per line.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from excel_record_extraction import __version__
from excel_record_extraction.config import settings, validate_settings_on_startup
from excel_record_extraction.models import ParserConfig
from excel_record_extraction.output.page_output import JsonLinesOutput
from excel_record_extraction.services.excel_extractor import ExcelExtractor
from excel_record_extraction.utils.exceptions import ExtractorError
from excel_record_extraction.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="excel-record-extraction",
        description="Extract typed records from Excel workbooks as JSON lines.",
    )
    parser.add_argument("config", type=Path, help="JSON file with the extraction task")
    parser.add_argument("files", type=Path, nargs="+", help="Workbooks (.xlsx/.xlsm)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(path: Path) -> ParserConfig:
    """Read and validate an extraction task from a JSON file."""
    with path.open(encoding="utf-8") as f:
        return ParserConfig.model_validate(json.load(f))


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(
        level=settings.log_level_int,
        use_structured_formatter=settings.structured_logging,
    )
    validate_settings_on_startup(settings)

    try:
        config = load_config(args.config)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error("invalid task configuration", path=str(args.config), error=str(e))
        return 2

    output = JsonLinesOutput(sys.stdout)
    try:
        stats = ExcelExtractor(config).extract(args.files, output)
    except ExtractorError as e:
        logger.error("extraction failed", error_code=e.error_code.value, error=e.message)
        return 1
    finally:
        output.close()

    logger.info(
        "extraction complete",
        files=stats.files,
        sheets=stats.sheets,
        records=stats.records,
        skipped=stats.skipped_records,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
