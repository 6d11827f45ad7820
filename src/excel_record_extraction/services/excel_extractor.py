"""Extract typed records from Excel workbooks into a PageOutput."""

from __future__ import annotations

import io
import uuid
import zipfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from excel_record_extraction.config import settings
from excel_record_extraction.excel_document import ExcelSheet, ExcelWorkbook
from excel_record_extraction.models import ParserConfig, Schema, SchemaColumn
from excel_record_extraction.output.page_builder import PageBuilder
from excel_record_extraction.output.page_output import NonFinishingOutput, PageOutput
from excel_record_extraction.services.bindings import BindingBuilder
from excel_record_extraction.services.column_visitor import ColumnVisitor
from excel_record_extraction.services.records import new_record
from excel_record_extraction.services.sheet_resolver import resolve_sheet_names
from excel_record_extraction.utils.exceptions import (
    ErrorCode,
    SheetNotFoundError,
    WorkbookDecodeError,
)
from excel_record_extraction.utils.logging import (
    LogContext,
    PerformanceMetrics,
    get_logger,
    timed_operation,
)

logger = get_logger(__name__)

WorkbookInput = Union[bytes, bytearray, BinaryIO, Path, str]


@dataclass
class ExtractionStats:
    """Counters of one extraction run."""

    files: int = 0
    sheets: int = 0
    records: int = 0
    skipped_records: int = 0
    flushes: int = 0


def plan_schema(config: ParserConfig) -> Schema:
    """Build the output schema from the task's ``columns``; no I/O."""
    return Schema(
        columns=tuple(
            SchemaColumn(index=i, name=column.name, type=column.type)
            for i, column in enumerate(config.columns)
        )
    )


def load_excel_workbook(data: WorkbookInput, source: str | None = None) -> ExcelWorkbook:
    """Decode one workbook input.

    The workbook is loaded twice: with formulas, and with the values cached
    by the application that saved the file.

    Raises:
        WorkbookDecodeError: If the input is not a readable workbook.
    """
    if isinstance(data, (str, Path)):
        path = Path(data)
        source = source or str(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise WorkbookDecodeError(
                f"cannot read workbook: {e}",
                source=source,
                error_code=ErrorCode.WORKBOOK_READ_ERROR,
            ) from e
    elif isinstance(data, (bytes, bytearray)):
        content = bytes(data)
    else:
        source = source or getattr(data, "name", None)
        content = data.read()
    source = source or "<stream>"

    try:
        workbook = load_workbook(io.BytesIO(content), data_only=False, read_only=False)
        cached = load_workbook(io.BytesIO(content), data_only=True, read_only=False)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise WorkbookDecodeError(
            f"cannot decode workbook: {e}", source=source, details={"reason": type(e).__name__}
        ) from e
    return ExcelWorkbook(workbook=workbook, cached_workbook=cached, source=source)


class ExcelExtractor:
    """Drive extraction of one task over a sequence of workbook inputs."""

    def __init__(self, config: ParserConfig, schema: Schema | None = None) -> None:
        self._config = config
        self._schema = schema or plan_schema(config)
        self._bindings = BindingBuilder(config)
        self._flush_count = config.flush_count or settings.default_flush_count

    @property
    def schema(self) -> Schema:
        return self._schema

    def extract(
        self, inputs: Iterable[WorkbookInput], output: PageOutput
    ) -> ExtractionStats:
        """Extract every input in order and finish ``output`` once.

        Args:
            inputs: Workbook inputs (bytes, binary streams or paths).
            output: Receiver of record pages.

        Returns:
            Counters of the run.

        Raises:
            ConfigError: If no sheet selector is configured.
            SheetNotFoundError: If a sheet is missing and not ignored.
            WorkbookDecodeError: If an input cannot be decoded.
            CellProcessingError: If a column error's policy is ``exception``.
        """
        selectors = self._config.sheet_selectors()
        stats = ExtractionStats()

        with LogContext(run_id=uuid.uuid4().hex[:12]), timed_operation(
            logger, "extraction"
        ) as metrics:
            # each file's page builder must not finish the real output
            never_finish = NonFinishingOutput(output)
            for data in inputs:
                workbook = load_excel_workbook(data)
                stats.files += 1
                with LogContext(source=workbook.source):
                    sheet_names = resolve_sheet_names(workbook.sheet_names, selectors)
                    logger.debug("resolved sheet names", names=sheet_names)
                    self._extract_workbook(workbook, sheet_names, never_finish, stats)
            output.finish()
            self._record_metrics(metrics, stats)

        return stats

    def _extract_workbook(
        self,
        workbook: ExcelWorkbook,
        sheet_names: list[str],
        output: PageOutput,
        stats: ExtractionStats,
    ) -> None:
        with PageBuilder(self._schema, output) as page_builder:
            for sheet_name in sheet_names:
                sheet = workbook.get_sheet(sheet_name)
                if sheet is None:
                    if self._config.ignore_sheet_not_found:
                        logger.info("ignore: not found sheet", sheet=sheet_name)
                        continue
                    raise SheetNotFoundError(sheet_name, source=workbook.source)

                logger.info("sheet", name=sheet_name)
                with LogContext(sheet=sheet_name):
                    self._extract_sheet(workbook, sheet, page_builder, stats)
            page_builder.finish()

    def _extract_sheet(
        self,
        workbook: ExcelWorkbook,
        sheet: ExcelSheet,
        page_builder: PageBuilder,
        stats: ExtractionStats,
    ) -> None:
        sheet_binding = self._bindings.build(sheet.name)
        visitor = ColumnVisitor(workbook, sheet_binding, page_builder)

        record = new_record(sheet_binding.record_type)
        record.initialize(sheet, sheet_binding.skip_header_lines)
        visitor.set_record(record)

        count = 0
        while record.exists():
            record.log_start()

            visitor.visit_columns()
            if visitor.skip_record:
                page_builder.discard_record()
                stats.skipped_records += 1
            else:
                page_builder.add_record()
                stats.records += 1

            count += 1
            if count >= self._flush_count:
                logger.debug("flush")
                page_builder.flush()
                stats.flushes += 1
                count = 0

            record.log_end()
            record.move_next()

        page_builder.flush()
        stats.flushes += 1
        stats.sheets += 1

    @staticmethod
    def _record_metrics(metrics: PerformanceMetrics, stats: ExtractionStats) -> None:
        metrics.files_processed = stats.files
        metrics.sheets_processed = stats.sheets
        metrics.records_emitted = stats.records
        metrics.records_skipped = stats.skipped_records
        metrics.flushes = stats.flushes


def extract(
    config: ParserConfig,
    schema: Schema,
    inputs: Iterable[WorkbookInput],
    output: PageOutput,
) -> ExtractionStats:
    """Extract records of ``inputs`` into ``output``.

    ``output.finish()`` is called exactly once, after the last input.
    """
    return ExcelExtractor(config, schema).extract(inputs, output)
