"""Sinks receiving flushed pages of records as pandas DataFrames."""

from __future__ import annotations

import json
from typing import IO, Any, Protocol, runtime_checkable

import pandas as pd

from excel_record_extraction.utils.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class PageOutput(Protocol):
    """Receiver of record pages.

    ``add`` is called once per flushed page, ``finish`` once after the last
    page, and ``close`` to release the output.
    """

    def add(self, page: pd.DataFrame) -> None: ...

    def finish(self) -> None: ...

    def close(self) -> None: ...


class NonFinishingOutput:
    """Forward pages but ignore ``finish`` and ``close``.

    Used while iterating over several input files so that each file's page
    builder cannot end the output stream; the real output is finished once
    after the last file.
    """

    def __init__(self, output: PageOutput) -> None:
        self._output = output

    def add(self, page: pd.DataFrame) -> None:
        self._output.add(page)

    def finish(self) -> None:
        pass

    def close(self) -> None:
        pass


class DataFrameOutput:
    """Collect pages in memory."""

    def __init__(self) -> None:
        self.pages: list[pd.DataFrame] = []
        self.finish_count = 0
        self.closed = False

    def add(self, page: pd.DataFrame) -> None:
        self.pages.append(page)

    def finish(self) -> None:
        self.finish_count += 1

    def close(self) -> None:
        self.closed = True

    @property
    def finished(self) -> bool:
        return self.finish_count > 0

    def to_frame(self) -> pd.DataFrame:
        """Concatenate all pages into one DataFrame."""
        if not self.pages:
            return pd.DataFrame()
        return pd.concat(self.pages, ignore_index=True)

    def records(self) -> list[dict[str, Any]]:
        """All rows as dicts, in output order; missing values are None."""
        rows: list[dict[str, Any]] = []
        for page in self.pages:
            for row in page.to_dict(orient="records"):
                rows.append({k: (None if _is_missing(v) else v) for k, v in row.items()})
        return rows


class JsonLinesOutput:
    """Write each record as one JSON object per line."""

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream
        self.records_written = 0

    def add(self, page: pd.DataFrame) -> None:
        for row in page.to_dict(orient="records"):
            record = {k: _to_json_value(v) for k, v in row.items()}
            self._stream.write(json.dumps(record, ensure_ascii=False) + "\n")
            self.records_written += 1

    def finish(self) -> None:
        self._stream.flush()
        logger.info("output finished", records=self.records_written)

    def close(self) -> None:
        pass


def _is_missing(value: Any) -> bool:
    if isinstance(value, (dict, list)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _to_json_value(value: Any) -> Any:
    if _is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value
