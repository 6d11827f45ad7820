"""Output of extracted records.

This module buffers records into pandas DataFrame pages and hands them to
page outputs (in-memory collection or JSON lines).
"""

from excel_record_extraction.output.page_builder import PageBuilder
from excel_record_extraction.output.page_output import (
    DataFrameOutput,
    JsonLinesOutput,
    NonFinishingOutput,
    PageOutput,
)

__all__ = [
    "DataFrameOutput",
    "JsonLinesOutput",
    "NonFinishingOutput",
    "PageBuilder",
    "PageOutput",
]
