"""Utilities for loading contact batches and exporting scrub results."""

from .exporters import export_scrub_result, result_to_dataframe
from .loaders import UnsupportedFileTypeError, load_change_list_entries, load_records

__all__ = [
    "UnsupportedFileTypeError",
    "export_scrub_result",
    "load_change_list_entries",
    "load_records",
    "result_to_dataframe",
]
