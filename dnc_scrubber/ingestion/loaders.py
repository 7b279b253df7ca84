"""Utilities for loading contact batches and change-list files from spreadsheets."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Tuple, Union

import pandas as pd

from ..models import PhoneKey
from ..registry.changelists import parse_change_list_lines

PathLike = Union[str, Path]

_CSV_SUFFIXES = {".csv", ".tsv", ".txt"}
_EXCEL_SUFFIXES = {".xls", ".xlsx", ".xlsm", ".xlsb"}


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the loader."""


def load_records(
    path: PathLike,
    *,
    column_mapping: Optional[Mapping[str, str]] = None,
    sheet_name: Union[str, int, None] = 0,
    loader_kwargs: Optional[MutableMapping[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Load raw contact rows from a spreadsheet.

    Parameters
    ----------
    path:
        Path to the CSV/TSV/XLSX file to be loaded.
    column_mapping:
        Optional mapping of lead field names (``phone``, ``email`` ...) to the
        column that holds them. Mapped columns are renamed so the record
        boundary recognises them; every other column is passed through as is.
    sheet_name:
        Sheet selector passed to :func:`pandas.read_excel` when loading an Excel
        file. Ignored for CSV files.
    loader_kwargs:
        Extra keyword arguments forwarded to :func:`pandas.read_csv` or
        :func:`pandas.read_excel`.

    Cells are read as text so phone numbers keep their leading digits and
    formatting. Empty rows are skipped and empty cells are omitted from the
    returned mappings.
    """

    loader_kwargs = dict(loader_kwargs or {})
    loader_kwargs.setdefault("dtype", str)
    dataframe = _read_dataframe(path, sheet_name=sheet_name, loader_kwargs=loader_kwargs)
    if column_mapping:
        dataframe = dataframe.rename(columns={column: field for field, column in column_mapping.items()})

    records: List[Dict[str, Any]] = []
    for _, row in dataframe.iterrows():
        if _row_is_empty(row):
            continue
        records.append(_row_to_record(row))
    return records


def load_change_list_entries(path: PathLike, area_codes: Iterable[str] = ()) -> List[Tuple[PhoneKey, str]]:
    """Read an authority change-list file and extract ``(PhoneKey, area_code)`` entries.

    Only the first column is used; the files carry no header row and lines
    without a valid number (a header included) are skipped.
    """

    path_obj = Path(path)
    suffix = path_obj.suffix.lower()
    if suffix in _EXCEL_SUFFIXES:
        dataframe = _read_dataframe(path_obj, loader_kwargs={"header": None, "dtype": str})
        lines = [value for value in dataframe.iloc[:, 0].tolist() if not pd.isna(value)] if not dataframe.empty else []
    elif suffix in _CSV_SUFFIXES:
        # Rows may carry a varying number of trailing columns.
        lines = path_obj.read_text(encoding="utf-8").splitlines()
    else:
        raise UnsupportedFileTypeError(f"Unsupported file extension: {path_obj.suffix}")
    return parse_change_list_lines(lines, area_codes)


def _read_dataframe(
    path: PathLike,
    *,
    sheet_name: Union[str, int, None] = 0,
    loader_kwargs: Optional[MutableMapping[str, Any]] = None,
) -> pd.DataFrame:
    loader_kwargs = dict(loader_kwargs or {})
    path_obj = Path(path)
    suffix = path_obj.suffix.lower()

    if suffix in _CSV_SUFFIXES:
        if suffix == ".tsv":
            loader_kwargs.setdefault("sep", "\t")
        return pd.read_csv(path_obj, **loader_kwargs)

    if suffix in _EXCEL_SUFFIXES:
        return pd.read_excel(path_obj, sheet_name=sheet_name, engine=loader_kwargs.pop("engine", None) or "openpyxl", **loader_kwargs)

    raise UnsupportedFileTypeError(f"Unsupported file extension: {path_obj.suffix}")


def _row_is_empty(row: pd.Series) -> bool:
    return all(pd.isna(value) or (isinstance(value, str) and not value.strip()) for value in row.values)


def _row_to_record(row: pd.Series) -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    for column, value in row.items():
        if pd.isna(value):
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        record[str(column)] = value
    return record


__all__ = ["UnsupportedFileTypeError", "load_change_list_entries", "load_records"]
