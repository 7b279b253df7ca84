"""Export utilities for scrub results."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, MutableMapping, Optional, Union

import pandas as pd

from ..models import Classification

if TYPE_CHECKING:  # pragma: no cover - import only for annotations
    from ..orchestrator.service import ScrubResult

PathLike = Union[str, Path]

_BASE_COLUMNS = [
    "phone",
    "raw_phone",
    "name",
    "email",
    "address",
    "city",
    "state",
    "zip_code",
    "risk_score",
    "classification",
    "flags",
    "already_exists",
]
_INVALID_COLUMNS = ["index", "raw_phone", "reason"]


def export_scrub_result(
    result: "ScrubResult",
    path: PathLike,
    *,
    include_invalid: bool = True,
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write a scrub result to a CSV/TSV file or an Excel workbook.

    Delimited files hold a single table with a ``classification`` column.
    Workbooks get one sheet per classification, an ``invalid`` sheet, and a
    ``summary`` sheet.
    """

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    exporter_kwargs = dict(exporter_kwargs or {})
    suffix = output_path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            exporter_kwargs.setdefault("sep", "\t")
        frame = result_to_dataframe(result, include_invalid=include_invalid)
        frame.to_csv(output_path, index=False, **exporter_kwargs)
        return output_path

    if suffix in {".xls", ".xlsx", ".xlsm", ".xlsb"}:
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        sheets = _result_sheets(result, include_invalid=include_invalid)
        with pd.ExcelWriter(output_path, engine=engine) as writer:
            for sheet_name, frame in sheets.items():
                frame.to_excel(writer, index=False, sheet_name=sheet_name, **exporter_kwargs)
        return output_path

    raise ValueError(f"Unsupported export file extension: {suffix}")


def result_to_dataframe(result: "ScrubResult", *, include_invalid: bool = False) -> pd.DataFrame:
    """Flatten a scrub result into one table ordered clean, caution, blocked."""

    rows: List[MutableMapping[str, object]] = [item.as_row() for item in result.scored()]
    if include_invalid:
        for record in result.invalid:
            rows.append(
                {
                    "phone": "",
                    "raw_phone": record.raw_phone,
                    "classification": "invalid",
                    "flags": record.reason,
                }
            )
    return _frame(rows, _BASE_COLUMNS)


def summary_to_dataframe(result: "ScrubResult") -> pd.DataFrame:
    summary = result.summary.as_dict()
    summary["area_codes"] = ", ".join(summary["area_codes"])
    return pd.DataFrame([{"metric": key, "value": value} for key, value in summary.items()])


def _result_sheets(result: "ScrubResult", *, include_invalid: bool) -> Dict[str, pd.DataFrame]:
    sheets: Dict[str, pd.DataFrame] = {}
    for classification in Classification:
        rows = [item.as_row() for item in result.bucket(classification)]
        sheets[classification.value] = _frame(rows, _BASE_COLUMNS)
    if include_invalid:
        rows = [
            {"index": record.index, "raw_phone": record.raw_phone, "reason": record.reason}
            for record in result.invalid
        ]
        sheets["invalid"] = _frame(rows, _INVALID_COLUMNS)
    sheets["summary"] = summary_to_dataframe(result)
    return sheets


def _frame(rows: List[MutableMapping[str, object]], columns: List[str]) -> pd.DataFrame:
    extra = sorted({key for row in rows for key in row if key not in columns})
    return pd.DataFrame(rows, columns=[*columns, *extra])


__all__ = ["export_scrub_result", "result_to_dataframe", "summary_to_dataframe"]
