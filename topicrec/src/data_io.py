"""Utilities for reading and writing interaction data and model matrices."""
from __future__ import annotations

import csv
import json
import math
from pathlib import Path
from typing import Iterable, List, Dict, Any, Sequence

import numpy as np

REQUIRED_COLUMNS = ["user_id", "item_id"]
INT_COLUMNS = {"count", "timestamp"}
FLOAT_COLUMNS = {"rating"}


class DataFormatError(ValueError):
    """Raised when the input data does not match the expected schema."""


def _ensure_required_columns(row: Dict[str, Any]) -> None:
    missing = [col for col in REQUIRED_COLUMNS if col not in row]
    if missing:
        raise DataFormatError(f"Missing required columns: {missing}")


def _parse_count(value: Any) -> int:
    if value is None or str(value).strip() == "":
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise DataFormatError(f"Interaction count {value!r} is not a number.") from exc
    if not math.isfinite(number) or number < 0 or number != int(number):
        raise DataFormatError(f"Interaction counts must be non-negative integers, got {value!r}.")
    return int(number)


def _writer_fieldnames(rows: Sequence[Dict[str, Any]]) -> List[str]:
    if not rows:
        return list(REQUIRED_COLUMNS)
    ordered: List[str] = []
    seen = set()
    for column in REQUIRED_COLUMNS:
        if any(column in row for row in rows):
            ordered.append(column)
            seen.add(column)
    for row in rows:
        for key in row.keys():
            if key not in seen:
                ordered.append(key)
                seen.add(key)
    return ordered


def load_interactions(path: str | Path, limit: int | None = None, verbose: bool = True) -> List[Dict[str, Any]]:
    """Load interactions from a CSV file.

    Parameters
    ----------
    path:
        Location of the input file. Only CSV is supported; other extensions
        raise a :class:`NotImplementedError`.
    limit:
        Optional cap on the number of rows read.
    """
    path = Path(path)
    if path.suffix.lower() != ".csv":
        raise NotImplementedError(
            f"Unsupported extension '{path.suffix}'. Only CSV interaction files are supported."
        )

    if limit is not None and limit <= 0:
        raise ValueError("limit must be positive when provided.")

    with path.open("r", newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        rows: List[Dict[str, Any]] = []
        for row in reader:
            _ensure_required_columns(row)
            parsed: Dict[str, Any] = {
                "user_id": row["user_id"],
                "item_id": row["item_id"],
                "count": _parse_count(row.get("count")),
            }
            for column in reader.fieldnames or []:
                if column in parsed:
                    continue
                value = row.get(column)
                if value in {None, ""}:
                    continue
                if column in INT_COLUMNS:
                    parsed[column] = int(float(value))
                elif column in FLOAT_COLUMNS:
                    parsed[column] = float(value)
                else:
                    parsed[column] = value
            rows.append(parsed)
            if limit is not None and len(rows) >= limit:
                break
    if verbose:
        print(f"[data] Loaded {len(rows)} interactions from {path}.")
        if rows:
            n_users = len({row["user_id"] for row in rows})
            n_items = len({row["item_id"] for row in rows})
            print(f"[data] Dataset contains {n_users} unique users and {n_items} unique items.")
    return rows


def save_interactions_csv(rows: Iterable[Dict[str, Any]], path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    materialized = list(rows)
    fieldnames = _writer_fieldnames(materialized)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        for row in materialized:
            serialized: Dict[str, Any] = {}
            for key in fieldnames:
                value = row.get(key, "")
                serialized[key] = "" if value is None else value
            writer.writerow(serialized)


def save_json(data: Any, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)


def load_json(path: str | Path) -> Any:
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def save_dense_matrix(matrix: np.ndarray, path: str | Path, fmt: str = ".17g") -> None:
    """Write ``matrix`` row-major with a ``rows cols`` header line."""
    matrix = np.atleast_2d(np.asarray(matrix))
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows, cols = matrix.shape
    with path.open("w", encoding="utf-8") as fh:
        fh.write(f"{rows} {cols}\n")
        for row in matrix:
            fh.write(",".join(format(value, fmt) for value in row.tolist()) + "\n")


def load_dense_matrix(path: str | Path) -> np.ndarray:
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        header = fh.readline().split()
        if len(header) != 2:
            raise DataFormatError(f"Missing 'rows cols' header in {path}.")
        rows, cols = int(header[0]), int(header[1])
        matrix = np.zeros((rows, cols), dtype=np.float64)
        for row_idx in range(rows):
            line = fh.readline().strip()
            values = [float(value) for value in line.split(",")] if line else []
            if len(values) != cols:
                raise DataFormatError(
                    f"Row {row_idx} of {path} has {len(values)} values, expected {cols}."
                )
            matrix[row_idx] = values
    return matrix
