"""Dataset download helpers and the lightweight YAML config reader.

MovieLens ratings are explicit; the topic model consumes implicit counts, so
ratings at or above a threshold become one interaction token each.
"""
from __future__ import annotations

import ast
import io
import zipfile
from pathlib import Path
from typing import Any, Dict

import pandas as pd
import requests
from requests import exceptions as requests_exceptions


MOVIELENS_SMALL_URL = "https://files.grouplens.org/datasets/movielens/ml-latest-small.zip"
MOVIELENS_MEDIUM_URL = "https://files.grouplens.org/datasets/movielens/ml-latest.zip"


def _http_get(url: str, *, timeout: int) -> requests.Response:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response
    except requests_exceptions.SSLError:
        print(f"[datasets] SSL verification failed for {url}; retrying without verification.")
        requests.packages.urllib3.disable_warnings()  # type: ignore[attr-defined]
        response = requests.get(url, timeout=timeout, verify=False)
        response.raise_for_status()
        return response


def read_simple_yaml(path: str | Path) -> Dict[str, Dict[str, Any]]:
    """Parse the minimal YAML subset used by the project configs."""
    content = Path(path).read_text(encoding="utf-8").splitlines()
    config: Dict[str, Dict[str, Any]] = {}
    current = None
    for line in content:
        stripped = line.split("#", 1)[0].strip()
        if not stripped:
            continue
        if stripped.endswith(":"):
            current = stripped[:-1]
            config[current] = {}
        elif ":" in stripped and current is not None:
            key, value = stripped.split(":", 1)
            key = key.strip()
            value = value.strip()
            try:
                parsed = ast.literal_eval(value)
            except (ValueError, SyntaxError):
                parsed = value
            config[current][key] = parsed
    return config


def ratings_to_interactions(ratings: pd.DataFrame, min_rating: float = 4.0) -> pd.DataFrame:
    """Keep ratings ``>= min_rating`` as single implicit interactions."""
    required = {"userId", "movieId", "rating"}
    missing = sorted(required - set(ratings.columns))
    if missing:
        raise ValueError(f"ratings frame is missing columns: {missing}")
    kept = ratings.loc[ratings["rating"] >= min_rating].copy()
    frame = pd.DataFrame(
        {
            "user_id": kept["userId"].astype(str),
            "item_id": kept["movieId"].astype(str),
            "count": 1,
            "rating": kept["rating"].astype(float),
        }
    )
    aggregations = {"count": "sum", "rating": "max"}
    if "timestamp" in kept.columns:
        frame["timestamp"] = kept["timestamp"].astype("int64")
        aggregations["timestamp"] = "max"
    frame = frame.groupby(["user_id", "item_id"], as_index=False, sort=True).agg(aggregations)
    return frame.reset_index(drop=True)


def build_interaction_frame(
    dataset: str = "small",
    min_rating: float = 4.0,
    limit: int | None = None,
) -> pd.DataFrame:
    """Download a MovieLens dataset and return implicit interaction rows.

    Args:
        dataset: One of ``{"small", "medium"}``. ``small`` maps to ``ml-latest-small``
            (100k ratings), ``medium`` to ``ml-latest``.
        min_rating: Ratings below this threshold are discarded.
        limit: Optional cap on the number of rows for quick smoke tests.
    """
    dataset = dataset.lower()
    if dataset not in {"small", "medium"}:
        raise ValueError("dataset must be either 'small' or 'medium'")

    url = MOVIELENS_SMALL_URL if dataset == "small" else MOVIELENS_MEDIUM_URL
    archive_prefix = "ml-latest-small" if dataset == "small" else "ml-latest"

    response = _http_get(url, timeout=120 if dataset == "medium" else 60)
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        with archive.open(f"{archive_prefix}/ratings.csv") as fh:
            ratings = pd.read_csv(fh)

    frame = ratings_to_interactions(ratings, min_rating=min_rating)
    if limit is not None:
        frame = frame.head(limit)
    print(
        f"[datasets] MovieLens {dataset}: {len(frame)} interactions, "
        f"{frame['user_id'].nunique()} users, {frame['item_id'].nunique()} items."
    )
    return frame
