"""
Tests for topicrec.src.datasets
-------------------------------
Covers:
- the minimal YAML reader used by the scripts
- turning explicit ratings into implicit interactions (no network)
"""

from pathlib import Path

import pandas as pd
import pytest

from topicrec.src.datasets import ratings_to_interactions, read_simple_yaml

BASE_CONFIG = Path(__file__).resolve().parents[1] / "topicrec" / "configs" / "base.yaml"


def test_read_simple_yaml(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "# experiment\nlda:\n  topics: 8  # K\n  init_alpha: None\n  name: plain text\neval:\n  k: [5, 10]\n",
        encoding="utf-8",
    )
    cfg = read_simple_yaml(path)
    assert cfg == {"lda": {"topics": 8, "init_alpha": None, "name": "plain text"}, "eval": {"k": [5, 10]}}


def test_base_config_has_sections():
    cfg = read_simple_yaml(BASE_CONFIG)
    assert {"split", "lda", "eval"} <= set(cfg)
    assert cfg["lda"]["burn_in"] < cfg["lda"]["rounds"]


def test_ratings_to_interactions_thresholds():
    ratings = pd.DataFrame(
        {
            "userId": [1, 1, 2, 2],
            "movieId": [10, 20, 10, 30],
            "rating": [4.5, 2.0, 4.0, 5.0],
            "timestamp": [100, 200, 300, 400],
        }
    )
    frame = ratings_to_interactions(ratings, min_rating=4.0)
    assert frame[["user_id", "item_id"]].values.tolist() == [["1", "10"], ["2", "10"], ["2", "30"]]
    assert frame["count"].tolist() == [1, 1, 1]
    assert frame["timestamp"].tolist() == [100, 300, 400]


def test_repeated_ratings_add_counts():
    ratings = pd.DataFrame({"userId": [1, 1], "movieId": [10, 10], "rating": [4.0, 5.0]})
    frame = ratings_to_interactions(ratings)
    assert frame["count"].tolist() == [2]
    assert frame["rating"].tolist() == [5.0]


def test_missing_rating_columns():
    with pytest.raises(ValueError):
        ratings_to_interactions(pd.DataFrame({"userId": [1]}))
