"""
Tests for topicrec.src.data_io and topicrec.src.split
-----------------------------------------------------
Covers:
- CSV interaction loading and count parsing
- dense matrix text format
- per-user holdout split
"""

import numpy as np
import pytest

from topicrec.src import data_io
from topicrec.src.split import holdout_split, persist_split


# ---------------------------------------------------
# Interactions CSV
# ---------------------------------------------------

def test_load_interactions_parses_counts(interactions_csv):
    rows = data_io.load_interactions(interactions_csv, verbose=False)
    assert len(rows) == 32
    assert rows[0] == {"user_id": "u0", "item_id": "a1", "count": 1}
    assert rows[4]["count"] == 2


def test_missing_count_defaults_to_one(tmp_path):
    path = tmp_path / "rows.csv"
    path.write_text("user_id,item_id,rating\nu1,i1,4.5\n", encoding="utf-8")
    rows = data_io.load_interactions(path, verbose=False)
    assert rows == [{"user_id": "u1", "item_id": "i1", "count": 1, "rating": 4.5}]


def test_negative_count_rejected(tmp_path):
    path = tmp_path / "rows.csv"
    path.write_text("user_id,item_id,count\nu1,i1,-2\n", encoding="utf-8")
    with pytest.raises(data_io.DataFormatError):
        data_io.load_interactions(path, verbose=False)


@pytest.mark.parametrize("count", ["abc", "inf", "nan", "1.5"])
def test_malformed_count_rejected(tmp_path, count):
    path = tmp_path / "rows.csv"
    path.write_text(f"user_id,item_id,count\nu1,i1,{count}\n", encoding="utf-8")
    with pytest.raises(data_io.DataFormatError):
        data_io.load_interactions(path, verbose=False)


def test_missing_columns_rejected(tmp_path):
    path = tmp_path / "rows.csv"
    path.write_text("user,item\nu1,i1\n", encoding="utf-8")
    with pytest.raises(data_io.DataFormatError):
        data_io.load_interactions(path, verbose=False)


def test_non_csv_not_supported(tmp_path):
    with pytest.raises(NotImplementedError):
        data_io.load_interactions(tmp_path / "rows.parquet")


def test_limit_caps_rows(interactions_csv):
    assert len(data_io.load_interactions(interactions_csv, limit=5, verbose=False)) == 5


def test_save_and_reload_interactions(tmp_path):
    rows = [{"user_id": "u1", "item_id": "i1", "count": 3}]
    path = tmp_path / "out" / "rows.csv"
    data_io.save_interactions_csv(rows, path)
    assert data_io.load_interactions(path, verbose=False) == rows


# ---------------------------------------------------
# Dense matrices
# ---------------------------------------------------

def test_dense_matrix_header(tmp_path):
    path = tmp_path / "m.txt"
    data_io.save_dense_matrix(np.array([[0.25, 0.75], [1.0, 0.0], [0.5, 0.5]]), path)
    assert path.read_text(encoding="utf-8").splitlines()[0] == "3 2"
    assert data_io.load_dense_matrix(path).tolist() == [[0.25, 0.75], [1.0, 0.0], [0.5, 0.5]]


def test_dense_matrix_bad_header(tmp_path):
    path = tmp_path / "m.txt"
    path.write_text("3\n1,2\n", encoding="utf-8")
    with pytest.raises(data_io.DataFormatError):
        data_io.load_dense_matrix(path)


def test_dense_matrix_short_row(tmp_path):
    path = tmp_path / "m.txt"
    path.write_text("1 3\n1,2\n", encoding="utf-8")
    with pytest.raises(data_io.DataFormatError):
        data_io.load_dense_matrix(path)


# ---------------------------------------------------
# Holdout split
# ---------------------------------------------------

def test_holdout_keeps_every_test_user_in_train(interactions_csv):
    rows = data_io.load_interactions(interactions_csv, verbose=False)
    train, test = holdout_split(rows, test_frac=0.25, seed=3)
    # one held-out item per user; rows whose item left training entirely are dropped
    assert len(train) == 24
    assert 0 < len(test) <= 8
    assert {r["user_id"] for r in test} <= {r["user_id"] for r in train}
    assert {r["item_id"] for r in test} <= {r["item_id"] for r in train}


def test_holdout_is_seeded(interactions_csv):
    rows = data_io.load_interactions(interactions_csv, verbose=False)
    assert holdout_split(rows, seed=9) == holdout_split(rows, seed=9)


def test_single_item_users_stay_in_train():
    rows = [{"user_id": "solo", "item_id": "x"}, {"user_id": "pair", "item_id": "x"},
            {"user_id": "pair", "item_id": "y"}]
    train, test = holdout_split(rows, test_frac=0.5, seed=0)
    assert all(r["user_id"] != "solo" for r in test)


def test_invalid_test_frac():
    with pytest.raises(ValueError):
        holdout_split([], test_frac=1.0)


def test_persist_split_writes_both_files(tmp_path):
    persist_split([{"user_id": "u", "item_id": "i"}], [], tmp_path)
    assert (tmp_path / "train_interactions.csv").exists()
    assert (tmp_path / "test_interactions.csv").exists()
