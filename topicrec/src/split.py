"""Per-user holdout splits for recommender experiments."""
from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from . import data_io


def holdout_split(
    interactions: Sequence[dict],
    test_frac: float = 0.2,
    seed: int = 42,
) -> tuple[list[dict], list[dict]]:
    """Hold out a fraction of every user's distinct items for testing.

    Users with a single distinct item stay entirely in the training set, and
    test rows whose item never occurs in training are dropped because a topic
    model cannot score an item it has never seen.
    """
    if not 0.0 < test_frac < 1.0:
        raise ValueError("test_frac must be in (0, 1)")

    by_user: Dict[str, List[str]] = {}
    for row in interactions:
        items = by_user.setdefault(row["user_id"], [])
        if row["item_id"] not in items:
            items.append(row["item_id"])

    rng = random.Random(seed)
    held_out: Dict[str, set[str]] = {}
    for user_id in sorted(by_user):
        items = sorted(by_user[user_id])
        if len(items) < 2:
            continue
        n_test = min(len(items) - 1, max(1, int(round(len(items) * test_frac))))
        held_out[user_id] = set(rng.sample(items, n_test))

    train_rows: list[dict] = []
    test_rows: list[dict] = []
    for row in interactions:
        if row["item_id"] in held_out.get(row["user_id"], ()):
            test_rows.append(row)
        else:
            train_rows.append(row)

    train_items = {row["item_id"] for row in train_rows}
    dropped = sum(1 for row in test_rows if row["item_id"] not in train_items)
    if dropped:
        print(f"[split] Dropping {dropped} test interactions with items unseen in training.")
        test_rows = [row for row in test_rows if row["item_id"] in train_items]

    assert {row["user_id"] for row in test_rows} <= {row["user_id"] for row in train_rows}, (
        "Test users must keep at least one training interaction!"
    )
    return train_rows, test_rows


def persist_split(
    train_rows: Iterable[dict],
    test_rows: Iterable[dict],
    out_dir: str | Path,
) -> None:
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    data_io.save_interactions_csv(train_rows, out_path / "train_interactions.csv")
    data_io.save_interactions_csv(test_rows, out_path / "test_interactions.csv")
