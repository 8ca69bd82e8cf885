"""
Pytest configuration and shared fixtures

This file contains fixtures that are available to all test files.
"""

import csv

import numpy as np
import pytest

from topicrec.src.interactions import InteractionMatrix
from topicrec.src.models.lda import LDAConfig


# ---------------------------------------------------
# Interaction matrices
# ---------------------------------------------------

@pytest.fixture
def diagonal_matrix():
    """2 users × 2 items, user0–item0 count 1 and user1–item1 count 1."""
    return InteractionMatrix.from_dense([[1, 0], [0, 1]])


@pytest.fixture
def small_matrix():
    """Random 12 users × 9 items count matrix with a few repeated tokens."""
    rng = np.random.default_rng(7)
    dense = rng.integers(0, 3, size=(12, 9))
    dense[dense == 1] = 0
    dense[:, 0] += 1  # every user has at least one token
    return InteractionMatrix.from_dense(dense)


@pytest.fixture
def quick_config():
    """Short schedule for fast training tests."""
    return LDAConfig(topics=3, rounds=6, burn_in=2, seed=11)


# ---------------------------------------------------
# CSV fixtures
# ---------------------------------------------------

@pytest.fixture
def interactions_csv(tmp_path):
    """Two user communities with disjoint item tastes."""
    path = tmp_path / "interactions.csv"
    rows = []
    for u in range(8):
        items = ["a1", "a2", "a3", "a4"] if u < 4 else ["b1", "b2", "b3", "b4"]
        for item in items:
            rows.append({"user_id": f"u{u}", "item_id": item, "count": 1 + (u % 2)})
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=["user_id", "item_id", "count"])
        writer.writeheader()
        writer.writerows(rows)
    return path
