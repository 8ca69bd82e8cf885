"""Sparse user–item count matrix used as the training input."""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix


def build_index(values: Iterable[str]) -> Tuple[Dict[str, int], List[str]]:
    unique = sorted(set(values))
    mapping = {val: idx for idx, val in enumerate(unique)}
    return mapping, unique


def _integer_counts(values) -> np.ndarray:
    counts = np.asarray(values)
    if counts.dtype.kind == "f":
        if not np.all(np.isfinite(counts)) or np.any(counts != np.round(counts)):
            raise ValueError("Interaction counts must be whole numbers.")
    elif counts.size and counts.dtype.kind not in "iub":
        raise ValueError(f"Interaction counts must be numeric, got dtype {counts.dtype}.")
    return counts.astype(np.int64)


class InteractionMatrix:
    """Non-negative integer counts indexed by (user, item).

    Nonzero entries are always visited in row-major order with ascending item
    indices, so the token traversal used by the sampler is repeatable.
    """

    def __init__(self, matrix: csr_matrix) -> None:
        matrix = csr_matrix(matrix, copy=True)
        matrix = csr_matrix(
            (_integer_counts(matrix.data), matrix.indices, matrix.indptr), shape=matrix.shape, dtype=np.int64
        )
        matrix.sum_duplicates()
        matrix.eliminate_zeros()
        matrix.sort_indices()
        if matrix.nnz and matrix.data.min() < 0:
            raise ValueError("Interaction counts must be non-negative.")
        self._matrix = matrix

    @classmethod
    def from_triples(
        cls,
        users: Sequence[int],
        items: Sequence[int],
        counts: Sequence[int],
        shape: Tuple[int, int],
    ) -> "InteractionMatrix":
        data = _integer_counts(counts)
        rows = np.asarray(users, dtype=np.int64)
        cols = np.asarray(items, dtype=np.int64)
        return cls(csr_matrix((data, (rows, cols)), shape=shape))

    @classmethod
    def from_dense(cls, values: Sequence[Sequence[int]]) -> "InteractionMatrix":
        return cls(csr_matrix(_integer_counts(values)))

    @property
    def shape(self) -> Tuple[int, int]:
        return self._matrix.shape

    @property
    def num_users(self) -> int:
        return self._matrix.shape[0]

    @property
    def num_items(self) -> int:
        return self._matrix.shape[1]

    @property
    def nnz(self) -> int:
        return self._matrix.nnz

    @property
    def total_mass(self) -> int:
        return int(self._matrix.data.sum())

    @property
    def csr(self) -> csr_matrix:
        return self._matrix

    def get(self, user: int, item: int) -> int:
        return int(self._matrix[user, item])

    def row_items(self, user: int) -> np.ndarray:
        start, end = self._matrix.indptr[user], self._matrix.indptr[user + 1]
        return self._matrix.indices[start:end]

    def entries(self) -> Iterator[Tuple[int, int, int]]:
        """Yield ``(user, item, count)`` for every nonzero cell."""
        indptr, indices, data = self._matrix.indptr, self._matrix.indices, self._matrix.data
        for user in range(self.num_users):
            for pos in range(indptr[user], indptr[user + 1]):
                yield user, int(indices[pos]), int(data[pos])

    def token_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return per-token user and item indices in traversal order."""
        coo_rows = np.repeat(np.arange(self.num_users), np.diff(self._matrix.indptr))
        token_users = np.repeat(coo_rows, self._matrix.data)
        token_items = np.repeat(self._matrix.indices, self._matrix.data)
        return token_users.astype(np.int64), token_items.astype(np.int64)

    def to_dense(self) -> np.ndarray:
        return self._matrix.toarray()

    def __repr__(self) -> str:
        return (
            f"InteractionMatrix(users={self.num_users}, items={self.num_items}, "
            f"nnz={self.nnz}, mass={self.total_mass})"
        )


def build_interaction_matrix(
    interactions: Sequence[dict],
    user_to_idx: Dict[str, int] | None = None,
    item_to_idx: Dict[str, int] | None = None,
) -> Tuple[InteractionMatrix, Dict[str, int], Dict[str, int]]:
    """Aggregate interaction rows into a count matrix.

    Rows for users or items missing from a supplied index are skipped; when no
    index is given one is built from the rows themselves.
    """
    if user_to_idx is None:
        user_to_idx, _ = build_index(row["user_id"] for row in interactions)
    if item_to_idx is None:
        item_to_idx, _ = build_index(row["item_id"] for row in interactions)
    users: List[int] = []
    items: List[int] = []
    counts: List[int] = []
    for row in interactions:
        u = user_to_idx.get(row["user_id"])
        i = item_to_idx.get(row["item_id"])
        if u is None or i is None:
            continue
        users.append(u)
        items.append(i)
        counts.append(row.get("count", 1))
    matrix = InteractionMatrix.from_triples(users, items, counts, (len(user_to_idx), len(item_to_idx)))
    return matrix, user_to_idx, item_to_idx


__all__ = ["InteractionMatrix", "build_index", "build_interaction_matrix"]
