"""PyTorch-backed scoring utilities with optional GPU acceleration."""
from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
import torch
from scipy.sparse import csr_matrix


def _torch_device(prefer_gpu: bool = True) -> torch.device:
    if prefer_gpu and torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


def score_users(
    theta: np.ndarray,
    phi: np.ndarray,
    batch_size: int = 1024,
    prefer_gpu: bool = True,
) -> np.ndarray:
    """Dense ``theta @ phi`` computed in user batches."""
    device = _torch_device(prefer_gpu)
    U = torch.as_tensor(theta, dtype=torch.float64, device=device)
    P = torch.as_tensor(phi, dtype=torch.float64, device=device)
    blocks: List[np.ndarray] = []
    with torch.no_grad():
        for start in range(0, U.shape[0], batch_size):
            block = U[start : start + batch_size] @ P
            blocks.append(block.cpu().numpy())
    if not blocks:
        return np.zeros((0, phi.shape[1]), dtype=np.float64)
    return np.vstack(blocks)


def top_n_lists(
    theta: np.ndarray,
    phi: np.ndarray,
    users: Sequence[int],
    top_n: int,
    seen: csr_matrix | None = None,
    batch_size: int = 1024,
    prefer_gpu: bool = True,
) -> Dict[int, List[int]]:
    """Top-``top_n`` items per user, masking items present in ``seen``."""
    device = _torch_device(prefer_gpu)
    P = torch.as_tensor(phi, dtype=torch.float64, device=device)
    n_items = P.shape[1]
    k = min(top_n, n_items)
    users = list(users)
    ranked: Dict[int, List[int]] = {}
    with torch.no_grad():
        for start in range(0, len(users), batch_size):
            batch_users = users[start : start + batch_size]
            U = torch.as_tensor(theta[batch_users], dtype=torch.float64, device=device)
            scores = U @ P
            if seen is not None:
                block = seen[batch_users].tocoo()
                rows = torch.as_tensor(block.row, dtype=torch.long, device=device)
                cols = torch.as_tensor(block.col, dtype=torch.long, device=device)
                scores[rows, cols] = float("-inf")
            values, indices = torch.topk(scores, k, dim=1)
            values = values.cpu().numpy()
            indices = indices.cpu().numpy()
            for row_idx, user in enumerate(batch_users):
                ranked[int(user)] = [
                    int(item) for item, value in zip(indices[row_idx], values[row_idx]) if np.isfinite(value)
                ]
    return ranked
