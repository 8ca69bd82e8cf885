"""End-to-end routines: split interactions, train LDA, evaluate rankings."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

from . import data_io
from .evaluation import evaluate_ranked_lists, evaluate_ranking, group_positives_by_user
from .interactions import build_interaction_matrix
from .models.lda import LDAConfig, LDARecommender
from .split import holdout_split, persist_split

DEFAULT_METRICS = ("precision", "recall", "hit", "ndcg", "ap", "rr")


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if not lowered:
            return default
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return bool(value)


def _coerce_int(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, str):
        lowered = value.strip().lower()
        if not lowered or lowered in {"none", "null"}:
            return default
    return int(value)


def _coerce_optional_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if not lowered or lowered in {"none", "null"}:
            return None
        return float(value)
    return float(value)


def build_lda_config(cfg: dict | None = None, seed: int = 42, verbose: bool = False) -> LDAConfig:
    """Translate a loosely typed config section into an :class:`LDAConfig`."""
    cfg = dict(cfg or {})
    init_beta = _coerce_optional_float(cfg.get("init_beta"))
    return LDAConfig(
        topics=_coerce_int(cfg.get("topics"), 10),
        init_alpha=_coerce_optional_float(cfg.get("init_alpha")),
        init_beta=0.01 if init_beta is None else init_beta,
        rounds=_coerce_int(cfg.get("rounds"), 1000),
        burn_in=_coerce_int(cfg.get("burn_in"), 100),
        sample_lag=_coerce_int(cfg.get("sample_lag"), 1),
        seed=_coerce_int(cfg.get("seed"), seed),
        verbose=_coerce_bool(cfg.get("verbose"), verbose),
    )


def prepare_dataset(
    data_path: str | Path,
    out_dir: str | Path,
    test_frac: float = 0.2,
    seed: int = 42,
    interaction_limit: int | None = None,
) -> None:
    interactions = data_io.load_interactions(data_path, limit=interaction_limit)
    if interaction_limit is not None:
        print(f"[data] Using {len(interactions)} interactions out of the source data (limit={interaction_limit}).")
    train_rows, test_rows = holdout_split(interactions, test_frac=test_frac, seed=seed)
    persist_split(train_rows, test_rows, out_dir)
    print(f"[split] train={len(train_rows)} test={len(test_rows)} written to {out_dir}")


def train_and_evaluate_lda(
    data_dir: str | Path,
    lda_cfg: dict | None = None,
    k_eval: int | Sequence[int] = 10,
    metrics: Sequence[str] = DEFAULT_METRICS,
    seed: int = 42,
    backend: str = "numpy",
    prefer_gpu: bool = True,
    batch_size: int = 1024,
    save_model: bool = True,
    verbose: bool = True,
) -> Dict[str, Dict[str, object]]:
    data_path = Path(data_dir)
    train_rows = data_io.load_interactions(data_path / "train_interactions.csv", verbose=verbose)
    test_rows = data_io.load_interactions(data_path / "test_interactions.csv", verbose=verbose)

    matrix, user_to_idx, item_to_idx = build_interaction_matrix(train_rows)
    config = build_lda_config(lda_cfg, seed=seed, verbose=verbose)
    model = LDARecommender(config).fit(matrix)

    ground_truth = group_positives_by_user(test_rows, user_to_idx, item_to_idx)
    eval_ks = [k_eval] if isinstance(k_eval, int) else [int(k) for k in k_eval]

    backend_key = backend.lower()
    if backend_key == "torch":
        from . import torch_backend

        users = sorted(user for user, truth in ground_truth.items() if truth)
        ranked = torch_backend.top_n_lists(
            model.theta,
            model.phi,
            users,
            max(eval_ks),
            seen=matrix.csr,
            batch_size=batch_size,
            prefer_gpu=prefer_gpu,
        )
        results = evaluate_ranked_lists(ranked, ground_truth, metrics=metrics, top_ns=eval_ks)
    elif backend_key == "numpy":
        results = evaluate_ranking(model.score_users(), ground_truth, metrics=metrics, top_ns=eval_ks, seen=matrix.csr)
    else:
        raise ValueError(f"Unknown backend '{backend}'; expected 'numpy' or 'torch'.")

    results["perplexity"] = model.perplexity()
    results["rounds"] = len(model.history)
    results["num_stats"] = model.num_stats

    if save_model:
        user_ids = sorted(user_to_idx, key=user_to_idx.get)
        item_ids = sorted(item_to_idx, key=item_to_idx.get)
        model.save(data_path / "models" / "lda", user_ids=user_ids, item_ids=item_ids)
    if verbose:
        summary = " ".join(
            f"{name}={value:.4f}" for name, value in results.items() if isinstance(value, float)
        )
        print(f"[lda] {summary}")
    return {"lda": results}
