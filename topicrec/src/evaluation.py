"""Evaluation metrics for ranking, rating and fairness.

Metrics are looked up by name in a registry. Each registered class exposes
``evaluate(ground_truth, predictions) -> float``; new metrics register
themselves with :func:`register_metric` and need no change elsewhere.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from statistics import mean
from typing import Callable, Dict, Hashable, List, Mapping, Sequence, Set, Tuple

import numpy as np
from scipy.sparse import csr_matrix

_METRICS: Dict[str, type] = {}


def register_metric(name: str) -> Callable[[type], type]:
    def decorator(cls: type) -> type:
        if name in _METRICS:
            raise ValueError(f"Metric '{name}' is already registered.")
        cls.name = name
        _METRICS[name] = cls
        return cls

    return decorator


def get_metric(name: str, **params):
    try:
        metric_cls = _METRICS[name]
    except KeyError:
        raise ValueError(f"Unknown metric '{name}'. Available: {available_metrics()}") from None
    return metric_cls(**params)


def available_metrics() -> List[str]:
    return sorted(_METRICS)


def group_positives_by_user(
    interactions: Sequence[dict],
    user_to_idx: Dict[str, int],
    item_to_idx: Dict[str, int],
) -> Dict[int, Set[int]]:
    grouped: Dict[int, Set[int]] = {}
    for row in interactions:
        u = user_to_idx.get(row["user_id"])
        i = item_to_idx.get(row["item_id"])
        if u is None or i is None:
            continue
        grouped.setdefault(u, set()).add(i)
    return grouped


def _bootstrap_ci(values: Sequence[float], samples: int = 200, confidence: float = 0.95) -> Tuple[float, float]:
    if not values:
        return 0.0, 0.0
    rng = random.Random(0)
    n = len(values)
    estimates: List[float] = []
    for _ in range(samples):
        resample = [values[rng.randrange(n)] for _ in range(n)]
        estimates.append(sum(resample) / n)
    estimates.sort()
    lower_idx = max(0, int((1 - confidence) / 2 * len(estimates)))
    upper_idx = min(len(estimates) - 1, int((confidence + (1 - confidence) / 2) * len(estimates)) - 1)
    return estimates[lower_idx], estimates[upper_idx]


def _dcg(truth: Set[int], ranked: Sequence[int]) -> float:
    return sum(1.0 / math.log2(rank + 1) for rank, item in enumerate(ranked, start=1) if item in truth)


# ---------------------------------------------------------------------------
# Ranking metrics
# ---------------------------------------------------------------------------


@dataclass
class RankingMetric:
    """Per-user metric over the top ``top_n`` of a ranked list, averaged."""

    top_n: int = 10

    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        raise NotImplementedError

    def user_values(
        self,
        ground_truth: Mapping[Hashable, Set[int]],
        predictions: Mapping[Hashable, Sequence[int]],
    ) -> List[float]:
        values: List[float] = []
        for user, truth in ground_truth.items():
            if not truth:
                continue
            ranked = list(predictions.get(user, []))[: self.top_n]
            values.append(self.user_value(truth, ranked))
        return values

    def evaluate(
        self,
        ground_truth: Mapping[Hashable, Set[int]],
        predictions: Mapping[Hashable, Sequence[int]],
    ) -> float:
        values = self.user_values(ground_truth, predictions)
        return mean(values) if values else 0.0


@register_metric("precision")
class Precision(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        return sum(1 for item in ranked if item in truth) / self.top_n


@register_metric("recall")
class Recall(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        return sum(1 for item in ranked if item in truth) / len(truth)


@register_metric("hit")
class HitRate(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        return 1.0 if any(item in truth for item in ranked) else 0.0


@register_metric("ndcg")
class NormalizedDCG(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        ideal = sum(1.0 / math.log2(idx + 1) for idx in range(1, min(len(truth), self.top_n) + 1))
        return _dcg(truth, ranked) / ideal if ideal > 0 else 0.0


@register_metric("ap")
class AveragePrecision(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        hits = 0
        total = 0.0
        for rank, item in enumerate(ranked, start=1):
            if item in truth:
                hits += 1
                total += hits / rank
        return total / min(len(truth), self.top_n)


@register_metric("rr")
class ReciprocalRank(RankingMetric):
    def user_value(self, truth: Set[int], ranked: Sequence[int]) -> float:
        for rank, item in enumerate(ranked, start=1):
            if item in truth:
                return 1.0 / rank
        return 0.0


# ---------------------------------------------------------------------------
# Rating metrics
# ---------------------------------------------------------------------------


def _rating_errors(ground_truth: Sequence[float], predictions: Sequence[float]) -> np.ndarray:
    truth = np.asarray(ground_truth, dtype=np.float64)
    preds = np.asarray(predictions, dtype=np.float64)
    if truth.shape != preds.shape:
        raise ValueError(f"Got {truth.shape[0]} ground-truth ratings but {preds.shape[0]} predictions.")
    return preds - truth


@register_metric("mse")
@dataclass
class MeanSquaredError:
    def evaluate(self, ground_truth: Sequence[float], predictions: Sequence[float]) -> float:
        errors = _rating_errors(ground_truth, predictions)
        return float(np.mean(errors**2)) if errors.size else 0.0


@register_metric("rmse")
@dataclass
class RootMeanSquaredError:
    def evaluate(self, ground_truth: Sequence[float], predictions: Sequence[float]) -> float:
        errors = _rating_errors(ground_truth, predictions)
        return float(np.sqrt(np.mean(errors**2))) if errors.size else 0.0


@register_metric("mae")
@dataclass
class MeanAbsoluteError:
    def evaluate(self, ground_truth: Sequence[float], predictions: Sequence[float]) -> float:
        errors = _rating_errors(ground_truth, predictions)
        return float(np.mean(np.abs(errors))) if errors.size else 0.0


# ---------------------------------------------------------------------------
# Fairness metrics
# ---------------------------------------------------------------------------


@register_metric("dpcf")
@dataclass
class DiscountedProportionalCFairness:
    """Consumer-side discounted proportional fairness (Kelly et al., 1998).

    Sums the DCG of the protected and unprotected user groups and returns
    ``log2(p / s) + log2(q / s)``; the maximum ``-2`` is reached when both
    groups receive the same utility. A group with zero utility is credited
    the smallest non-zero utility ``1 / log2(top_n + 1)``.
    """

    top_n: int = 10
    protected_users: Set[Hashable] = field(default_factory=set)

    def evaluate(
        self,
        ground_truth: Mapping[Hashable, Set[int]],
        predictions: Mapping[Hashable, Sequence[int]],
    ) -> float:
        if not self.protected_users:
            return 0.0
        min_utility = 1.0 / math.log2(self.top_n + 1)
        protected_dcg = 0.0
        unprotected_dcg = 0.0
        for user, truth in ground_truth.items():
            if not truth:
                continue
            dcg = _dcg(truth, list(predictions.get(user, []))[: self.top_n])
            if user in self.protected_users:
                protected_dcg += dcg
            else:
                unprotected_dcg += dcg
        protected_dcg = protected_dcg or min_utility
        unprotected_dcg = unprotected_dcg or min_utility
        total = protected_dcg + unprotected_dcg
        return math.log2(protected_dcg / total) + math.log2(unprotected_dcg / total)


def _group_item_gaps(
    ground_truth: Mapping[Tuple[Hashable, Hashable], float],
    predictions: Mapping[Tuple[Hashable, Hashable], float],
    protected_users: Set[Hashable],
) -> List[Tuple[float, float]]:
    """Per item, the mean (prediction - rating) gap of each user group.

    Items rated by only one of the two groups are skipped.
    """
    sums: Dict[Hashable, List[float]] = {}
    for (user, item), rating in ground_truth.items():
        if (user, item) not in predictions:
            continue
        gap = predictions[(user, item)] - rating
        entry = sums.setdefault(item, [0.0, 0.0, 0.0, 0.0])
        if user in protected_users:
            entry[0] += gap
            entry[1] += 1
        else:
            entry[2] += gap
            entry[3] += 1
    gaps: List[Tuple[float, float]] = []
    for protected_sum, protected_n, other_sum, other_n in sums.values():
        if protected_n and other_n:
            gaps.append((protected_sum / protected_n, other_sum / other_n))
    return gaps


@register_metric("value_unfairness")
@dataclass
class ValueUnfairness:
    """Yao & Huang (2017): inconsistency in signed estimation error across groups."""

    protected_users: Set[Hashable] = field(default_factory=set)

    def evaluate(
        self,
        ground_truth: Mapping[Tuple[Hashable, Hashable], float],
        predictions: Mapping[Tuple[Hashable, Hashable], float],
    ) -> float:
        gaps = _group_item_gaps(ground_truth, predictions, self.protected_users)
        return mean(abs(p - q) for p, q in gaps) if gaps else 0.0


@register_metric("absolute_unfairness")
@dataclass
class AbsoluteUnfairness:
    """Yao & Huang (2017): inconsistency in absolute estimation error across groups."""

    protected_users: Set[Hashable] = field(default_factory=set)

    def evaluate(
        self,
        ground_truth: Mapping[Tuple[Hashable, Hashable], float],
        predictions: Mapping[Tuple[Hashable, Hashable], float],
    ) -> float:
        gaps = _group_item_gaps(ground_truth, predictions, self.protected_users)
        return mean(abs(abs(p) - abs(q)) for p, q in gaps) if gaps else 0.0


# ---------------------------------------------------------------------------
# Ranking evaluation from a score matrix
# ---------------------------------------------------------------------------


def top_n_lists(
    scores: np.ndarray,
    users: Sequence[int],
    top_n: int,
    seen: csr_matrix | None = None,
) -> Dict[int, List[int]]:
    """Rank items per user by descending score, skipping items in ``seen``."""
    ranked: Dict[int, List[int]] = {}
    n_items = scores.shape[1]
    for user in users:
        row = np.array(scores[user], dtype=np.float64, copy=True)
        if seen is not None:
            row[seen.indices[seen.indptr[user] : seen.indptr[user + 1]]] = -np.inf
        k = min(top_n, n_items)
        if k < n_items:
            candidates = np.argpartition(-row, k - 1)[:k]
        else:
            candidates = np.arange(n_items)
        order = candidates[np.lexsort((candidates, -row[candidates]))]
        ranked[user] = [int(item) for item in order if np.isfinite(row[item])]
    return ranked


def _eval_ks(top_ns: int | Sequence[int]) -> List[int]:
    if isinstance(top_ns, int):
        eval_ks = [top_ns]
    else:
        eval_ks = [int(k) for k in top_ns]
    if not eval_ks or any(k <= 0 for k in eval_ks):
        raise ValueError("top_ns must contain positive integer(s).")
    return eval_ks


def _require_ranked_list_metric(name: str) -> None:
    """Reject metrics that do not score ``{user: [ranked items]}`` predictions."""
    metric_cls = _METRICS.get(name)
    if metric_cls is None:
        raise ValueError(f"Unknown metric '{name}'. Available: {available_metrics()}")
    if not issubclass(metric_cls, (RankingMetric, DiscountedProportionalCFairness)):
        raise ValueError(
            f"Metric '{name}' expects rating predictions, not ranked lists; "
            "call get_metric(...).evaluate(ground_truth, predictions) directly."
        )


def evaluate_ranking(
    scores: np.ndarray,
    ground_truth: Dict[int, Set[int]],
    metrics: Sequence[str] = ("precision", "recall", "ndcg"),
    top_ns: int | Sequence[int] = 10,
    seen: csr_matrix | None = None,
    bootstrap_samples: int = 200,
    metric_params: Dict[str, dict] | None = None,
) -> Dict[str, object]:
    eval_ks = _eval_ks(top_ns)
    users = sorted(user for user, truth in ground_truth.items() if truth)
    ranked = top_n_lists(scores, users, max(eval_ks), seen=seen)
    return evaluate_ranked_lists(
        ranked,
        ground_truth,
        metrics=metrics,
        top_ns=eval_ks,
        bootstrap_samples=bootstrap_samples,
        metric_params=metric_params,
    )


def evaluate_ranked_lists(
    ranked: Dict[int, List[int]],
    ground_truth: Dict[int, Set[int]],
    metrics: Sequence[str] = ("precision", "recall", "ndcg"),
    top_ns: int | Sequence[int] = 10,
    bootstrap_samples: int = 200,
    metric_params: Dict[str, dict] | None = None,
) -> Dict[str, object]:
    eval_ks = _eval_ks(top_ns)
    metric_params = metric_params or {}
    users = [user for user, truth in ground_truth.items() if truth]

    for name in metrics:
        _require_ranked_list_metric(name)

    result: Dict[str, object] = {"evaluated_users": len(users)}
    for k in eval_ks:
        for name in metrics:
            metric = get_metric(name, top_n=k, **metric_params.get(name, {}))
            if isinstance(metric, RankingMetric):
                values = metric.user_values(ground_truth, ranked)
                result[f"{name}@{k}"] = mean(values) if values else 0.0
                result[f"{name}@{k}_ci"] = _bootstrap_ci(values, samples=bootstrap_samples)
            else:
                result[f"{name}@{k}"] = metric.evaluate(ground_truth, ranked)
    return result


__all__ = [
    "AbsoluteUnfairness",
    "AveragePrecision",
    "DiscountedProportionalCFairness",
    "HitRate",
    "MeanAbsoluteError",
    "MeanSquaredError",
    "NormalizedDCG",
    "Precision",
    "RankingMetric",
    "Recall",
    "ReciprocalRank",
    "RootMeanSquaredError",
    "ValueUnfairness",
    "available_metrics",
    "evaluate_ranked_lists",
    "evaluate_ranking",
    "get_metric",
    "group_positives_by_user",
    "register_metric",
    "top_n_lists",
]
