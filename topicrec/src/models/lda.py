"""Latent Dirichlet Allocation for implicit feedback.

Users play the role of documents and items the role of words: every unit of
interaction count is a token whose latent topic is resampled with collapsed
Gibbs sampling (Griffiths, 2002). After each sweep the Dirichlet priors are
re-estimated with Minka's fixed-point iteration, and once the chain is past
burn-in the per-round posterior means of theta (user × topic) and phi
(topic × item) are averaged into the final model.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np
from scipy.special import digamma

from .. import data_io
from ..em import (
    ConfigurationError,
    EMConfig,
    LifecycleError,
    RoundStats,
    TrainingPhases,
    run_em,
)
from ..interactions import InteractionMatrix


@dataclass
class LDAConfig:
    topics: int = 10
    init_alpha: float | None = None
    init_beta: float = 0.01
    rounds: int = 1000
    burn_in: int = 100
    sample_lag: int = 1
    seed: int = 42
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.topics <= 0:
            raise ConfigurationError(f"topics must be positive, got {self.topics}.")
        if self.init_alpha is None:
            # Griffiths & Steyvers (2004)
            self.init_alpha = 50.0 / self.topics
        if self.init_alpha <= 0 or self.init_beta <= 0:
            raise ConfigurationError("Dirichlet priors init_alpha and init_beta must be positive.")
        self.em_config()

    def em_config(self) -> EMConfig:
        return EMConfig(
            rounds=self.rounds,
            burn_in=self.burn_in,
            sample_lag=self.sample_lag,
            seed=self.seed,
            verbose=self.verbose,
        )


@dataclass
class CountAggregates:
    user_topic: np.ndarray
    topic_item: np.ndarray
    user_totals: np.ndarray
    topic_totals: np.ndarray

    @classmethod
    def from_assignments(
        cls,
        token_users: np.ndarray,
        token_items: np.ndarray,
        assignments: np.ndarray,
        num_users: int,
        num_items: int,
        topics: int,
    ) -> "CountAggregates":
        user_topic = np.zeros((num_users, topics), dtype=np.int64)
        topic_item = np.zeros((topics, num_items), dtype=np.int64)
        np.add.at(user_topic, (token_users, assignments), 1)
        np.add.at(topic_item, (assignments, token_items), 1)
        return cls(
            user_topic=user_topic,
            topic_item=topic_item,
            user_totals=user_topic.sum(axis=1),
            topic_totals=topic_item.sum(axis=1),
        )

    def is_consistent(self) -> bool:
        return bool(
            np.array_equal(self.user_topic.sum(axis=1), self.user_totals)
            and np.array_equal(self.topic_item.sum(axis=1), self.topic_totals)
        )


@dataclass
class LDAState:
    matrix: InteractionMatrix
    token_users: np.ndarray
    token_items: np.ndarray
    assignments: np.ndarray
    counts: CountAggregates
    alpha: np.ndarray
    beta: np.ndarray

    @property
    def topics(self) -> int:
        return self.alpha.shape[0]


def initialize(matrix: InteractionMatrix, config: LDAConfig, rng: np.random.Generator) -> LDAState:
    """Assign every token a uniformly drawn topic and build the counts."""
    if matrix.total_mass <= 0:
        raise ConfigurationError("The interaction matrix holds no tokens to sample.")
    topics = config.topics
    token_users, token_items = matrix.token_arrays()
    assignments = rng.integers(0, topics, size=token_users.shape[0], dtype=np.int64)
    counts = CountAggregates.from_assignments(
        token_users, token_items, assignments, matrix.num_users, matrix.num_items, topics
    )
    return LDAState(
        matrix=matrix,
        token_users=token_users,
        token_items=token_items,
        assignments=assignments,
        counts=counts,
        alpha=np.full(topics, config.init_alpha, dtype=np.float64),
        beta=np.full(matrix.num_items, config.init_beta, dtype=np.float64),
    )


def _select_topic(cumulative: np.ndarray, scaled_draw: float) -> int:
    # First topic whose cumulative weight exceeds the draw; rounding at the
    # tail can leave none, in which case the last topic is taken.
    topic = int(np.searchsorted(cumulative, scaled_draw, side="right"))
    return min(topic, cumulative.shape[0] - 1)


def e_step(state: LDAState, rng: np.random.Generator) -> None:
    """One collapsed Gibbs sweep over all tokens in traversal order."""
    counts = state.counts
    user_topic = counts.user_topic
    topic_item = counts.topic_item
    user_totals = counts.user_totals
    topic_totals = counts.topic_totals
    alpha, beta = state.alpha, state.beta
    sum_alpha = alpha.sum()
    sum_beta = beta.sum()

    assignments = state.assignments
    draws = rng.random(assignments.shape[0])
    users = state.token_users.tolist()
    items = state.token_items.tolist()

    for pos, (u, i) in enumerate(zip(users, items)):
        topic = assignments[pos]
        user_topic[u, topic] -= 1
        user_totals[u] -= 1
        topic_item[topic, i] -= 1
        topic_totals[topic] -= 1

        weights = (
            (user_topic[u] + alpha)
            / (user_totals[u] + sum_alpha)
            * (topic_item[:, i] + beta[i])
            / (topic_totals + sum_beta)
        )
        cumulative = np.cumsum(weights)
        topic = _select_topic(cumulative, draws[pos] * cumulative[-1])

        user_topic[u, topic] += 1
        user_totals[u] += 1
        topic_item[topic, i] += 1
        topic_totals[topic] += 1
        assignments[pos] = topic


def m_step(state: LDAState) -> None:
    """Minka fixed-point update of the alpha and beta vectors."""
    counts = state.counts

    alpha = state.alpha
    sum_alpha = alpha.sum()
    denominator = float(np.sum(digamma(counts.user_totals + sum_alpha) - digamma(sum_alpha)))
    if denominator != 0.0:
        numerator = np.sum(digamma(counts.user_topic + alpha) - digamma(alpha), axis=0)
        update = numerator != 0
        alpha[update] *= numerator[update] / denominator

    beta = state.beta
    sum_beta = beta.sum()
    denominator = float(np.sum(digamma(counts.topic_totals + sum_beta) - digamma(sum_beta)))
    if denominator != 0.0:
        numerator = np.sum(digamma(counts.topic_item + beta) - digamma(beta), axis=0)
        update = numerator != 0
        beta[update] *= numerator[update] / denominator


def point_estimates(state: LDAState) -> Tuple[np.ndarray, np.ndarray]:
    counts = state.counts
    theta = (counts.user_topic + state.alpha) / (counts.user_totals[:, None] + state.alpha.sum())
    phi = (counts.topic_item + state.beta) / (counts.topic_totals[:, None] + state.beta.sum())
    return theta, phi


def readout(state: LDAState) -> Dict[str, np.ndarray]:
    theta, phi = point_estimates(state)
    return {"theta": theta, "phi": phi}


def log_likelihood(state: LDAState) -> float:
    """Training log-likelihood of the current round's point estimates."""
    theta, phi = point_estimates(state)
    coo = state.matrix.csr.tocoo()
    probs = np.sum(theta[coo.row] * phi[:, coo.col].T, axis=1)
    return float(np.sum(coo.data * np.log(probs)))


def lda_phases(matrix: InteractionMatrix, config: LDAConfig) -> TrainingPhases:
    return TrainingPhases(
        initialize=lambda rng: initialize(matrix, config, rng),
        e_step=e_step,
        m_step=m_step,
        readout=readout,
        loss=log_likelihood,
    )


class LDARecommender:
    """Trainable LDA ranking model exposing ``predict(user, item)``."""

    def __init__(self, config: LDAConfig | None = None) -> None:
        self.config = config or LDAConfig()
        self.state: LDAState | None = None
        self.train_matrix: InteractionMatrix | None = None
        self.theta: np.ndarray | None = None
        self.phi: np.ndarray | None = None
        self.alpha: np.ndarray | None = None
        self.beta: np.ndarray | None = None
        self.num_stats = 0
        self.history: List[RoundStats] = []

    @property
    def is_finalized(self) -> bool:
        return self.theta is not None and self.phi is not None

    def fit(
        self,
        matrix: InteractionMatrix,
        num_users: int | None = None,
        num_items: int | None = None,
        on_round: Callable[[RoundStats], bool | None] | None = None,
    ) -> "LDARecommender":
        if num_users is not None and num_users != matrix.num_users:
            raise ConfigurationError(
                f"Interaction matrix has {matrix.num_users} users but {num_users} were declared."
            )
        if num_items is not None and num_items != matrix.num_items:
            raise ConfigurationError(
                f"Interaction matrix has {matrix.num_items} items but {num_items} were declared."
            )
        config = self.config
        if config.verbose:
            print(
                f"[lda] users={matrix.num_users} items={matrix.num_items} "
                f"tokens={matrix.total_mass} topics={config.topics} "
                f"rounds={config.rounds} burn_in={config.burn_in} sample_lag={config.sample_lag}"
            )
        self.theta = None
        self.phi = None
        result = run_em(lda_phases(matrix, config), config.em_config(), on_round=on_round)

        self.state = result.state
        self.train_matrix = matrix
        self.alpha = result.state.alpha.copy()
        self.beta = result.state.beta.copy()
        self.num_stats = result.num_stats
        self.history = result.history
        self.theta = result.estimates["theta"]
        self.phi = result.estimates["phi"]
        if config.verbose:
            print(
                f"[lda] finalized after {result.rounds_completed} rounds "
                f"({result.num_stats} accumulated samples)."
            )
        return self

    def _require_finalized(self) -> None:
        if not self.is_finalized:
            raise LifecycleError("LDARecommender has not been trained; call fit() or load() first.")

    def predict(self, user: int, item: int) -> float:
        self._require_finalized()
        return float(self.theta[user] @ self.phi[:, item])

    def score_users(self, users: Sequence[int] | None = None) -> np.ndarray:
        self._require_finalized()
        theta = self.theta if users is None else self.theta[np.asarray(users, dtype=np.int64)]
        return theta @ self.phi

    def recommend(self, user: int, top_n: int = 10, exclude_seen: bool = True) -> List[Tuple[int, float]]:
        self._require_finalized()
        scores = self.theta[user] @ self.phi
        if exclude_seen and self.train_matrix is not None:
            scores[self.train_matrix.row_items(user)] = -np.inf
        order = np.argsort(-scores, kind="stable")[:top_n]
        return [(int(item), float(scores[item])) for item in order if np.isfinite(scores[item])]

    def perplexity(self) -> float:
        """Training-set perplexity of the finalized posterior."""
        self._require_finalized()
        coo = self.train_matrix.csr.tocoo()
        probs = np.sum(self.theta[coo.row] * self.phi[:, coo.col].T, axis=1)
        return float(np.exp(-np.sum(coo.data * np.log(probs)) / coo.data.sum()))

    def save(
        self,
        out_dir: str | Path,
        user_ids: Sequence[str] | None = None,
        item_ids: Sequence[str] | None = None,
    ) -> None:
        self._require_finalized()
        out_path = Path(out_dir)
        data_io.save_dense_matrix(self.theta, out_path / "theta.txt")
        data_io.save_dense_matrix(self.phi, out_path / "phi.txt")
        data_io.save_dense_matrix(self.train_matrix.to_dense(), out_path / "train_matrix.txt", fmt="d")
        meta = {
            "model": "lda",
            "config": asdict(self.config),
            "alpha": self.alpha.tolist(),
            "beta": self.beta.tolist(),
            "num_stats": self.num_stats,
            "user_ids": list(user_ids) if user_ids is not None else None,
            "item_ids": list(item_ids) if item_ids is not None else None,
        }
        data_io.save_json(meta, out_path / "model.json")

    @classmethod
    def load(cls, model_dir: str | Path) -> "LDARecommender":
        model_path = Path(model_dir)
        meta = data_io.load_json(model_path / "model.json")
        model = cls(LDAConfig(**meta["config"]))
        model.theta = data_io.load_dense_matrix(model_path / "theta.txt")
        model.phi = data_io.load_dense_matrix(model_path / "phi.txt")
        train = data_io.load_dense_matrix(model_path / "train_matrix.txt").astype(np.int64)
        model.train_matrix = InteractionMatrix.from_dense(train)
        model.alpha = np.asarray(meta["alpha"], dtype=np.float64)
        model.beta = np.asarray(meta["beta"], dtype=np.float64)
        model.num_stats = int(meta["num_stats"])
        if (
            model.theta.shape[0] != train.shape[0]
            or model.theta.shape[1] != model.phi.shape[0]
            or model.phi.shape[1] != train.shape[1]
        ):
            raise data_io.DataFormatError(f"Inconsistent model dimensions in {model_path}.")
        return model


def train_lda(
    matrix: InteractionMatrix,
    config: LDAConfig,
    on_round: Callable[[RoundStats], bool | None] | None = None,
) -> LDARecommender:
    return LDARecommender(config).fit(matrix, on_round=on_round)


__all__ = [
    "CountAggregates",
    "LDAConfig",
    "LDARecommender",
    "LDAState",
    "e_step",
    "initialize",
    "lda_phases",
    "log_likelihood",
    "m_step",
    "point_estimates",
    "readout",
    "train_lda",
]
