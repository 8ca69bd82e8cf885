"""Model-agnostic EM training loop for Gibbs-sampled graphical models.

A model plugs into the loop by handing over a :class:`TrainingPhases` record
with its four phase functions. The loop owns the random generator, the round
schedule (burn-in and sample lag) and the running sums of the per-round
estimates; the model owns its sampling state.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np


class ConfigurationError(ValueError):
    """Raised when a training configuration cannot produce a valid run."""


class LifecycleError(RuntimeError):
    """Raised when a model is used outside the state it was built for."""


@dataclass
class EMConfig:
    rounds: int = 1000
    burn_in: int = 100
    sample_lag: int = 1
    seed: int = 42
    verbose: bool = False
    log_every: int = 10

    def __post_init__(self) -> None:
        if self.rounds <= 0:
            raise ConfigurationError(f"rounds must be positive, got {self.rounds}.")
        if self.burn_in < 0:
            raise ConfigurationError(f"burn_in must be non-negative, got {self.burn_in}.")
        if self.burn_in >= self.rounds:
            raise ConfigurationError(
                f"burn_in ({self.burn_in}) must be smaller than rounds ({self.rounds});"
                " no round would contribute to the posterior estimates."
            )
        if self.sample_lag <= 0:
            raise ConfigurationError(f"sample_lag must be positive, got {self.sample_lag}.")

    def contributes(self, round_idx: int) -> bool:
        """Whether 1-based round ``round_idx`` is read out into the statistics."""
        if round_idx <= self.burn_in:
            return False
        return (round_idx - self.burn_in - 1) % self.sample_lag == 0


@dataclass(frozen=True)
class TrainingPhases:
    initialize: Callable[[np.random.Generator], Any]
    e_step: Callable[[Any, np.random.Generator], None]
    m_step: Callable[[Any], None]
    readout: Callable[[Any], Dict[str, np.ndarray]]
    loss: Optional[Callable[[Any], float]] = None


@dataclass
class RoundStats:
    round_idx: int
    contributed: bool
    num_stats: int
    seconds: float
    loss: float | None = None


class StatisticsAccumulator:
    """Running sums of per-round estimates keyed by name."""

    def __init__(self) -> None:
        self.sums: Dict[str, np.ndarray] = {}
        self.count = 0

    def reset(self) -> None:
        self.sums = {}
        self.count = 0

    def add(self, estimates: Dict[str, np.ndarray]) -> None:
        for name, values in estimates.items():
            if name in self.sums:
                self.sums[name] += values
            else:
                self.sums[name] = np.array(values, dtype=np.float64, copy=True)
        self.count += 1

    def finalize(self) -> Dict[str, np.ndarray]:
        if self.count == 0:
            raise LifecycleError(
                "Cannot estimate posterior parameters: no round was accumulated"
                " (training stopped before burn-in completed)."
            )
        return {name: values / self.count for name, values in self.sums.items()}


@dataclass
class EMResult:
    state: Any
    estimates: Dict[str, np.ndarray]
    rounds_completed: int
    num_stats: int
    history: List[RoundStats] = field(default_factory=list)


def run_em(
    phases: TrainingPhases,
    config: EMConfig,
    on_round: Callable[[RoundStats], bool | None] | None = None,
) -> EMResult:
    """Run initialise → {E-step, M-step, readout} rounds → finalise.

    ``on_round`` receives the statistics of every completed round; returning
    ``True`` stops training after that round.
    """
    rng = np.random.default_rng(config.seed)
    state = phases.initialize(rng)
    accumulator = StatisticsAccumulator()
    history: List[RoundStats] = []

    rounds_completed = 0
    for round_idx in range(1, config.rounds + 1):
        start = time.perf_counter()
        phases.e_step(state, rng)
        phases.m_step(state)
        contributed = config.contributes(round_idx)
        if contributed:
            accumulator.add(phases.readout(state))
        log_round = config.verbose and (
            round_idx % max(config.log_every, 1) == 0 or round_idx == config.rounds
        )
        # Loss is evaluated only when a callback or a log line consumes it.
        monitored = on_round is not None or log_round
        loss = phases.loss(state) if phases.loss is not None and monitored else None
        stats = RoundStats(
            round_idx=round_idx,
            contributed=contributed,
            num_stats=accumulator.count,
            seconds=time.perf_counter() - start,
            loss=loss,
        )
        history.append(stats)
        rounds_completed = round_idx

        if log_round:
            loss_text = f" loss={loss:.4f}" if loss is not None else ""
            print(
                f"[em] round={round_idx}/{config.rounds} stats={accumulator.count}"
                f"{loss_text} time={stats.seconds:.3f}s"
            )
        if on_round is not None and on_round(stats):
            if config.verbose:
                print(f"[em] stopped by callback after round {round_idx}.")
            break

    estimates = accumulator.finalize()
    return EMResult(
        state=state,
        estimates=estimates,
        rounds_completed=rounds_completed,
        num_stats=accumulator.count,
        history=history,
    )


__all__ = [
    "ConfigurationError",
    "EMConfig",
    "EMResult",
    "LifecycleError",
    "RoundStats",
    "StatisticsAccumulator",
    "TrainingPhases",
    "run_em",
]
