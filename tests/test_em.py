"""
Tests for topicrec.src.em
-------------------------
Covers:
- EMConfig validation and round schedule
- StatisticsAccumulator averaging and the empty-finalize error
- run_em phase ordering, seeding and callback cancellation
"""

import numpy as np
import pytest

from topicrec.src.em import (
    ConfigurationError,
    EMConfig,
    LifecycleError,
    StatisticsAccumulator,
    TrainingPhases,
    run_em,
)


# -------------------------------------------------------------------
# Toy model: a counter whose readout is the current round number
# -------------------------------------------------------------------

def _counter_phases(calls):
    def initialize(rng):
        calls.append("init")
        return {"round": 0, "draws": []}

    def e_step(state, rng):
        calls.append("e")
        state["round"] += 1
        state["draws"].append(rng.random())

    def m_step(state):
        calls.append("m")

    def readout(state):
        calls.append("readout")
        return {"value": np.array([float(state["round"])])}

    return TrainingPhases(initialize=initialize, e_step=e_step, m_step=m_step, readout=readout)


# -------------------------------------------------------------------
# Configuration
# -------------------------------------------------------------------

def test_burn_in_must_leave_rounds():
    with pytest.raises(ConfigurationError):
        EMConfig(rounds=5, burn_in=5)


def test_rounds_must_be_positive():
    with pytest.raises(ConfigurationError):
        EMConfig(rounds=0, burn_in=0)


def test_contributing_rounds_follow_burn_in_and_lag():
    config = EMConfig(rounds=12, burn_in=4, sample_lag=4)
    assert [r for r in range(1, 13) if config.contributes(r)] == [5, 9]


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(LifecycleError, RuntimeError)


# -------------------------------------------------------------------
# Accumulator
# -------------------------------------------------------------------

def test_accumulator_averages_estimates():
    accumulator = StatisticsAccumulator()
    accumulator.add({"theta": np.array([[1.0, 3.0]])})
    accumulator.add({"theta": np.array([[3.0, 5.0]])})
    result = accumulator.finalize()
    assert accumulator.count == 2
    assert result["theta"].tolist() == [[2.0, 4.0]]


def test_accumulator_does_not_alias_inputs():
    accumulator = StatisticsAccumulator()
    estimate = np.array([1.0])
    accumulator.add({"x": estimate})
    accumulator.add({"x": np.array([1.0])})
    assert estimate.tolist() == [1.0]


def test_finalize_without_rounds_fails():
    with pytest.raises(LifecycleError):
        StatisticsAccumulator().finalize()


# -------------------------------------------------------------------
# Loop
# -------------------------------------------------------------------

def test_phase_order_and_average():
    calls = []
    result = run_em(_counter_phases(calls), EMConfig(rounds=4, burn_in=2))
    assert calls == ["init", "e", "m", "e", "m", "e", "m", "readout", "e", "m", "readout"]
    assert result.num_stats == 2
    assert result.rounds_completed == 4
    assert result.estimates["value"].tolist() == [3.5]


def test_same_seed_same_stream():
    first = run_em(_counter_phases([]), EMConfig(rounds=3, burn_in=0, seed=5))
    second = run_em(_counter_phases([]), EMConfig(rounds=3, burn_in=0, seed=5))
    assert first.state["draws"] == second.state["draws"]


def test_callback_can_stop_after_burn_in():
    result = run_em(
        _counter_phases([]),
        EMConfig(rounds=10, burn_in=1),
        on_round=lambda stats: stats.round_idx == 3,
    )
    assert result.rounds_completed == 3
    assert result.num_stats == 2
    assert len(result.history) == 3


def test_callback_stop_before_burn_in_fails():
    with pytest.raises(LifecycleError):
        run_em(_counter_phases([]), EMConfig(rounds=10, burn_in=4), on_round=lambda stats: True)


def test_loss_only_evaluated_when_monitored():
    losses = []

    def loss(state):
        losses.append(state["round"])
        return -1.0

    phases = _counter_phases([])
    phases = TrainingPhases(
        initialize=phases.initialize,
        e_step=phases.e_step,
        m_step=phases.m_step,
        readout=phases.readout,
        loss=loss,
    )
    result = run_em(phases, EMConfig(rounds=2, burn_in=0))
    assert losses == []
    assert result.history[0].loss is None

    result = run_em(phases, EMConfig(rounds=2, burn_in=0), on_round=lambda stats: None)
    assert losses == [1, 2]
    assert result.history[-1].loss == -1.0


def test_verbose_loss_only_on_logged_rounds(capsys):
    losses = []

    def loss(state):
        losses.append(state["round"])
        return -2.0

    base = _counter_phases([])
    phases = TrainingPhases(
        initialize=base.initialize,
        e_step=base.e_step,
        m_step=base.m_step,
        readout=base.readout,
        loss=loss,
    )
    result = run_em(phases, EMConfig(rounds=7, burn_in=0, verbose=True, log_every=3))
    assert losses == [3, 6, 7]
    assert [stats.loss for stats in result.history] == [None, None, -2.0, None, None, -2.0, -2.0]
    assert "loss=-2.0000" in capsys.readouterr().out
