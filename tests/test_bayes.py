#!/usr/bin/env python3
"""
Unit tests for Bayesian smoothing and per-patient state
"""

import threading
from datetime import datetime, timezone
import pytest
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery_risk.bayes import BayesianPrior, BayesianSmoother, PatientStateStore
from recovery_risk.schema import (BayesianSettings, CategoryStats, PopulationStats, RiskCategory,
                                  RiskTrendPoint)

ASSESSMENT_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_stats(mean: float = 40.0, std_dev: float = 10.0) -> PopulationStats:
    stats = CategoryStats(mean=mean, std_dev=std_dev)
    return PopulationStats(overall=stats, infection=stats, readmission=stats, fall=stats,
                           mental_health=stats, medication=stats)


class TestBayesianSmoother:

    def test_initial_prior_from_population(self):
        smoother = BayesianSmoother(make_stats(40, 10))
        prior = smoother.initial_prior(RiskCategory.FALL)
        assert prior.mean == 40
        assert prior.variance == pytest.approx(100)
        assert prior.observation_count == 1

    def test_zero_spread_uses_default_std_dev(self):
        smoother = BayesianSmoother(make_stats(40, 0), BayesianSettings(default_prior_std_dev=15))
        assert smoother.initial_prior(RiskCategory.OVERALL).variance == pytest.approx(225)

    def test_defaults_without_cohort(self):
        prior = BayesianSmoother().initial_prior(RiskCategory.MEDICATION)
        assert prior.mean == 30
        assert prior.variance == pytest.approx(225)

    def test_first_update(self):
        smoother = BayesianSmoother(make_stats(40, 10))
        prior = smoother.initial_prior(RiskCategory.OVERALL)
        reported = smoother.update(prior, 80)

        # equal prior and data variance: posterior mean halfway, variance halved
        assert prior.mean == pytest.approx(60)
        assert prior.variance == pytest.approx(50)
        assert prior.observation_count == 2
        # prior weight 1/3 on the first assessment
        assert reported == pytest.approx(60 / 3 + 80 * 2 / 3)

    def test_converges_toward_repeated_observation(self):
        smoother = BayesianSmoother(make_stats(20, 10))
        prior = smoother.initial_prior(RiskCategory.OVERALL)
        gaps = [abs(smoother.update(prior, 90) - 90) for _ in range(30)]
        assert all(later <= earlier for earlier, later in zip(gaps, gaps[1:]))
        assert gaps[-1] < 1.0

    def test_prior_weight_floor(self):
        smoother = BayesianSmoother(make_stats(50, 10), BayesianSettings(min_prior_weight=0.5))
        prior = BayesianPrior(mean=0.0, variance=1e-9, observation_count=100)
        # posterior stays at the prior mean; half of it survives in the report
        assert smoother.update(prior, 100) == pytest.approx(50, abs=1e-3)

    def test_output_clamped(self):
        smoother = BayesianSmoother(make_stats(40, 10))
        prior = smoother.initial_prior(RiskCategory.OVERALL)
        assert smoother.update(prior, 100) <= 100
        assert smoother.update(smoother.initial_prior(RiskCategory.OVERALL), 0) >= 0

    def test_smooth_initializes_all_categories(self):
        smoother = BayesianSmoother(make_stats(40, 10))
        store = PatientStateStore()
        state = store.get_or_create("p1")
        raw = {category: 40.0 for category in RiskCategory}
        smoothed = smoother.smooth(state, raw)
        assert set(smoothed) == set(RiskCategory)
        assert all(value == pytest.approx(40) for value in smoothed.values())
        assert all(prior.observation_count == 2 for prior in state.priors.values())


class TestPatientStateStore:

    def point(self, score: float = 10.0) -> RiskTrendPoint:
        return RiskTrendPoint(timestamp=ASSESSMENT_TIME, overall_risk=score, infection_risk=score,
                              readmission_risk=score, fall_risk=score, mental_health_risk=score,
                              medication_risk=score)

    def test_get_or_create_is_idempotent(self):
        store = PatientStateStore()
        assert store.get("p1") is None
        state = store.get_or_create("p1")
        assert store.get_or_create("p1") is state
        assert store.patient_ids() == ["p1"]

    def test_history_is_bounded(self):
        store = PatientStateStore(history_limit=3)
        state = store.get_or_create("p1")
        for i in range(5):
            state.history.append(self.point(i))
        assert [p.overall_risk for p in state.history] == [2, 3, 4]

    def test_reset_priors_keeps_history(self):
        store = PatientStateStore()
        state = store.get_or_create("p1")
        state.priors[RiskCategory.OVERALL] = BayesianPrior(mean=50, variance=10, observation_count=4)
        state.history.append(self.point())

        assert store.reset_priors("p1") is True
        assert state.priors == {}
        assert len(state.history) == 1
        assert store.reset_priors("unknown") is False

    def test_clear(self):
        store = PatientStateStore()
        store.get_or_create("p1")
        assert store.clear("p1") is True
        assert store.get("p1") is None
        assert store.clear("p1") is False

    def test_lock_per_patient(self):
        store = PatientStateStore()
        assert store.lock_for("p1") is store.lock_for("p1")
        assert store.lock_for("p1") is not store.lock_for("p2")

    def test_unknown_ids_leave_no_locks(self):
        store = PatientStateStore()
        for i in range(50):
            assert store.reset_priors(f"ghost-{i}") is False
            assert store.clear(f"ghost-{i}") is False
        assert store.lock_count() == 0

    def test_clear_drops_lock(self):
        store = PatientStateStore()
        store.get_or_create("p1")
        with store.lock_for("p1"):
            pass
        assert store.lock_count() == 1
        assert store.clear("p1") is True
        assert store.lock_count() == 0

    def test_concurrent_creation_yields_one_state(self):
        store = PatientStateStore()
        created = []

        def worker():
            created.append(store.get_or_create("shared"))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert all(state is created[0] for state in created)
