"""
Bayesian smoothing of category scores with per-patient state
"""

import threading
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from .schema import BayesianSettings, PopulationStats, RiskCategory, RiskTrendPoint
from .numeric import clamp

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 365


@dataclass
class BayesianPrior:
    """Normal belief about one patient's score in one category"""
    mean: float
    variance: float
    observation_count: int = 1


@dataclass
class PatientState:
    priors: Dict[RiskCategory, BayesianPrior] = field(default_factory=dict)
    history: Deque[RiskTrendPoint] = field(default_factory=lambda: deque(maxlen=DEFAULT_HISTORY_LIMIT))


class PatientStateStore:
    """
    In-memory priors and trend history keyed by patient id.

    Callers serialise work on one patient with lock_for(patient_id); distinct
    patients never contend. Each engine owns its own store unless one is passed in.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.history_limit = history_limit
        self._states: Dict[str, PatientState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def lock_for(self, patient_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(patient_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[patient_id] = lock
            return lock

    def get(self, patient_id: str) -> Optional[PatientState]:
        with self._registry_lock:
            return self._states.get(patient_id)

    def get_or_create(self, patient_id: str) -> PatientState:
        with self._registry_lock:
            state = self._states.get(patient_id)
            if state is None:
                state = PatientState(history=deque(maxlen=self.history_limit))
                self._states[patient_id] = state
            return state

    def reset_priors(self, patient_id: str) -> bool:
        """Forget priors (e.g. a new surgical episode) but keep the trend history"""
        if self.get(patient_id) is None:
            return False
        with self.lock_for(patient_id):
            state = self.get(patient_id)
            if state is None:
                return False
            state.priors.clear()
            return True

    def clear(self, patient_id: str) -> bool:
        """Drop the patient's state and lock"""
        if self.get(patient_id) is None:
            return False
        with self.lock_for(patient_id):
            with self._registry_lock:
                self._locks.pop(patient_id, None)
                return self._states.pop(patient_id, None) is not None

    def lock_count(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def patient_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._states)


class BayesianSmoother:
    """Conjugate normal-normal update with a decaying pull toward the population prior"""

    def __init__(self, population_stats: Optional[PopulationStats] = None,
                 settings: Optional[BayesianSettings] = None):
        self.population_stats = population_stats
        self.settings = settings or BayesianSettings()

    def initial_prior(self, category: RiskCategory) -> BayesianPrior:
        """Population mean and variance; configured defaults when there is no cohort"""
        if self.population_stats is None:
            mean, std_dev = self.settings.default_prior_mean, self.settings.default_prior_std_dev
        else:
            stats = self.population_stats.for_category(category)
            mean = stats.mean
            std_dev = stats.std_dev if stats.std_dev > 0 else self.settings.default_prior_std_dev
        return BayesianPrior(mean=mean, variance=std_dev ** 2, observation_count=1)

    def initial_priors(self) -> Dict[RiskCategory, BayesianPrior]:
        return {category: self.initial_prior(category) for category in RiskCategory}

    def update(self, prior: BayesianPrior, observation: float) -> float:
        """
        Fold one raw observation into the prior (mutated in place) and return
        the reported score: a blend of posterior mean and the raw observation
        whose prior share decays as 1/(n+1) down to min_prior_weight.
        """
        observation_variance = self.settings.observation_variance

        # Posterior precision = prior precision + data precision
        prior_precision = 1.0 / prior.variance
        data_precision = 1.0 / observation_variance
        posterior_precision = prior_precision + data_precision

        posterior_mean = (prior_precision * prior.mean + data_precision * observation) / posterior_precision
        posterior_variance = 1.0 / posterior_precision

        prior.mean = posterior_mean
        prior.variance = posterior_variance
        prior.observation_count += 1

        prior_weight = max(self.settings.min_prior_weight, 1.0 / (prior.observation_count + 1))
        return clamp(prior_weight * posterior_mean + (1 - prior_weight) * observation)

    def smooth(self, state: PatientState, raw_scores: Dict[RiskCategory, float]) -> Dict[RiskCategory, float]:
        """Update every category's prior for this patient; caller holds the patient lock"""
        if not state.priors:
            state.priors.update(self.initial_priors())

        smoothed = {}
        for category in RiskCategory:
            prior = state.priors.get(category)
            if prior is None:
                prior = self.initial_prior(category)
                state.priors[category] = prior
            smoothed[category] = self.update(prior, raw_scores[category])
        return smoothed
