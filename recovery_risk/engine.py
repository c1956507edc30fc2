"""
Recovery risk scoring engine - integrates all risk components
"""

import uuid
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .schema import (AlertMetric, AlertThreshold, BaselinePatientProfile, ComorbidityType,
                     Domain, DomainScores, PatientRiskInput, PopulationComparison,
                     PopulationStats, ProfileFilter, RiskAssessment, RiskCategory, RiskConfig,
                     RiskTier, RiskTrendPoint, SubgroupFilter, TrendAnalysis, ensure_utc)
from .domains import (DomainResult, score_behavioral, score_clinical, score_compliance,
                      score_demographics, score_surgical)
from .indices import (compute_charlson_index, compute_lace_index, compute_raw_category_scores,
                      determine_risk_tier)
from .confidence import ConfidenceScorer
from .bayes import BayesianSmoother, PatientStateStore
from .analysis import PopulationComparator, TrendAnalyzer
from .alerts import AlertThresholdRegistry, MetricSnapshot, generate_alerts
from .baseline import BaselinePopulation
from .validation import parse_risk_input, validate_risk_input

logger = logging.getLogger(__name__)

CategoryLike = Union[RiskCategory, str]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_category(category: CategoryLike) -> Optional[RiskCategory]:
    try:
        return RiskCategory(category)
    except ValueError:
        logger.warning(f"Unknown risk category: {category}")
        return None


class RiskScoringEngine:
    """
    Post-operative recovery risk engine.

    Each assessment runs the domain scorers, combines them per category,
    smooths the result against the patient's prior, records a trend point
    and evaluates alert thresholds. Per-patient state lives in the injected
    PatientStateStore; the baseline population is built once and shared read-only.
    """

    def __init__(self, config: Optional[RiskConfig] = None,
                 thresholds: Optional[Iterable[AlertThreshold]] = None,
                 store: Optional[PatientStateStore] = None,
                 population: Optional[BaselinePopulation] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or RiskConfig()
        self.clock = clock or _utc_now
        self.store = store or PatientStateStore(history_limit=self.config.trend.history_limit)

        if thresholds is None:
            thresholds = self.config.alert_thresholds
        self.thresholds = AlertThresholdRegistry(thresholds)

        self.population = population or BaselinePopulation.generate(
            self.config.population.cohort_size, self.config.population.seed)

        self.confidence_scorer = ConfidenceScorer(self.config)
        self.smoother = BayesianSmoother(self.population.stats(), self.config.bayesian)
        self.trend_analyzer = TrendAnalyzer(self.config.trend)
        self.comparator = PopulationComparator(self.population, self.config.population)

        logger.info(f"Risk scoring engine ready: {len(self.population)} baseline profiles, "
                    f"{len(self.thresholds.list())} alert thresholds")

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    # Core assessment

    def _score_domains(self, risk_input: PatientRiskInput, now: datetime) -> Dict[Domain, Optional[DomainResult]]:
        behavioral = risk_input.behavioral
        return {
            Domain.DEMOGRAPHICS: score_demographics(risk_input.demographics),
            Domain.SURGICAL: score_surgical(risk_input.surgical, now),
            Domain.COMPLIANCE: score_compliance(risk_input.compliance),
            Domain.CLINICAL: score_clinical(risk_input.clinical),
            Domain.BEHAVIORAL: score_behavioral(behavioral) if behavioral is not None else None,
        }

    def assess_risk(self, risk_input: Union[PatientRiskInput, Dict[str, Any]]) -> RiskAssessment:
        """
        Score a patient and update their smoothing state and trend history.

        Raises:
            ValidationError: input fails parsing or (in strict mode) range checks
        """
        risk_input = parse_risk_input(risk_input)
        if self.config.validation.strict:
            validate_risk_input(risk_input)

        patient_id = risk_input.patient_id
        now = self._now()

        results = self._score_domains(risk_input, now)
        domain_scores = DomainScores(**{d.value: r.score for d, r in results.items() if r is not None})

        age = risk_input.demographics.age
        los = risk_input.length_of_stay_days
        ed_visits = risk_input.ed_visits_last_6_months
        if not self.config.validation.strict:
            # permissive mode clamps instead of rejecting
            age = max(0.0, age)
            los = max(0.0, los) if los is not None else None
            ed_visits = max(0, ed_visits) if ed_visits is not None else None

        charlson = compute_charlson_index(risk_input.demographics.comorbidities, age)
        lace = compute_lace_index(los, risk_input.surgical.is_emergency, charlson, ed_visits)
        raw_scores = compute_raw_category_scores(domain_scores, lace, self.config)

        methodology = {RiskCategory.READMISSION: f"LACE Index ({lace}/19) blended with multi-factor model"}

        with self.store.lock_for(patient_id):
            state = self.store.get_or_create(patient_id)
            smoothed = self.smoother.smooth(state, raw_scores)
            category_scores = {
                category: self.confidence_scorer.build_category_score(
                    category, smoothed[category], results, methodology.get(category))
                for category in RiskCategory
            }
            state.history.append(RiskTrendPoint(
                timestamp=now,
                overall_risk=category_scores[RiskCategory.OVERALL].score,
                infection_risk=category_scores[RiskCategory.INFECTION].score,
                readmission_risk=category_scores[RiskCategory.READMISSION].score,
                fall_risk=category_scores[RiskCategory.FALL].score,
                mental_health_risk=category_scores[RiskCategory.MENTAL_HEALTH].score,
                medication_risk=category_scores[RiskCategory.MEDICATION].score,
            ))

        snapshot = MetricSnapshot.from_scores(
            {c: s.score for c, s in category_scores.items()},
            risk_input.clinical, risk_input.compliance)
        alerts = generate_alerts(patient_id, snapshot, self.thresholds.list(), now)

        assessment = RiskAssessment(
            patient_id=patient_id,
            assessment_id=str(uuid.uuid4()),
            timestamp=now,
            overall_risk=category_scores[RiskCategory.OVERALL],
            infection_risk=category_scores[RiskCategory.INFECTION],
            readmission_risk=category_scores[RiskCategory.READMISSION],
            fall_risk=category_scores[RiskCategory.FALL],
            mental_health_risk=category_scores[RiskCategory.MENTAL_HEALTH],
            medication_non_adherence_risk=category_scores[RiskCategory.MEDICATION],
            lace_index_score=lace,
            charlson_comorbidity_index=charlson,
            alerts=tuple(alerts),
        )

        logger.debug(f"Assessed {patient_id}: overall {assessment.overall_risk.score} "
                     f"({assessment.overall_risk.tier.value}), {len(alerts)} alerts")
        return assessment

    # Trends

    def analyze_trend(self, patient_id: str, category: CategoryLike = RiskCategory.OVERALL,
                      days_back: Optional[int] = None) -> Optional[TrendAnalysis]:
        """None when the category name is not recognised"""
        resolved = _coerce_category(category)
        if resolved is None:
            return None
        days = self.config.trend.default_days_back if days_back is None else days_back
        return self.trend_analyzer.analyze(self.get_trend_history(patient_id), resolved, days, self._now())

    def get_trend_history(self, patient_id: str) -> List[RiskTrendPoint]:
        if self.store.get(patient_id) is None:
            return []
        with self.store.lock_for(patient_id):
            state = self.store.get(patient_id)
            return list(state.history) if state is not None else []

    def add_trend_point(self, patient_id: str, point: Union[RiskTrendPoint, Dict[str, Any]]) -> None:
        """Back-fill a historical point; history stays time-ordered and bounded"""
        if not isinstance(point, RiskTrendPoint):
            point = RiskTrendPoint.model_validate(point)
        with self.store.lock_for(patient_id):
            state = self.store.get_or_create(patient_id)
            ordered = sorted([*state.history, point], key=lambda p: p.timestamp)
            state.history = deque(ordered, maxlen=self.store.history_limit)

    # Population comparison

    def compare_to_population(self, score: float, category: CategoryLike) -> Optional[PopulationComparison]:
        resolved = _coerce_category(category)
        if resolved is None:
            return None
        return self.comparator.compare(score, resolved)

    def compare_to_subgroup(self, score: float, category: CategoryLike,
                            subgroup: Union[SubgroupFilter, Dict[str, Any]]) -> Optional[PopulationComparison]:
        resolved = _coerce_category(category)
        if resolved is None:
            return None
        if not isinstance(subgroup, SubgroupFilter):
            subgroup = SubgroupFilter.model_validate(subgroup)
        return self.comparator.compare_subgroup(score, resolved, subgroup)

    # Alert thresholds

    def get_alert_thresholds(self) -> List[AlertThreshold]:
        return self.thresholds.list()

    def update_alert_threshold(self, category: str, metric: Union[AlertMetric, str], **levels) -> bool:
        return self.thresholds.update(category, metric, **levels)

    def add_alert_threshold(self, threshold: Union[AlertThreshold, Dict[str, Any]]) -> AlertThreshold:
        if not isinstance(threshold, AlertThreshold):
            threshold = AlertThreshold.model_validate(threshold)
        return self.thresholds.add(threshold)

    def remove_alert_threshold(self, category: str, metric: Union[AlertMetric, str]) -> bool:
        return self.thresholds.remove(category, metric)

    # Baseline data

    def get_baseline_profiles(self) -> List[BaselinePatientProfile]:
        return self.population.profiles()

    def get_filtered_profiles(self, profile_filter: Union[ProfileFilter, Dict[str, Any], None] = None) -> List[BaselinePatientProfile]:
        if profile_filter is not None and not isinstance(profile_filter, ProfileFilter):
            profile_filter = ProfileFilter.model_validate(profile_filter)
        return self.population.filter(profile_filter)

    def get_population_stats(self) -> PopulationStats:
        return self.population.stats()

    # Utilities

    def compute_charlson_index(self, comorbidities: Iterable[Union[ComorbidityType, str]], age: float) -> int:
        return compute_charlson_index(comorbidities, age)

    def compute_lace_index(self, los: Optional[float], is_emergency: bool, charlson: int,
                           ed_visits: Optional[int]) -> int:
        return compute_lace_index(los, is_emergency, charlson, ed_visits)

    def get_risk_tier(self, score: float) -> RiskTier:
        return determine_risk_tier(score)

    # Patient state

    def reset_priors(self, patient_id: str) -> bool:
        reset = self.store.reset_priors(patient_id)
        if reset:
            logger.info(f"Reset Bayesian priors for {patient_id}")
        return reset

    def clear_patient_data(self, patient_id: str) -> bool:
        cleared = self.store.clear(patient_id)
        if cleared:
            logger.info(f"Cleared all risk data for {patient_id}")
        return cleared

    def get_assessment_count(self, patient_id: str) -> int:
        """Assessments folded into the current priors"""
        if self.store.get(patient_id) is None:
            return 0
        with self.store.lock_for(patient_id):
            state = self.store.get(patient_id)
            if state is None:
                return 0
            prior = state.priors.get(RiskCategory.OVERALL)
            return prior.observation_count - 1 if prior is not None else 0


def create_risk_scoring_engine(custom_thresholds: Optional[Iterable[AlertThreshold]] = None,
                               **kwargs) -> RiskScoringEngine:
    """Factory for an engine with its own state store"""
    return RiskScoringEngine(thresholds=custom_thresholds, **kwargs)
