"""
Trend regression over a patient's score history and percentile comparison
against the baseline population.
"""

import math
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import numpy as np

from .schema import (PopulationComparison, RiskCategory, RiskTrendPoint, SubgroupFilter,
                     TrendAnalysis, TrendDirection, TrendSettings, PopulationSettings)
from .baseline import BaselinePopulation
from .numeric import clamp, round_half_up

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

# Abramowitz & Stegun 7.1.26
_AS_A1 = 0.254829592
_AS_A2 = -0.284496736
_AS_A3 = 1.421413741
_AS_A4 = -1.453152027
_AS_A5 = 1.061405429
_AS_P = 0.3275911


@dataclass
class RegressionResult:
    slope: float
    intercept: float
    r_squared: float


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> RegressionResult:
    """Closed-form ordinary least squares fit of ys on xs"""
    if len(xs) != len(ys):
        raise ValueError("xs and ys must be the same length")
    n = len(xs)
    if n == 0:
        return RegressionResult(0.0, 0.0, 0.0)
    if n < 2:
        return RegressionResult(0.0, float(ys[0]), 0.0)

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_x2 = (x * x).sum()

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        # all points on the same day
        return RegressionResult(0.0, float(y.mean()), 0.0)

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    predicted = slope * x + intercept
    ss_res = float(((y - predicted) ** 2).sum())
    ss_tot = float(((y - y.mean()) ** 2).sum())
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return RegressionResult(float(slope), float(intercept), float(r_squared))


def normal_cdf(z: float) -> float:
    """Standard normal CDF, Abramowitz-Stegun rational approximation (|error| < 1.5e-7)"""
    sign = -1.0 if z < 0 else 1.0
    x = abs(z) / math.sqrt(2)
    t = 1.0 / (1.0 + _AS_P * x)
    y = 1.0 - (((((_AS_A5 * t + _AS_A4) * t) + _AS_A3) * t + _AS_A2) * t + _AS_A1) * t * math.exp(-x * x)
    return 0.5 * (1.0 + sign * y)


class TrendAnalyzer:
    """Direction and velocity of a category score over a lookback window"""

    def __init__(self, settings: Optional[TrendSettings] = None):
        self.settings = settings or TrendSettings()

    def classify(self, slope: float) -> TrendDirection:
        s = self.settings
        if slope > s.rapid_worsening_slope:
            return TrendDirection.RAPIDLY_WORSENING
        elif slope > s.worsening_slope:
            return TrendDirection.WORSENING
        elif slope < s.improving_slope:
            return TrendDirection.IMPROVING
        return TrendDirection.STABLE

    def analyze(self, history: Iterable[RiskTrendPoint], category: RiskCategory,
                days_back: int, now: datetime) -> TrendAnalysis:
        s = self.settings
        try:
            cutoff = now - timedelta(days=days_back)
        except OverflowError:
            # window reaches past datetime.min: whole history
            cutoff = None
        points = sorted((p for p in history if cutoff is None or p.timestamp >= cutoff),
                        key=lambda p: p.timestamp)

        if len(points) < 2:
            predicted = points[-1].score_for(category) if points else s.default_prediction
            return TrendAnalysis(
                category=category,
                direction=TrendDirection.STABLE,
                slope=0.0,
                intercept=round_half_up(predicted, 2),
                r_squared=0.0,
                days_analyzed=len(points),
                predicted_score_in_7_days=round_half_up(predicted, 1),
                significant_change=False,
            )

        start = points[0].timestamp
        xs = [(p.timestamp - start).total_seconds() / SECONDS_PER_DAY for p in points]
        ys = [p.score_for(category) for p in points]
        fit = linear_regression(xs, ys)

        last_x = xs[-1]
        predicted = clamp(fit.slope * (last_x + s.prediction_horizon_days) + fit.intercept)
        significant = abs(fit.slope) > s.significance_slope and fit.r_squared > s.significance_r_squared

        return TrendAnalysis(
            category=category,
            direction=self.classify(fit.slope),
            slope=round_half_up(fit.slope, 2),
            intercept=round_half_up(fit.intercept, 2),
            r_squared=round_half_up(fit.r_squared, 3),
            days_analyzed=int(round_half_up(last_x, 0)),
            predicted_score_in_7_days=round_half_up(predicted, 1),
            significant_change=significant,
        )


class PopulationComparator:
    """Percentile of a score within the baseline cohort or one of its subgroups"""

    def __init__(self, population: BaselinePopulation, settings: Optional[PopulationSettings] = None):
        self.population = population
        self.settings = settings or PopulationSettings()

    @staticmethod
    def _comparison(score: float, category: RiskCategory, mean: float, std_dev: float,
                    group: str, fell_back: bool = False) -> PopulationComparison:
        z_score = (score - mean) / std_dev if std_dev > 0 else 0.0
        percentile = normal_cdf(z_score) * 100
        return PopulationComparison(
            category=category,
            patient_score=score,
            population_mean=round_half_up(mean, 1),
            population_std_dev=round_half_up(std_dev, 1),
            percentile=round_half_up(percentile, 1),
            z_score=round_half_up(z_score, 2),
            comparison_group=group,
            fell_back_to_population=fell_back,
        )

    def compare(self, score: float, category: RiskCategory, fell_back: bool = False) -> PopulationComparison:
        stats = self.population.stats().for_category(category)
        return self._comparison(score, category, stats.mean, stats.std_dev,
                                f"All post-operative patients (n={len(self.population)})", fell_back)

    def compare_subgroup(self, score: float, category: RiskCategory,
                         subgroup: SubgroupFilter) -> PopulationComparison:
        description = "Post-operative patients"
        if subgroup.age_group is not None:
            description += f" aged {subgroup.age_group.value}"
        if subgroup.surgery_complexity is not None:
            description += f" with {subgroup.surgery_complexity.value} surgery"

        members = [p for p in self.population.profiles()
                   if (subgroup.age_group is None or p.age_group == subgroup.age_group)
                   and (subgroup.surgery_complexity is None or p.surgery_complexity == subgroup.surgery_complexity)]

        if len(members) < self.settings.min_subgroup_size:
            logger.warning(f"Subgroup '{description}' has {len(members)} members, "
                           f"comparing against full population")
            return self.compare(score, category, fell_back=True)

        stats = BaselinePopulation.category_stats(BaselinePopulation.scores(category, members))
        return self._comparison(score, category, stats.mean, stats.std_dev,
                                f"{description} (n={len(members)})")
