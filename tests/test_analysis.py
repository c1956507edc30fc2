#!/usr/bin/env python3
"""
Unit tests for trend regression and population comparison
"""

import pytest
import numpy as np
from datetime import datetime, timedelta, timezone
from scipy import stats as scipy_stats
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery_risk.analysis import (PopulationComparator, TrendAnalyzer, linear_regression,
                                    normal_cdf)
from recovery_risk.baseline import BaselinePopulation
from recovery_risk.schema import (PopulationSettings, RiskCategory, RiskTrendPoint, SubgroupFilter,
                                  TrendDirection)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def trend_point(days_ago: float, score: float) -> RiskTrendPoint:
    return RiskTrendPoint(timestamp=NOW - timedelta(days=days_ago), overall_risk=score,
                          infection_risk=score / 2, readmission_risk=score, fall_risk=score,
                          mental_health_risk=score, medication_risk=score)


class TestLinearRegression:

    def test_exact_line(self):
        fit = linear_regression([0, 1, 2], [10, 20, 30])
        assert fit.slope == pytest.approx(10)
        assert fit.intercept == pytest.approx(10)
        assert fit.r_squared == pytest.approx(1)

    def test_matches_scipy(self):
        xs = [0, 1.5, 3, 4, 7, 9.25]
        ys = [12, 15, 14, 22, 25, 31]
        fit = linear_regression(xs, ys)
        reference = scipy_stats.linregress(xs, ys)
        assert fit.slope == pytest.approx(reference.slope)
        assert fit.intercept == pytest.approx(reference.intercept)
        assert fit.r_squared == pytest.approx(reference.rvalue ** 2)

    def test_degenerate_inputs(self):
        empty = linear_regression([], [])
        assert (empty.slope, empty.intercept, empty.r_squared) == (0.0, 0.0, 0.0)

        single = linear_regression([3], [42])
        assert (single.slope, single.intercept, single.r_squared) == (0.0, 42.0, 0.0)

        same_day = linear_regression([1, 1, 1], [10, 20, 30])
        assert same_day.slope == 0.0
        assert same_day.intercept == pytest.approx(20)

    def test_flat_series_has_zero_r_squared(self):
        fit = linear_regression([0, 1, 2, 3], [40, 40, 40, 40])
        assert fit.slope == pytest.approx(0)
        assert fit.r_squared == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            linear_regression([0, 1], [1])


class TestNormalCdf:

    def test_matches_scipy(self):
        for z in np.linspace(-5, 5, 101):
            assert normal_cdf(float(z)) == pytest.approx(scipy_stats.norm.cdf(z), abs=1e-6)

    def test_symmetry(self):
        for z in (0.1, 0.5, 1.0, 1.96, 3.0):
            assert normal_cdf(z) + normal_cdf(-z) == pytest.approx(1.0, abs=1e-12)

    def test_center(self):
        assert normal_cdf(0.0) == pytest.approx(0.5, abs=1e-8)


class TestTrendAnalyzer:

    def setup_method(self):
        self.analyzer = TrendAnalyzer()

    def test_rapidly_worsening(self):
        history = [trend_point(2, 10), trend_point(1, 20), trend_point(0, 30)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.direction == TrendDirection.RAPIDLY_WORSENING
        assert result.slope == pytest.approx(10)
        assert result.intercept == pytest.approx(10)
        assert result.r_squared == pytest.approx(1)
        assert result.days_analyzed == 2
        assert result.predicted_score_in_7_days == 100
        assert result.significant_change is True

    def test_improving(self):
        history = [trend_point(2, 60), trend_point(1, 55), trend_point(0, 50)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.direction == TrendDirection.IMPROVING
        assert result.slope == pytest.approx(-5)
        assert result.predicted_score_in_7_days == pytest.approx(15)
        assert result.significant_change is True

    def test_stable(self):
        history = [trend_point(d, 40) for d in (3, 2, 1, 0)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.direction == TrendDirection.STABLE
        assert result.slope == 0
        assert result.r_squared == 0
        assert result.predicted_score_in_7_days == pytest.approx(40)
        assert result.significant_change is False

    def test_uses_requested_category(self):
        history = [trend_point(2, 10), trend_point(1, 20), trend_point(0, 30)]
        result = self.analyzer.analyze(history, RiskCategory.INFECTION, 30, NOW)
        assert result.category == RiskCategory.INFECTION
        assert result.slope == pytest.approx(5)
        assert result.direction == TrendDirection.RAPIDLY_WORSENING

    def test_window_excludes_old_points(self):
        history = [trend_point(40, 90), trend_point(35, 80), trend_point(2, 20)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.days_analyzed == 1
        assert result.slope == 0
        assert result.predicted_score_in_7_days == 20
        assert result.direction == TrendDirection.STABLE

    def test_window_past_earliest_date_uses_whole_history(self):
        history = [trend_point(40, 90), trend_point(35, 80), trend_point(2, 20)]
        expected = self.analyzer.analyze(history, RiskCategory.OVERALL, 365, NOW)
        for days_back in (1_000_000, 10 ** 10):
            result = self.analyzer.analyze(history, RiskCategory.OVERALL, days_back, NOW)
            assert result == expected
            assert result.days_analyzed == 38

    def test_no_history(self):
        result = self.analyzer.analyze([], RiskCategory.OVERALL, 30, NOW)
        assert result.days_analyzed == 0
        assert result.predicted_score_in_7_days == 30
        assert result.significant_change is False

    def test_unsorted_history(self):
        history = [trend_point(0, 30), trend_point(2, 10), trend_point(1, 20)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.slope == pytest.approx(10)

    @pytest.mark.parametrize("slope, direction", [
        (2.5, TrendDirection.RAPIDLY_WORSENING),
        (2.0, TrendDirection.WORSENING),
        (0.6, TrendDirection.WORSENING),
        (0.5, TrendDirection.STABLE),
        (-0.5, TrendDirection.STABLE),
        (-0.6, TrendDirection.IMPROVING),
    ])
    def test_classify(self, slope, direction):
        assert self.analyzer.classify(slope) == direction

    def test_weak_fit_is_not_significant(self):
        history = [trend_point(4, 10), trend_point(3, 60), trend_point(2, 5),
                   trend_point(1, 70), trend_point(0, 20)]
        result = self.analyzer.analyze(history, RiskCategory.OVERALL, 30, NOW)
        assert result.r_squared < 0.3
        assert result.significant_change is False


class TestPopulationComparator:

    @classmethod
    def setup_class(cls):
        cls.population = BaselinePopulation.generate()

    def setup_method(self):
        self.comparator = PopulationComparator(self.population)

    def test_score_at_mean_is_fiftieth_percentile(self):
        mean = self.population.stats().overall.mean
        result = self.comparator.compare(mean, RiskCategory.OVERALL)
        assert result.percentile == pytest.approx(50.0)
        assert result.z_score == 0
        assert result.comparison_group == "All post-operative patients (n=210)"
        assert result.fell_back_to_population is False

    def test_percentiles_symmetric_about_mean(self):
        stats = self.population.stats().fall
        for offset in (0.5, 1.0, 2.0):
            high = self.comparator.compare(stats.mean + offset * stats.std_dev, RiskCategory.FALL)
            low = self.comparator.compare(stats.mean - offset * stats.std_dev, RiskCategory.FALL)
            assert high.percentile + low.percentile == pytest.approx(100, abs=0.11)
            assert high.z_score == pytest.approx(offset)

    def test_higher_score_higher_percentile(self):
        percentiles = [self.comparator.compare(s, RiskCategory.OVERALL).percentile for s in (10, 30, 50, 70, 90)]
        assert percentiles == sorted(percentiles)

    def test_subgroup(self):
        subgroup = SubgroupFilter(age_group="75+")
        members = [p for p in self.population.profiles() if p.age_group.value == "75+"]
        result = self.comparator.compare_subgroup(50, RiskCategory.OVERALL, subgroup)
        assert result.comparison_group == f"Post-operative patients aged 75+ (n={len(members)})"
        assert result.fell_back_to_population is False

    def test_subgroup_description_with_both_filters(self):
        subgroup = SubgroupFilter(age_group="65-74", surgery_complexity="major")
        result = self.comparator.compare_subgroup(50, RiskCategory.OVERALL, subgroup)
        if not result.fell_back_to_population:
            assert result.comparison_group.startswith("Post-operative patients aged 65-74 with major surgery")

    def test_small_subgroup_falls_back(self):
        comparator = PopulationComparator(self.population, PopulationSettings(min_subgroup_size=1000))
        result = comparator.compare_subgroup(50, RiskCategory.OVERALL, SubgroupFilter(age_group="18-34"))
        assert result.fell_back_to_population is True
        assert result.comparison_group == "All post-operative patients (n=210)"
