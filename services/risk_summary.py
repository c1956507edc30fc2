#!/usr/bin/env python3
"""
Risk Summary Service - care-team view of a patient's recovery risk assessment
Implements priority scoring, filtering, and organization for the clinician dashboard
"""

import yaml
import logging
import numpy as np
from typing import Dict, List, Optional, Tuple, Any
from dataclasses import dataclass, field, asdict
from pathlib import Path
from datetime import datetime, timezone

from recovery_risk.schema import (AlertSeverity, PopulationComparison, RiskAlert, RiskAssessment,
                                  RiskCategory, TrendAnalysis)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "risk_summary.yaml"

CATEGORY_LABELS = {
    RiskCategory.OVERALL: "Overall recovery",
    RiskCategory.INFECTION: "Surgical site infection",
    RiskCategory.READMISSION: "30-day readmission",
    RiskCategory.FALL: "Falls",
    RiskCategory.MENTAL_HEALTH: "Mental health",
    RiskCategory.MEDICATION: "Medication non-adherence",
}

@dataclass
class CategoryPriority:
    """One risk category with display metadata"""
    category: str
    label: str
    score: float
    tier: str
    confidence: float
    percentile: Optional[float] = None
    trend_slope: Optional[float] = None
    trend_direction: Optional[str] = None
    alert_count: int = 0
    max_alert_severity: Optional[str] = None

    # Computed fields
    priority: float = 0.0
    rank_score: float = 0.0
    show_section: str = "hidden"  # "top", "watch", "hidden"
    why_shown: List[str] = field(default_factory=list)

@dataclass
class RiskSummaryConfig:
    """Configuration for risk summary logic"""
    # Thresholds
    min_show_score: float = 25.0
    hide_floor_score: float = 10.0
    top_overall: int = 3

    # Priority weights
    w_score: float = 0.50
    w_percentile: float = 0.20
    w_trend: float = 0.20
    w_alerts: float = 0.10

    last_updated: str = ""

class RiskSummaryService:
    """Service for ranking risk categories and organizing the care-team summary"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or str(DEFAULT_CONFIG_PATH)
        self.config = self._load_config()

    def _load_config(self) -> RiskSummaryConfig:
        """Load configuration from YAML file"""
        config_file = Path(self.config_path)
        if not config_file.exists():
            logger.warning(f"Config file {self.config_path} not found, using defaults")
            return RiskSummaryConfig()

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            thresholds = config_data.get('display_thresholds', {})
            weights = config_data.get('priority_weights', {})
            return RiskSummaryConfig(
                **thresholds,
                **weights,
                last_updated=config_data.get('runtime_config', {}).get('last_updated', '')
            )
        except (OSError, yaml.YAMLError, TypeError) as e:
            logger.error(f"Error loading config: {e}")
            return RiskSummaryConfig()

    def compute_category_priorities(self, assessment: RiskAssessment,
                                    comparisons: Optional[Dict[RiskCategory, PopulationComparison]] = None,
                                    trends: Optional[Dict[RiskCategory, TrendAnalysis]] = None) -> List[CategoryPriority]:
        """
        Compute priority scores for every risk category of an assessment

        Args:
            assessment: Assessment to summarize
            comparisons: Optional population comparison per category
            trends: Optional trend analysis per category

        Returns:
            List of CategoryPriority objects, highest priority first
        """
        comparisons = comparisons or {}
        trends = trends or {}
        alerts_by_category = self._group_alerts_by_category(assessment.alerts)

        priorities = []
        for category in RiskCategory:
            category_score = assessment.category_score(category)
            comparison = comparisons.get(category)
            trend = trends.get(category)
            alerts = alerts_by_category.get(category.value, [])

            priorities.append(CategoryPriority(
                category=category.value,
                label=CATEGORY_LABELS[category],
                score=category_score.score,
                tier=category_score.tier.value,
                confidence=category_score.confidence,
                percentile=comparison.percentile if comparison else None,
                trend_slope=trend.slope if trend else None,
                trend_direction=trend.direction.value if trend else None,
                alert_count=len(alerts),
                max_alert_severity=max(alerts, key=lambda a: a.severity.rank).severity.value if alerts else None,
            ))

        rank_scores = self._rank_normalize([p.score for p in priorities])
        for i, priority in enumerate(priorities):
            priority.rank_score = rank_scores[i]
            priority.priority = self._compute_priority(priority, rank_scores[i])

        priorities.sort(key=lambda p: (p.priority, p.score, p.confidence), reverse=True)
        return priorities

    def _group_alerts_by_category(self, alerts) -> Dict[str, List[RiskAlert]]:
        grouped: Dict[str, List[RiskAlert]] = {}
        for alert in alerts:
            grouped.setdefault(alert.category, []).append(alert)
        return grouped

    def _rank_normalize(self, values: List[float]) -> List[float]:
        """Convert values to rank-normalized scores (0-1)"""
        if not values or len(values) == 1:
            return [1.0] * len(values)

        # Convert to ranks (1 = highest)
        sorted_indices = np.argsort(values, kind="stable")[::-1]
        ranks = np.empty_like(sorted_indices)
        ranks[sorted_indices] = np.arange(len(values)) + 1

        # Normalize to 0-1 (1 = highest value)
        normalized = 1.0 - (ranks - 1) / (len(values) - 1)
        return normalized.tolist()

    def _compute_priority(self, priority: CategoryPriority, rank_score: float) -> float:
        percentile_term = (priority.percentile if priority.percentile is not None else priority.score) / 100
        trend_term = min(max((priority.trend_slope or 0.0) / 2.0, 0.0), 1.0)

        return (
            self.config.w_score * rank_score +
            self.config.w_percentile * percentile_term +
            self.config.w_trend * trend_term +
            self.config.w_alerts * (1 if priority.alert_count else 0)
        )

    def organize_for_display(self, priorities: List[CategoryPriority],
                             alerts: Optional[List[RiskAlert]] = None) -> Dict[str, Any]:
        """
        Organize category priorities and alerts for the dashboard

        Returns:
            Dictionary with organized categories, alerts and metadata
        """
        alerts = list(alerts or [])

        for index, priority in enumerate(priorities):
            priority.show_section, priority.why_shown = self._determine_show_section(priority, index)

        top_strip = [p for p in priorities if p.show_section == "top"]
        watch_list = [p for p in priorities if p.show_section == "watch"]
        hidden = [p for p in priorities if p.show_section == "hidden"]

        return {
            "top_strip": [asdict(p) for p in top_strip],
            "watch_list": [asdict(p) for p in watch_list],
            "hidden_count": len(hidden),
            "total_categories": len(priorities),
            "alerts_by_severity": self.alerts_by_severity(alerts),
            "unacknowledged_alerts": len([a for a in alerts if not a.acknowledged]),
            "priority_stats": self._compute_priority_stats(priorities),
            "config_snapshot": {
                "thresholds": {
                    "min_show_score": self.config.min_show_score,
                    "hide_floor_score": self.config.hide_floor_score,
                },
                "weights": {
                    "w_score": self.config.w_score,
                    "w_percentile": self.config.w_percentile,
                    "w_trend": self.config.w_trend,
                    "w_alerts": self.config.w_alerts,
                }
            }
        }

    def _determine_show_section(self, priority: CategoryPriority, index: int) -> Tuple[str, List[str]]:
        """Determine which section to show a category in and why"""
        why_shown = []

        if priority.max_alert_severity == AlertSeverity.CRITICAL.value:
            why_shown.append("Critical alert")
            return "top", why_shown

        if index < self.config.top_overall and priority.score >= self.config.min_show_score:
            why_shown.append(f"Top priority: {priority.score:.1f}/100 ({priority.tier})")
            if priority.trend_direction in ("worsening", "rapidly_worsening"):
                why_shown.append(f"Trend {priority.trend_direction}")
            return "top", why_shown

        if priority.score >= self.config.hide_floor_score or priority.alert_count:
            if priority.alert_count:
                why_shown.append(f"{priority.alert_count} alert(s)")
            if priority.percentile is not None and priority.percentile >= 75:
                why_shown.append(f"Above {priority.percentile:.0f}th percentile")
            return "watch", why_shown or ["Above display floor"]

        return "hidden", ["Below display thresholds"]

    def alerts_by_severity(self, alerts: List[RiskAlert]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {s.value: [] for s in sorted(AlertSeverity, key=lambda s: s.rank, reverse=True)}
        for alert in alerts:
            grouped[alert.severity.value].append(alert.model_dump(mode="json", by_alias=True))
        return grouped

    def _compute_priority_stats(self, priorities: List[CategoryPriority]) -> Dict[str, Any]:
        """Compute statistics for telemetry"""
        if not priorities:
            return {}

        values = [p.priority for p in priorities]
        scores = [p.score for p in priorities]

        return {
            "priority": {
                "mean": float(np.mean(values)),
                "median": float(np.median(values)),
                "std": float(np.std(values)),
                "min": float(np.min(values)),
                "max": float(np.max(values))
            },
            "score": {
                "mean": float(np.mean(scores)),
                "median": float(np.median(scores)),
                "p95": float(np.percentile(scores, 95))
            },
            "counts": {
                "total": len(priorities),
                "top": len([p for p in priorities if p.show_section == "top"]),
                "watch": len([p for p in priorities if p.show_section == "watch"]),
                "hidden": len([p for p in priorities if p.show_section == "hidden"]),
                "with_alerts": len([p for p in priorities if p.alert_count])
            }
        }

    def summarize(self, engine, assessment: RiskAssessment, days_back: int = 30) -> Dict[str, Any]:
        """Gather comparisons and trends from the engine and organize the assessment"""
        comparisons = {}
        trends = {}
        for category in RiskCategory:
            comparisons[category] = engine.compare_to_population(assessment.category_score(category).score, category)
            trends[category] = engine.analyze_trend(assessment.patient_id, category, days_back)

        priorities = self.compute_category_priorities(assessment, comparisons, trends)
        summary = self.organize_for_display(priorities, list(assessment.alerts))
        summary["patient_id"] = assessment.patient_id
        summary["assessment_id"] = assessment.assessment_id
        return summary

    def acknowledge_alert(self, alert: RiskAlert) -> RiskAlert:
        """Acknowledged copy; the original alert and its assessment are untouched"""
        return alert.model_copy(update={"acknowledged": True})

    def update_config(self, updates: Dict[str, Any]) -> bool:
        """Update configuration at runtime; unknown keys are rejected"""
        unknown = [key for key in updates if not hasattr(self.config, key)]
        if unknown:
            logger.error(f"Unknown risk summary config keys: {unknown}")
            return False

        for key, value in updates.items():
            setattr(self.config, key, value)
        self.config.last_updated = datetime.now(timezone.utc).isoformat()

        logger.info(f"Updated risk summary config: {updates}")
        return True

    def validate_weights(self) -> bool:
        """Check that priority weights sum to 1.0"""
        total = self.config.w_score + self.config.w_percentile + self.config.w_trend + self.config.w_alerts
        if abs(total - 1.0) > 0.01:
            logger.warning(f"Priority weights sum to {total:.3f}, not 1.0")
            return False
        return True
