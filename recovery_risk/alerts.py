"""
Threshold-driven alert generation and the alert threshold registry
"""

import threading
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .schema import (AlertMetric, AlertSeverity, AlertThreshold, ClinicalIndicators,
                     ComplianceData, RiskAlert, RiskCategory)
from .errors import ErrorCode, ValidationError
from .numeric import clamp

logger = logging.getLogger(__name__)


def _threshold(category: str, metric: AlertMetric, warning: float, urgent: float,
               critical: float) -> AlertThreshold:
    return AlertThreshold(category=category, metric=metric, warning_level=warning,
                          urgent_level=urgent, critical_level=critical, enabled=True)


DEFAULT_ALERT_THRESHOLDS: Tuple[AlertThreshold, ...] = (
    _threshold("overall", AlertMetric.OVERALL_RISK, 40, 65, 85),
    _threshold("infection", AlertMetric.INFECTION_RISK, 35, 60, 80),
    _threshold("readmission", AlertMetric.READMISSION_RISK, 40, 65, 85),
    _threshold("fall", AlertMetric.FALL_RISK, 30, 55, 75),
    _threshold("mentalHealth", AlertMetric.MENTAL_HEALTH_RISK, 35, 60, 80),
    _threshold("medication", AlertMetric.MEDICATION_RISK, 30, 55, 75),
    _threshold("vitals", AlertMetric.TEMPERATURE, 37.8, 38.3, 39.0),
    _threshold("vitals", AlertMetric.HEART_RATE, 100, 120, 140),
    _threshold("vitals", AlertMetric.OXYGEN_SATURATION, 94, 90, 85),
    _threshold("compliance", AlertMetric.CONSECUTIVE_MISSED_DAYS, 2, 4, 7),
    _threshold("pain", AlertMetric.PAIN_LEVEL, 6, 8, 9),
)

CATEGORY_METRICS = {
    RiskCategory.OVERALL: AlertMetric.OVERALL_RISK,
    RiskCategory.INFECTION: AlertMetric.INFECTION_RISK,
    RiskCategory.READMISSION: AlertMetric.READMISSION_RISK,
    RiskCategory.FALL: AlertMetric.FALL_RISK,
    RiskCategory.MENTAL_HEALTH: AlertMetric.MENTAL_HEALTH_RISK,
    RiskCategory.MEDICATION: AlertMetric.MEDICATION_RISK,
}


@dataclass(frozen=True)
class MetricSnapshot:
    """Every value a threshold can be evaluated against, one field per metric"""
    overall_risk: float
    infection_risk: float
    readmission_risk: float
    fall_risk: float
    mental_health_risk: float
    medication_risk: float
    temperature: float
    heart_rate: float
    oxygen_saturation: float
    consecutive_missed_days: float
    pain_level: float

    @classmethod
    def from_scores(cls, scores: Dict[RiskCategory, float], clinical: ClinicalIndicators,
                    compliance: ComplianceData) -> "MetricSnapshot":
        return cls(
            overall_risk=scores[RiskCategory.OVERALL],
            infection_risk=scores[RiskCategory.INFECTION],
            readmission_risk=scores[RiskCategory.READMISSION],
            fall_risk=scores[RiskCategory.FALL],
            mental_health_risk=scores[RiskCategory.MENTAL_HEALTH],
            medication_risk=scores[RiskCategory.MEDICATION],
            temperature=clinical.temperature,
            heart_rate=clinical.heart_rate,
            oxygen_saturation=clinical.oxygen_saturation,
            consecutive_missed_days=compliance.consecutive_missed_days,
            pain_level=clinical.pain_level,
        )

    def value_for(self, metric: AlertMetric) -> float:
        return getattr(self, _METRIC_FIELDS[metric])


_METRIC_FIELDS = {
    AlertMetric.OVERALL_RISK: "overall_risk",
    AlertMetric.INFECTION_RISK: "infection_risk",
    AlertMetric.READMISSION_RISK: "readmission_risk",
    AlertMetric.FALL_RISK: "fall_risk",
    AlertMetric.MENTAL_HEALTH_RISK: "mental_health_risk",
    AlertMetric.MEDICATION_RISK: "medication_risk",
    AlertMetric.TEMPERATURE: "temperature",
    AlertMetric.HEART_RATE: "heart_rate",
    AlertMetric.OXYGEN_SATURATION: "oxygen_saturation",
    AlertMetric.CONSECUTIVE_MISSED_DAYS: "consecutive_missed_days",
    AlertMetric.PAIN_LEVEL: "pain_level",
}


def evaluate_threshold(threshold: AlertThreshold, value: float) -> Optional[Tuple[AlertSeverity, float]]:
    """Highest band crossed, checked critical first; None when no band is crossed"""
    bands = (
        (AlertSeverity.CRITICAL, threshold.critical_level),
        (AlertSeverity.URGENT, threshold.urgent_level),
        (AlertSeverity.WARNING, threshold.warning_level),
    )
    for severity, level in bands:
        crossed = value <= level if threshold.metric.inverted else value >= level
        if crossed:
            return severity, level
    return None


def build_alert_message(metric: AlertMetric, value: float, severity: AlertSeverity) -> str:
    label = severity.value.upper()
    if metric is AlertMetric.OVERALL_RISK:
        return f"{label}: Overall recovery risk score elevated at {value:.0f}/100"
    elif metric is AlertMetric.INFECTION_RISK:
        return f"{label}: Infection risk score at {value:.0f}/100 - review wound status and labs"
    elif metric is AlertMetric.READMISSION_RISK:
        return f"{label}: Readmission risk elevated to {value:.0f}/100"
    elif metric is AlertMetric.FALL_RISK:
        return f"{label}: Fall risk at {value:.0f}/100 - consider mobility assessment"
    elif metric is AlertMetric.MENTAL_HEALTH_RISK:
        return f"{label}: Mental health risk score {value:.0f}/100 - consider psychological support"
    elif metric is AlertMetric.MEDICATION_RISK:
        return f"{label}: Medication non-adherence risk at {value:.0f}/100"
    elif metric is AlertMetric.TEMPERATURE:
        detail = "significant fever" if value > 38.5 else "elevated temperature"
        return f"{label}: Temperature {value:.1f}C - {detail}"
    elif metric is AlertMetric.HEART_RATE:
        return f"{label}: Heart rate {value:g} bpm - tachycardia detected"
    elif metric is AlertMetric.OXYGEN_SATURATION:
        detail = "severe hypoxia" if value < 90 else "hypoxia detected"
        return f"{label}: SpO2 at {value:g}% - {detail}"
    elif metric is AlertMetric.CONSECUTIVE_MISSED_DAYS:
        return f"{label}: Patient has missed medications for {value:g} consecutive days"
    elif metric is AlertMetric.PAIN_LEVEL:
        detail = "severe pain requires attention" if value >= 8 else "elevated pain"
        return f"{label}: Pain level {value:g}/10 - {detail}"
    return f"{label}: {metric.value} at {value:g}"


def generate_alerts(patient_id: str, snapshot: MetricSnapshot,
                    thresholds: Iterable[AlertThreshold], now: datetime) -> List[RiskAlert]:
    """At most one alert per enabled threshold, most severe first"""
    alerts = []
    for threshold in thresholds:
        if not threshold.enabled:
            continue
        value = snapshot.value_for(threshold.metric)
        crossed = evaluate_threshold(threshold, value)
        if crossed is None:
            continue
        severity, level = crossed
        alerts.append(RiskAlert(
            id=str(uuid.uuid4()),
            patient_id=patient_id,
            severity=severity,
            category=threshold.category,
            message=build_alert_message(threshold.metric, value, severity),
            triggering_factor=threshold.metric,
            current_value=value,
            threshold=level,
            timestamp=now,
            acknowledged=False,
        ))

    return sorted(alerts, key=lambda a: a.severity.rank, reverse=True)


def _coerce_metric(metric: Union[AlertMetric, str]) -> Optional[AlertMetric]:
    try:
        return AlertMetric(metric)
    except ValueError:
        return None


def normalize_threshold(threshold: AlertThreshold) -> AlertThreshold:
    """
    Clamp score-metric levels to [0,100] and require ordered bands:
    warning <= urgent <= critical, or the reverse for inverted metrics.
    """
    levels = (threshold.warning_level, threshold.urgent_level, threshold.critical_level)
    if threshold.metric.is_score:
        levels = tuple(clamp(level) for level in levels)
    warning, urgent, critical = levels

    ordered = (warning >= urgent >= critical) if threshold.metric.inverted else (warning <= urgent <= critical)
    if not ordered:
        direction = "descending" if threshold.metric.inverted else "ascending"
        raise ValidationError(
            field=f"thresholds.{threshold.category}.{threshold.metric.value}",
            value={"warning": warning, "urgent": urgent, "critical": critical},
            reason=f"levels must be {direction} from warning to critical",
            error_code=ErrorCode.RISK_INVALID_THRESHOLD,
        )

    return threshold.model_copy(update={"warning_level": warning, "urgent_level": urgent,
                                        "critical_level": critical})


class AlertThresholdRegistry:
    """Mutable threshold configuration keyed by (category, metric)"""

    def __init__(self, thresholds: Optional[Iterable[AlertThreshold]] = None):
        source = DEFAULT_ALERT_THRESHOLDS if thresholds is None else thresholds
        self._thresholds: List[AlertThreshold] = [normalize_threshold(t) for t in source]
        self._lock = threading.Lock()

    def list(self) -> List[AlertThreshold]:
        with self._lock:
            return list(self._thresholds)

    def _index(self, category: str, metric: Optional[AlertMetric]) -> int:
        if metric is None:
            return -1
        for i, threshold in enumerate(self._thresholds):
            if threshold.key == (category, metric):
                return i
        return -1

    def get(self, category: str, metric: Union[AlertMetric, str]) -> Optional[AlertThreshold]:
        with self._lock:
            index = self._index(category, _coerce_metric(metric))
            return self._thresholds[index] if index >= 0 else None

    def update(self, category: str, metric: Union[AlertMetric, str],
               warning_level: Optional[float] = None, urgent_level: Optional[float] = None,
               critical_level: Optional[float] = None, enabled: Optional[bool] = None) -> bool:
        """Apply the given fields; False when no such threshold exists"""
        updates = {key: value for key, value in (
            ("warning_level", warning_level),
            ("urgent_level", urgent_level),
            ("critical_level", critical_level),
            ("enabled", enabled),
        ) if value is not None}

        with self._lock:
            index = self._index(category, _coerce_metric(metric))
            if index < 0:
                return False
            updated = normalize_threshold(self._thresholds[index].model_copy(update=updates))
            self._thresholds[index] = updated

        logger.info(f"Updated alert threshold {category}/{updated.metric.value}: {updates}")
        return True

    def add(self, threshold: AlertThreshold) -> AlertThreshold:
        """Add a threshold, replacing any existing one with the same key"""
        threshold = normalize_threshold(threshold)
        with self._lock:
            index = self._index(threshold.category, threshold.metric)
            if index >= 0:
                logger.warning(f"Replacing alert threshold {threshold.category}/{threshold.metric.value}")
                self._thresholds[index] = threshold
            else:
                self._thresholds.append(threshold)
        return threshold

    def remove(self, category: str, metric: Union[AlertMetric, str]) -> bool:
        with self._lock:
            index = self._index(category, _coerce_metric(metric))
            if index < 0:
                return False
            removed = self._thresholds.pop(index)

        logger.info(f"Removed alert threshold {category}/{removed.metric.value}")
        return True
