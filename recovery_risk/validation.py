"""
Range validation for patient risk input
"""

import math
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .schema import PatientRiskInput, MoodLevel
from .errors import invalid_field_error, from_pydantic_error

_VALID_MOODS = {m.value for m in MoodLevel}

def parse_risk_input(data: Union[PatientRiskInput, Dict[str, Any]]) -> PatientRiskInput:
    """Accept a model or a plain dict in the JSON reference shape"""
    if isinstance(data, PatientRiskInput):
        return data
    try:
        return PatientRiskInput.model_validate(data)
    except PydanticValidationError as e:
        raise from_pydantic_error(e) from e

def _check_range(field: str, value: Optional[float], low: Optional[float] = None,
                 high: Optional[float] = None, low_exclusive: bool = False) -> None:
    if value is None:
        return
    if isinstance(value, float) and not math.isfinite(value):
        raise invalid_field_error(field, value, "must be a finite number")
    if low is not None:
        if low_exclusive and value <= low:
            raise invalid_field_error(field, value, f"must be greater than {low}")
        if not low_exclusive and value < low:
            raise invalid_field_error(field, value, f"must be at least {low}")
    if high is not None and value > high:
        raise invalid_field_error(field, value, f"must be at most {high}")

def validate_risk_input(risk_input: PatientRiskInput) -> PatientRiskInput:
    """
    Reject physiologically impossible or logically invalid values.
    Raises ValidationError naming the first offending field.
    """
    d = risk_input.demographics
    _check_range("demographics.age", d.age, 0, 130)
    _check_range("demographics.bmi", d.bmi, 0, 100, low_exclusive=True)
    _check_range("demographics.smoking_pack_years", d.smoking_pack_years, 0)

    s = risk_input.surgical
    _check_range("surgical.duration_minutes", s.duration_minutes, 0)
    _check_range("surgical.estimated_blood_loss_ml", s.estimated_blood_loss_ml, 0)

    c = risk_input.compliance
    _check_range("compliance.medication_adherence_rate", c.medication_adherence_rate, 0, 1)
    _check_range("compliance.mission_completion_rate", c.mission_completion_rate, 0, 1)
    _check_range("compliance.appointment_attendance_rate", c.appointment_attendance_rate, 0, 1)
    for name in ("days_with_missed_medications", "consecutive_missed_days",
                 "total_scheduled_appointments", "appointments_attended",
                 "appointments_cancelled", "appointments_no_show"):
        _check_range(f"compliance.{name}", getattr(c, name), 0)

    k = risk_input.clinical
    _check_range("clinical.pain_level", k.pain_level, 0, 10)
    _check_range("clinical.temperature", k.temperature, 25, 45)
    _check_range("clinical.heart_rate", k.heart_rate, 0, 300, low_exclusive=True)
    _check_range("clinical.blood_pressure_systolic", k.blood_pressure_systolic, 0, 300, low_exclusive=True)
    _check_range("clinical.blood_pressure_diastolic", k.blood_pressure_diastolic, 0, 300, low_exclusive=True)
    _check_range("clinical.oxygen_saturation", k.oxygen_saturation, 0, 100)
    for name in ("white_blood_cell_count", "crp_level", "hemoglobin",
                 "creatinine", "albumin", "blood_glucose"):
        _check_range(f"clinical.{name}", getattr(k, name), 0)

    b = risk_input.behavioral
    if b is not None:
        _check_range("behavioral.app_engagement_score", b.app_engagement_score, 0, 1)
        _check_range("behavioral.avg_daily_session_minutes", b.avg_daily_session_minutes, 0)
        _check_range("behavioral.days_active_last_week", b.days_active_last_week, 0, 7)
        _check_range("behavioral.symptom_reports_last_7_days", b.symptom_reports_last_7_days, 0)
        _check_range("behavioral.symptom_reports_last_30_days", b.symptom_reports_last_30_days, 0)
        _check_range("behavioral.sleep_quality_score", b.sleep_quality_score, 0, 10)
        _check_range("behavioral.exercise_minutes_per_day", b.exercise_minutes_per_day, 0)
        _check_range("behavioral.social_interaction_score", b.social_interaction_score, 0, 10)
        _check_range("behavioral.pain_diary_completion_rate", b.pain_diary_completion_rate, 0, 1)
        for i, mood in enumerate(b.mood_scores):
            if mood not in _VALID_MOODS:
                raise invalid_field_error(f"behavioral.mood_scores[{i}]", mood, "must be between 1 and 5")

    _check_range("length_of_stay_days", risk_input.length_of_stay_days, 0)
    _check_range("ed_visits_last_6_months", risk_input.ed_visits_last_6_months, 0)

    return risk_input
