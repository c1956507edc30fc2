#!/usr/bin/env python3
"""
Recovery risk API - HTTP surface over the risk scoring engine
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from flask import Blueprint, current_app, jsonify, request
from pydantic import BaseModel, ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from recovery_risk.engine import RiskScoringEngine
from recovery_risk.errors import (ErrorCode, ErrorLogger, NotFoundError, RiskEngineError,
                                  ValidationError, from_pydantic_error, handle_patient_not_found,
                                  handle_threshold_not_found, handle_unknown_category)
from recovery_risk.schema import (AlertThreshold, ProfileFilter, RiskAssessment, RiskTrendPoint,
                                  SubgroupFilter)
from services.risk_summary import RiskSummaryService

logger = logging.getLogger(__name__)
error_logger = ErrorLogger(__name__)

M = TypeVar("M", bound=BaseModel)

EXTENSION_KEY = "recovery_risk"

# Create blueprint
recovery_risk_bp = Blueprint('recovery_risk', __name__, url_prefix='/api/recovery-risk')


def _engine() -> RiskScoringEngine:
    return current_app.extensions[EXTENSION_KEY]["engine"]

def _summary_service() -> RiskSummaryService:
    return current_app.extensions[EXTENSION_KEY]["summary"]

def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)

def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError(field="body", value=None, reason="a JSON object is required",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    return data

def _parse(model_cls: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise from_pydantic_error(e) from e

def _require(data: Dict[str, Any], field: str) -> Any:
    if field not in data:
        raise ValidationError(field=field, value=None, reason="missing required field",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    return data[field]

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

def _optional_number(data: Dict[str, Any], field: str) -> Optional[float]:
    value = data.get(field)
    if value is not None and not _is_number(value):
        raise ValidationError(field=field, value=value, reason="must be a number or null",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    return value


@recovery_risk_bp.errorhandler(ValidationError)
def _handle_validation_error(error: ValidationError):
    error_logger.log_error(error, level=logging.WARNING)
    return jsonify(error.to_dict()), 400

@recovery_risk_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    error_logger.log_error(error, level=logging.INFO)
    return jsonify(error.to_dict()), 404

@recovery_risk_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    wrapped = error if isinstance(error, RiskEngineError) else RiskEngineError(
        error_code=ErrorCode.APP_INTERNAL_ERROR,
        message="Unexpected error in recovery risk API",
        original_exception=error
    )
    error_logger.log_error(wrapped)
    return jsonify(wrapped.to_dict()), 500


@recovery_risk_bp.route('/assess', methods=['POST'])
def assess_risk():
    """
    Score a patient and update their trend history

    POST /api/recovery-risk/assess
    Body: PatientRiskInput (demographics, surgical, compliance, clinical,
          behavioral?, lengthOfStayDays?, edVisitsLast6Months?)
    """
    assessment = _engine().assess_risk(_json_body())
    logger.info(f"Assessed {assessment.patient_id}: overall {assessment.overall_risk.score} "
                f"({assessment.overall_risk.tier.value}), {len(assessment.alerts)} alerts")
    return jsonify(_dump(assessment))

@recovery_risk_bp.route('/patients/<patient_id>/trend/<category>', methods=['GET'])
def analyze_trend(patient_id: str, category: str):
    """GET /api/recovery-risk/patients/<id>/trend/<category>?days_back=30"""
    days_back = request.args.get('days_back', type=int)
    analysis = _engine().analyze_trend(patient_id, category, days_back)
    if analysis is None:
        raise handle_unknown_category(category)
    return jsonify(_dump(analysis))

@recovery_risk_bp.route('/patients/<patient_id>/history', methods=['GET'])
def get_trend_history(patient_id: str):
    history = _engine().get_trend_history(patient_id)
    return jsonify({"patient_id": patient_id, "count": len(history),
                    "history": [_dump(p) for p in history]})

@recovery_risk_bp.route('/patients/<patient_id>/history', methods=['POST'])
def add_trend_point(patient_id: str):
    """Back-fill one historical trend point"""
    point = _parse(RiskTrendPoint, _json_body())
    engine = _engine()
    engine.add_trend_point(patient_id, point)
    return jsonify({"status": "added", "history_length": len(engine.get_trend_history(patient_id))}), 201

@recovery_risk_bp.route('/patients/<patient_id>/assessment-count', methods=['GET'])
def get_assessment_count(patient_id: str):
    return jsonify({"patient_id": patient_id, "assessment_count": _engine().get_assessment_count(patient_id)})

@recovery_risk_bp.route('/patients/<patient_id>/reset-priors', methods=['POST'])
def reset_priors(patient_id: str):
    if not _engine().reset_priors(patient_id):
        raise handle_patient_not_found(patient_id)
    return jsonify({"status": "reset", "patient_id": patient_id})

@recovery_risk_bp.route('/patients/<patient_id>', methods=['DELETE'])
def clear_patient_data(patient_id: str):
    if not _engine().clear_patient_data(patient_id):
        raise handle_patient_not_found(patient_id)
    return jsonify({"status": "cleared", "patient_id": patient_id})

@recovery_risk_bp.route('/population/stats', methods=['GET'])
def get_population_stats():
    return jsonify(_dump(_engine().get_population_stats()))

@recovery_risk_bp.route('/population/<category>', methods=['GET'])
def compare_to_population(category: str):
    """
    Percentile of a score in the baseline cohort

    GET /api/recovery-risk/population/<category>?score=42.5[&age_group=65-74][&surgery_complexity=major]
    """
    score = request.args.get('score', type=float)
    if score is None:
        raise ValidationError(field="score", value=request.args.get('score'),
                              reason="numeric score query parameter required",
                              error_code=ErrorCode.APP_INVALID_REQUEST)

    subgroup_args = {key: request.args[key] for key in ('age_group', 'surgery_complexity') if key in request.args}
    engine = _engine()
    if subgroup_args:
        comparison = engine.compare_to_subgroup(score, category, _parse(SubgroupFilter, subgroup_args))
    else:
        comparison = engine.compare_to_population(score, category)

    if comparison is None:
        raise handle_unknown_category(category)
    return jsonify(_dump(comparison))

@recovery_risk_bp.route('/baseline/profiles', methods=['GET'])
def get_baseline_profiles():
    """GET /api/recovery-risk/baseline/profiles?age_group=&surgery_complexity=&outcome=&min_overall_risk=&max_overall_risk="""
    filter_args = {key: request.args[key] for key in
                   ('age_group', 'surgery_complexity', 'outcome', 'min_overall_risk', 'max_overall_risk')
                   if key in request.args}
    profile_filter = _parse(ProfileFilter, filter_args) if filter_args else None
    profiles = _engine().get_filtered_profiles(profile_filter)
    return jsonify({"count": len(profiles), "profiles": [_dump(p) for p in profiles]})

@recovery_risk_bp.route('/baseline/summary', methods=['GET'])
def get_baseline_summary():
    group_by = request.args.get('group_by')
    return jsonify(_engine().population.outcome_summary(group_by))

@recovery_risk_bp.route('/thresholds', methods=['GET'])
def get_alert_thresholds():
    return jsonify({"thresholds": [_dump(t) for t in _engine().get_alert_thresholds()]})

@recovery_risk_bp.route('/thresholds', methods=['POST'])
def add_alert_threshold():
    threshold = _engine().add_alert_threshold(_parse(AlertThreshold, _json_body()))
    return jsonify(_dump(threshold)), 201

@recovery_risk_bp.route('/thresholds/<category>/<metric>', methods=['PATCH'])
def update_alert_threshold(category: str, metric: str):
    data = _json_body()
    levels = {}
    for field, alias in (('warning_level', 'warningLevel'), ('urgent_level', 'urgentLevel'),
                         ('critical_level', 'criticalLevel'), ('enabled', 'enabled')):
        if field in data:
            levels[field] = data[field]
        elif alias in data:
            levels[field] = data[alias]

    engine = _engine()
    if not engine.update_alert_threshold(category, metric, **levels):
        raise handle_threshold_not_found(category, metric)
    return jsonify(_dump(engine.thresholds.get(category, metric)))

@recovery_risk_bp.route('/thresholds/<category>/<metric>', methods=['DELETE'])
def remove_alert_threshold(category: str, metric: str):
    if not _engine().remove_alert_threshold(category, metric):
        raise handle_threshold_not_found(category, metric)
    return jsonify({"status": "removed", "category": category, "metric": metric})

@recovery_risk_bp.route('/indices/charlson', methods=['POST'])
def compute_charlson_index():
    """Body: {comorbidities: string[], age: number}"""
    data = _json_body()
    comorbidities = data.get('comorbidities', [])
    if not isinstance(comorbidities, list):
        raise ValidationError(field="comorbidities", value=comorbidities, reason="must be a list",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    age = _require(data, 'age')
    if not _is_number(age):
        raise ValidationError(field="age", value=age, reason="must be a number",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    return jsonify({"charlson_comorbidity_index": _engine().compute_charlson_index(comorbidities, age)})

@recovery_risk_bp.route('/indices/lace', methods=['POST'])
def compute_lace_index():
    """Body: {length_of_stay_days?: number, is_emergency: bool, charlson: int, ed_visits?: int}"""
    data = _json_body()
    charlson = _require(data, 'charlson')
    if not isinstance(charlson, int) or isinstance(charlson, bool):
        raise ValidationError(field="charlson", value=charlson, reason="must be an integer",
                              error_code=ErrorCode.APP_INVALID_REQUEST)
    lace = _engine().compute_lace_index(
        _optional_number(data, 'length_of_stay_days'),
        bool(data.get('is_emergency', False)),
        charlson,
        _optional_number(data, 'ed_visits')
    )
    return jsonify({"lace_index_score": lace})

@recovery_risk_bp.route('/summary', methods=['POST'])
def summarize_assessment():
    """
    Care-team summary of an assessment

    POST /api/recovery-risk/summary
    Body: {assessment: RiskAssessment, days_back?: int}
    """
    data = _json_body()
    assessment = _parse(RiskAssessment, _require(data, 'assessment'))
    days_back = data.get('days_back', 30)
    if not isinstance(days_back, int) or isinstance(days_back, bool):
        raise ValidationError(field="days_back", value=days_back, reason="must be an integer")
    return jsonify(_summary_service().summarize(_engine(), assessment, days_back))
