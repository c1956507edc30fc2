"""
Composite scoring and medical indices (Charlson Comorbidity Index, LACE)
"""

import logging
from typing import Dict, Iterable, Optional, Union

from .schema import (ComorbidityType, DomainScores, DomainWeights, RiskCategory,
                     RiskConfig, RiskTier)
from .errors import invalid_field_error
from .numeric import clamp

logger = logging.getLogger(__name__)

# Charlson weights adapted to the tracked comorbidity list
CHARLSON_WEIGHTS = {
    ComorbidityType.DIABETES: 1,
    ComorbidityType.HYPERTENSION: 0,
    ComorbidityType.COPD: 1,
    ComorbidityType.CHF: 1,
    ComorbidityType.CKD: 2,
    ComorbidityType.LIVER_DISEASE: 3,
    ComorbidityType.CANCER: 2,
    ComorbidityType.HIV: 6,
    ComorbidityType.OBESITY: 0,
    ComorbidityType.DEPRESSION: 0,
    ComorbidityType.ANXIETY: 0,
    ComorbidityType.SUBSTANCE_USE: 0,
    ComorbidityType.PERIPHERAL_VASCULAR: 1,
    ComorbidityType.CEREBROVASCULAR: 1,
    ComorbidityType.DEMENTIA: 1,
    ComorbidityType.RHEUMATIC: 1,
    ComorbidityType.PEPTIC_ULCER: 1,
}

LACE_MAX = 19
DEFAULT_LENGTH_OF_STAY = 1
DEFAULT_ED_VISITS = 0

TIER_BOUNDARIES = ((25, RiskTier.LOW), (50, RiskTier.MODERATE), (75, RiskTier.HIGH))


def _charlson_age_points(age: float) -> int:
    if age < 50:
        return 0
    elif age < 60:
        return 1
    elif age < 70:
        return 2
    elif age < 80:
        return 3
    return 4


def compute_charlson_index(comorbidities: Iterable[Union[ComorbidityType, str]], age: float) -> int:
    """Sum of per-condition weights plus the age adjustment"""
    if age < 0:
        raise invalid_field_error("age", age, "must be at least 0")

    total = 0
    for comorbidity in comorbidities:
        try:
            total += CHARLSON_WEIGHTS[ComorbidityType(comorbidity)]
        except ValueError as e:
            raise invalid_field_error("comorbidities", comorbidity, "unknown comorbidity") from e
    return total + _charlson_age_points(age)


def _length_of_stay_points(los: float) -> int:
    if los < 1:
        return 0
    elif los < 2:
        return 1
    elif los < 3:
        return 2
    elif los < 4:
        return 3
    elif los <= 6:
        return 4
    elif los <= 13:
        return 5
    return 7


def compute_lace_index(los: Optional[float], is_emergency: bool, charlson: int,
                       ed_visits: Optional[int]) -> int:
    """
    LACE readmission index: Length of stay, Acuity, Comorbidity, ED visits.
    Missing length of stay counts as one day; missing ED visits as none.
    """
    los = DEFAULT_LENGTH_OF_STAY if los is None else los
    ed_visits = DEFAULT_ED_VISITS if ed_visits is None else ed_visits
    if los < 0:
        raise invalid_field_error("length_of_stay_days", los, "must be at least 0")
    if charlson < 0:
        raise invalid_field_error("charlson", charlson, "must be at least 0")
    if ed_visits < 0:
        raise invalid_field_error("ed_visits_last_6_months", ed_visits, "must be at least 0")

    length = _length_of_stay_points(los)
    acuity = 3 if is_emergency else 0
    comorbidity = min(int(charlson), 5)
    emergency_visits = min(int(ed_visits), 4)
    return length + acuity + comorbidity + emergency_visits


def determine_risk_tier(score: float) -> RiskTier:
    for boundary, tier in TIER_BOUNDARIES:
        if score < boundary:
            return tier
    return RiskTier.CRITICAL


def compute_category_score(domain_scores: DomainScores, weights: DomainWeights) -> float:
    """Weighted mean over the domains that are present, renormalised by applied weight"""
    applied_weight = 0.0
    weighted_sum = 0.0
    for domain, score in domain_scores.present():
        weight = weights.for_domain(domain)
        applied_weight += weight
        weighted_sum += weight * score
    if applied_weight <= 0:
        return 0.0
    return clamp(weighted_sum / applied_weight)


def blend_readmission(domain_composite: float, lace: int, lace_weight: float = 0.5) -> float:
    lace_risk = lace / LACE_MAX * 100
    return clamp((1 - lace_weight) * domain_composite + lace_weight * lace_risk)


def compute_raw_category_scores(domain_scores: DomainScores, lace: int,
                                config: RiskConfig) -> Dict[RiskCategory, float]:
    raw = {
        category: compute_category_score(domain_scores, config.category_weights.for_category(category))
        for category in RiskCategory
    }
    raw[RiskCategory.READMISSION] = blend_readmission(
        raw[RiskCategory.READMISSION], lace, config.readmission_lace_weight)
    if logger.isEnabledFor(logging.DEBUG):
        rounded = {c.value: round(s, 1) for c, s in raw.items()}
        logger.debug(f"Raw category scores: {rounded}")
    return raw
