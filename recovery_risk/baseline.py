"""
Synthetic baseline population of post-operative patients.
The cohort is the sole source of population statistics for priors and comparisons.
"""

import math
import logging
from typing import Any, Dict, List, Optional, Sequence, TypeVar

import numpy as np
import pandas as pd

from .schema import (AgeGroup, ASAClass, BaselinePatientProfile, CategoryStats,
                     ComorbidityType, PatientDemographics, PatientOutcome, PopulationStats,
                     ProfileFilter, RiskCategory, SurgeryComplexity)
from .domains import score_demographics
from .indices import compute_charlson_index
from .errors import invalid_field_error
from .numeric import clamp, round_half_up

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COHORT_SIZE = 210
DEFAULT_SEED = 42

# Minimum age and width of each age group
AGE_GROUP_RANGES = [
    (AgeGroup.EIGHTEEN_TO_34, 18, 17),
    (AgeGroup.THIRTY_FIVE_TO_49, 35, 15),
    (AgeGroup.FIFTY_TO_64, 50, 15),
    (AgeGroup.SIXTY_FIVE_TO_74, 65, 10),
    (AgeGroup.SEVENTY_FIVE_PLUS, 75, 15),
]

COMPLEXITY_OPTIONS = [SurgeryComplexity.MINOR, SurgeryComplexity.MODERATE,
                      SurgeryComplexity.MAJOR, SurgeryComplexity.COMPLEX]

# (base, spread) of the simplified surgical score for each complexity
COMPLEXITY_SCORE_RANGES = [
    (SurgeryComplexity.MINOR, 10, 15),
    (SurgeryComplexity.MODERATE, 25, 20),
    (SurgeryComplexity.MAJOR, 45, 25),
    (SurgeryComplexity.COMPLEX, 65, 25),
]

INSURANCE_OPTIONS = ["private", "medicare", "medicaid", "uninsured"]

GROUP_BY_COLUMNS = ("age_group", "surgery_complexity")


class LinearCongruentialGenerator:
    """Numerical Recipes LCG; the same seed always yields the same sequence"""

    MULTIPLIER = 1664525
    INCREMENT = 1013904223
    MASK = 0xFFFFFFFF

    def __init__(self, seed: int = DEFAULT_SEED):
        self.state = seed & self.MASK

    def next(self) -> float:
        """Uniform draw in [0, 1]"""
        self.state = (self.state * self.MULTIPLIER + self.INCREMENT) & self.MASK
        return self.state / self.MASK

    def pick(self, options: Sequence[T]) -> T:
        index = min(int(math.floor(self.next() * len(options))), len(options) - 1)
        return options[index]


def _asa_for_comorbidity_count(count: int, rng: LinearCongruentialGenerator) -> ASAClass:
    if count == 0:
        return ASAClass.I if rng.next() < 0.7 else ASAClass.II
    elif count <= 2:
        return ASAClass.II if rng.next() < 0.6 else ASAClass.III
    elif count <= 4:
        return ASAClass.III if rng.next() < 0.5 else ASAClass.IV
    return ASAClass.IV if rng.next() < 0.4 else ASAClass.V


def _sample_outcome(overall_risk: float, rng: LinearCongruentialGenerator) -> PatientOutcome:
    if overall_risk < 25:
        return PatientOutcome.GOOD
    elif overall_risk < 50:
        return PatientOutcome.MODERATE if rng.next() < 0.8 else PatientOutcome.GOOD
    elif overall_risk < 75:
        if rng.next() < 0.6:
            return PatientOutcome.POOR
        return PatientOutcome.READMITTED if rng.next() < 0.3 else PatientOutcome.MODERATE
    return PatientOutcome.READMITTED if rng.next() < 0.5 else PatientOutcome.POOR


def _generate_profile(index: int, rng: LinearCongruentialGenerator) -> BaselinePatientProfile:
    """Draw one profile. The draw order is fixed; changing it changes every later profile."""
    age_group, min_age, width = rng.pick(AGE_GROUP_RANGES)
    age = min_age + int(math.floor(rng.next() * width))

    # Box-Muller, mean 27 sd 5
    u1 = rng.next()
    u2 = rng.next()
    normal = math.sqrt(-2 * math.log(u1 + 0.0001)) * math.cos(2 * math.pi * u2)
    bmi = clamp(27 + normal * 5, 16, 55)

    is_smoker = rng.next() < (0.15 if age > 60 else 0.22)
    pack_years = int(math.floor(rng.next() * 40)) + 1 if is_smoker else None

    comorbidity_chance = 0.1 + (age - 18) * 0.005
    comorbidities = [c for c in ComorbidityType if rng.next() < comorbidity_chance]

    asa_class = _asa_for_comorbidity_count(len(comorbidities), rng)
    gender = "female" if rng.next() < 0.52 else "male"
    lives_alone = rng.next() < (0.35 if age > 70 else 0.2)
    has_caregiver = (not lives_alone) or rng.next() < 0.4
    complexity = rng.pick(COMPLEXITY_OPTIONS)
    english = rng.next() < 0.85
    insurance = rng.pick(INSURANCE_OPTIONS)

    demographics = PatientDemographics(
        patient_id=f"baseline-{index:03d}",
        age=age,
        bmi=bmi,
        is_smoker=is_smoker,
        smoking_pack_years=pack_years,
        comorbidities=tuple(comorbidities),
        asa_class=asa_class,
        gender=gender,
        lives_alone=lives_alone,
        has_caregiver=has_caregiver,
        primary_language_english=english,
        insurance_type=insurance,
    )

    cci = compute_charlson_index(comorbidities, age)
    demographic_score = score_demographics(demographics).score

    # All four are drawn regardless of the complexity picked
    complexity_scores = {c: base + rng.next() * spread for c, base, spread in COMPLEXITY_SCORE_RANGES}
    surgical_score = complexity_scores[complexity]

    overall = clamp(demographic_score * 0.4 + surgical_score * 0.35 + (cci * 5) * 0.25)
    infection = clamp(overall * (0.7 + rng.next() * 0.6) + (10 if is_smoker else 0) + (8 if bmi > 35 else 0))
    readmission = clamp(overall * (0.6 + rng.next() * 0.5) + (15 if cci > 3 else 0) + (8 if lives_alone else 0))
    fall = clamp((35 if age > 65 else 10) + len(comorbidities) * 5 + rng.next() * 20)
    mental_health = clamp(
        (40 if ComorbidityType.DEPRESSION in comorbidities else 10)
        + (20 if ComorbidityType.ANXIETY in comorbidities else 0)
        + (10 if lives_alone else 0) + rng.next() * 15)
    medication = clamp(
        len(comorbidities) * 6 + (15 if age > 75 else 0)
        + (10 if not has_caregiver else 0) + rng.next() * 15)

    outcome = _sample_outcome(overall, rng)

    return BaselinePatientProfile(
        id=demographics.patient_id,
        demographics=demographics,
        surgery_complexity=complexity,
        age_group=age_group,
        overall_risk_score=round_half_up(overall, 1),
        infection_risk_score=round_half_up(infection, 1),
        readmission_risk_score=round_half_up(readmission, 1),
        fall_risk_score=round_half_up(fall, 1),
        mental_health_risk_score=round_half_up(mental_health, 1),
        medication_risk_score=round_half_up(medication, 1),
        outcome=outcome,
    )


def generate_baseline_profiles(size: int = DEFAULT_COHORT_SIZE, seed: int = DEFAULT_SEED) -> List[BaselinePatientProfile]:
    """Deterministic synthetic cohort; same size and seed always give the same profiles"""
    if size < 1:
        raise invalid_field_error("cohort_size", size, "must be at least 1")
    rng = LinearCongruentialGenerator(seed)
    return [_generate_profile(i, rng) for i in range(size)]


class BaselinePopulation:
    """Read-only cohort with filtering and summary statistics"""

    def __init__(self, profiles: Sequence[BaselinePatientProfile]):
        if not profiles:
            raise invalid_field_error("profiles", 0, "baseline population cannot be empty")
        self._profiles = tuple(profiles)
        self._stats = self._compute_stats()
        logger.info(f"Baseline population ready: {len(self._profiles)} profiles, "
                    f"overall mean {self._stats.overall.mean:.1f}")

    @classmethod
    def generate(cls, size: int = DEFAULT_COHORT_SIZE, seed: int = DEFAULT_SEED) -> "BaselinePopulation":
        return cls(generate_baseline_profiles(size, seed))

    def __len__(self) -> int:
        return len(self._profiles)

    def profiles(self) -> List[BaselinePatientProfile]:
        return list(self._profiles)

    def filter(self, profile_filter: Optional[ProfileFilter] = None) -> List[BaselinePatientProfile]:
        if profile_filter is None:
            return self.profiles()

        f = profile_filter
        matched = []
        for p in self._profiles:
            if f.age_group is not None and p.age_group != f.age_group:
                continue
            if f.surgery_complexity is not None and p.surgery_complexity != f.surgery_complexity:
                continue
            if f.outcome is not None and p.outcome != f.outcome:
                continue
            if f.min_overall_risk is not None and p.overall_risk_score < f.min_overall_risk:
                continue
            if f.max_overall_risk is not None and p.overall_risk_score > f.max_overall_risk:
                continue
            matched.append(p)
        return matched

    @staticmethod
    def scores(category: RiskCategory, profiles: Sequence[BaselinePatientProfile]) -> np.ndarray:
        return np.array([p.score_for(category) for p in profiles], dtype=float)

    @staticmethod
    def category_stats(values: np.ndarray) -> CategoryStats:
        """Mean and population (ddof=0) standard deviation"""
        if values.size == 0:
            return CategoryStats(mean=0.0, std_dev=0.0)
        return CategoryStats(mean=float(np.mean(values)), std_dev=float(np.std(values)))

    def _compute_stats(self) -> PopulationStats:
        stats = {category.field_name: self.category_stats(self.scores(category, self._profiles))
                 for category in RiskCategory}
        return PopulationStats(**stats)

    def stats(self) -> PopulationStats:
        return self._stats

    def to_dataframe(self) -> pd.DataFrame:
        rows = []
        for p in self._profiles:
            row: Dict[str, Any] = {
                "id": p.id,
                "age": p.demographics.age,
                "age_group": p.age_group.value,
                "surgery_complexity": p.surgery_complexity.value,
                "bmi": p.demographics.bmi,
                "is_smoker": p.demographics.is_smoker,
                "comorbidity_count": len(p.demographics.comorbidities),
                "asa_class": int(p.demographics.asa_class),
                "outcome": p.outcome.value,
            }
            for category in RiskCategory:
                row[f"{category.field_name}_risk"] = p.score_for(category)
            rows.append(row)
        return pd.DataFrame(rows)

    def outcome_summary(self, group_by: Optional[str] = None) -> Dict[str, Dict[str, float]]:
        """
        Outcome shares per group, with group size and mean overall risk.

        Args:
            group_by: "age_group", "surgery_complexity", or None for the whole cohort
        """
        if group_by is not None and group_by not in GROUP_BY_COLUMNS:
            raise invalid_field_error("group_by", group_by, f"must be one of {', '.join(GROUP_BY_COLUMNS)}")

        df = self.to_dataframe()
        groups = [("all", df)] if group_by is None else df.groupby(group_by, sort=True)

        summary = {}
        for group, frame in groups:
            shares = frame["outcome"].value_counts(normalize=True)
            entry = {o.value: round(float(shares.get(o.value, 0.0)), 3) for o in PatientOutcome}
            entry["n"] = int(len(frame))
            entry["mean_overall_risk"] = round(float(frame["overall_risk"].mean()), 1)
            summary[str(group)] = entry
        return summary
