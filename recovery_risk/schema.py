"""
Pydantic schemas for the recovery risk engine
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Dict, Optional, Literal, Tuple, Union
from datetime import datetime, timezone
from enum import Enum, IntEnum


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RiskTier(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

_SEVERITY_RANK = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.URGENT: 2,
    AlertSeverity.CRITICAL: 3,
}

class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"
    RAPIDLY_WORSENING = "rapidly_worsening"

class RiskCategory(str, Enum):
    OVERALL = "overall"
    INFECTION = "infection"
    READMISSION = "readmission"
    FALL = "fall"
    MENTAL_HEALTH = "mentalHealth"
    MEDICATION = "medication"

    @property
    def field_name(self) -> str:
        """Snake-case attribute name used by fixed-field records"""
        return _CATEGORY_FIELDS[self]

_CATEGORY_FIELDS = {
    RiskCategory.OVERALL: "overall",
    RiskCategory.INFECTION: "infection",
    RiskCategory.READMISSION: "readmission",
    RiskCategory.FALL: "fall",
    RiskCategory.MENTAL_HEALTH: "mental_health",
    RiskCategory.MEDICATION: "medication",
}

class Domain(str, Enum):
    DEMOGRAPHICS = "demographics"
    SURGICAL = "surgical"
    COMPLIANCE = "compliance"
    CLINICAL = "clinical"
    BEHAVIORAL = "behavioral"

class AlertMetric(str, Enum):
    OVERALL_RISK = "overallRisk"
    INFECTION_RISK = "infectionRisk"
    READMISSION_RISK = "readmissionRisk"
    FALL_RISK = "fallRisk"
    MENTAL_HEALTH_RISK = "mentalHealthRisk"
    MEDICATION_RISK = "medicationRisk"
    TEMPERATURE = "temperature"
    HEART_RATE = "heartRate"
    OXYGEN_SATURATION = "oxygenSaturation"
    CONSECUTIVE_MISSED_DAYS = "consecutiveMissedDays"
    PAIN_LEVEL = "painLevel"

    @property
    def inverted(self) -> bool:
        """Lower values are worse"""
        return self is AlertMetric.OXYGEN_SATURATION

    @property
    def is_score(self) -> bool:
        return self.value.endswith("Risk")

class ASAClass(IntEnum):
    I = 1
    II = 2
    III = 3
    IV = 4
    V = 5
    VI = 6

class AnesthesiaType(str, Enum):
    LOCAL = "local"
    REGIONAL = "regional"
    GENERAL = "general"
    SEDATION = "sedation"

class SurgeryComplexity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    COMPLEX = "complex"

class WoundHealingPhase(str, Enum):
    INFLAMMATORY = "inflammatory"
    PROLIFERATIVE = "proliferative"
    REMODELING = "remodeling"
    HEALED = "healed"
    COMPLICATED = "complicated"

class MoodLevel(IntEnum):
    VERY_LOW = 1
    LOW = 2
    NEUTRAL = 3
    GOOD = 4
    VERY_GOOD = 5

class PainTrend(str, Enum):
    DECREASING = "decreasing"
    STABLE = "stable"
    INCREASING = "increasing"

class ComorbidityType(str, Enum):
    DIABETES = "diabetes"
    HYPERTENSION = "hypertension"
    COPD = "copd"
    CHF = "chf"
    CKD = "ckd"
    LIVER_DISEASE = "liver_disease"
    CANCER = "cancer"
    HIV = "hiv"
    OBESITY = "obesity"
    DEPRESSION = "depression"
    ANXIETY = "anxiety"
    SUBSTANCE_USE = "substance_use"
    PERIPHERAL_VASCULAR = "peripheral_vascular"
    CEREBROVASCULAR = "cerebrovascular"
    DEMENTIA = "dementia"
    RHEUMATIC = "rheumatic"
    PEPTIC_ULCER = "peptic_ulcer"

class AgeGroup(str, Enum):
    EIGHTEEN_TO_34 = "18-34"
    THIRTY_FIVE_TO_49 = "35-49"
    FIFTY_TO_64 = "50-64"
    SIXTY_FIVE_TO_74 = "65-74"
    SEVENTY_FIVE_PLUS = "75+"

class PatientOutcome(str, Enum):
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"
    READMITTED = "readmitted"


class RiskModel(BaseModel):
    """Base for all records; camelCase on the wire, snake_case accepted on input"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Input domain records

class PatientDemographics(RiskModel):
    patient_id: str
    age: float  # years
    bmi: float
    is_smoker: bool = False
    smoking_pack_years: Optional[float] = None
    comorbidities: Tuple[ComorbidityType, ...] = ()
    asa_class: ASAClass = ASAClass.II
    gender: Literal["male", "female", "other"] = "other"
    lives_alone: bool = False
    has_caregiver: bool = True
    primary_language_english: bool = True
    insurance_type: Optional[Literal["private", "medicare", "medicaid", "uninsured"]] = None

class SurgicalFactors(RiskModel):
    surgery_type: str
    surgery_date: datetime
    duration_minutes: float
    complexity: SurgeryComplexity
    anesthesia_type: AnesthesiaType
    estimated_blood_loss_ml: Optional[float] = None
    is_emergency: bool = False
    is_reoperation: bool = False
    surgical_site: str = ""

    @field_validator("surgery_date")
    @classmethod
    def _surgery_date_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

class ComplianceData(RiskModel):
    medication_adherence_rate: float  # 0-1
    mission_completion_rate: float
    appointment_attendance_rate: float
    days_with_missed_medications: int = 0
    consecutive_missed_days: int = 0
    total_scheduled_appointments: int = 0
    appointments_attended: int = 0
    appointments_cancelled: int = 0
    appointments_no_show: int = 0

class ClinicalIndicators(RiskModel):
    wound_healing_phase: WoundHealingPhase
    wound_healing_on_track: bool = True
    pain_level: float  # 0-10
    pain_trend: PainTrend = PainTrend.STABLE
    temperature: float  # Celsius
    heart_rate: float  # bpm
    blood_pressure_systolic: float  # mmHg
    blood_pressure_diastolic: float
    oxygen_saturation: float  # percent

    # Labs, all optional
    white_blood_cell_count: Optional[float] = None  # cells/uL
    crp_level: Optional[float] = None  # mg/L
    hemoglobin: Optional[float] = None  # g/dL
    creatinine: Optional[float] = None  # mg/dL
    albumin: Optional[float] = None  # g/dL
    blood_glucose: Optional[float] = None  # mg/dL

    has_infection_signs: bool = False
    has_drainage_abnormality: bool = False
    has_swelling: bool = False
    has_redness: bool = False

class BehavioralSignals(RiskModel):
    app_engagement_score: float  # 0-1
    avg_daily_session_minutes: float = 0.0
    days_active_last_week: int
    symptom_reports_last_7_days: int = 0
    symptom_reports_last_30_days: int = 0
    mood_scores: Tuple[int, ...] = ()  # 1-5, oldest first
    sleep_quality_score: Optional[float] = None  # 0-10
    exercise_minutes_per_day: Optional[float] = None
    social_interaction_score: Optional[float] = None  # 0-10
    pain_diary_completion_rate: Optional[float] = None

class PatientRiskInput(RiskModel):
    demographics: PatientDemographics
    surgical: SurgicalFactors
    compliance: ComplianceData
    clinical: ClinicalIndicators
    behavioral: Optional[BehavioralSignals] = None
    length_of_stay_days: Optional[float] = None
    ed_visits_last_6_months: Optional[int] = None

    @property
    def patient_id(self) -> str:
        return self.demographics.patient_id


# Weights and intermediate scores

class DomainWeights(RiskModel):
    """One weight per input domain"""
    demographics: float = 0.20
    surgical: float = 0.20
    compliance: float = 0.20
    clinical: float = 0.25
    behavioral: float = 0.15

    def for_domain(self, domain: Domain) -> float:
        return getattr(self, domain.value)

    def total(self) -> float:
        return sum(self.for_domain(d) for d in Domain)

class CategoryWeights(RiskModel):
    overall: DomainWeights = DomainWeights()
    infection: DomainWeights = DomainWeights(
        demographics=0.15, surgical=0.25, compliance=0.10, clinical=0.40, behavioral=0.10)
    readmission: DomainWeights = DomainWeights(
        demographics=0.25, surgical=0.20, compliance=0.25, clinical=0.20, behavioral=0.10)
    fall: DomainWeights = DomainWeights(
        demographics=0.30, surgical=0.15, compliance=0.10, clinical=0.25, behavioral=0.20)
    mental_health: DomainWeights = DomainWeights(
        demographics=0.15, surgical=0.10, compliance=0.15, clinical=0.10, behavioral=0.50)
    medication: DomainWeights = DomainWeights(
        demographics=0.15, surgical=0.05, compliance=0.50, clinical=0.15, behavioral=0.15)

    def for_category(self, category: RiskCategory) -> DomainWeights:
        return getattr(self, category.field_name)

class DomainScores(RiskModel):
    """Domain scores for one assessment; None marks a domain with no input"""
    demographics: Optional[float] = None
    surgical: Optional[float] = None
    compliance: Optional[float] = None
    clinical: Optional[float] = None
    behavioral: Optional[float] = None

    def get(self, domain: Domain) -> Optional[float]:
        return getattr(self, domain.value)

    def present(self) -> List[Tuple[Domain, float]]:
        return [(d, self.get(d)) for d in Domain if self.get(d) is not None]


# Output records

class RiskContributor(RiskModel):
    factor: str
    weight: float
    raw_value: Union[float, str]
    normalized_contribution: float
    description: str
    domain: Domain

class RiskCategoryScore(RiskModel):
    score: float
    tier: RiskTier
    confidence: float
    top_contributors: Tuple[RiskContributor, ...] = ()
    methodology: Optional[str] = None

class RiskAlert(RiskModel):
    id: str
    patient_id: str
    severity: AlertSeverity
    category: str
    message: str
    triggering_factor: AlertMetric
    current_value: float
    threshold: float
    timestamp: datetime
    acknowledged: bool = False

class RiskAssessment(RiskModel):
    patient_id: str
    assessment_id: str
    timestamp: datetime
    overall_risk: RiskCategoryScore
    infection_risk: RiskCategoryScore
    readmission_risk: RiskCategoryScore
    fall_risk: RiskCategoryScore
    mental_health_risk: RiskCategoryScore
    medication_non_adherence_risk: RiskCategoryScore
    lace_index_score: int
    charlson_comorbidity_index: int
    alerts: Tuple[RiskAlert, ...] = ()

    def category_score(self, category: RiskCategory) -> RiskCategoryScore:
        if category is RiskCategory.MEDICATION:
            return self.medication_non_adherence_risk
        return getattr(self, f"{category.field_name}_risk")

class AlertThreshold(RiskModel):
    category: str
    metric: AlertMetric
    warning_level: float
    urgent_level: float
    critical_level: float
    enabled: bool = True

    @property
    def key(self) -> Tuple[str, AlertMetric]:
        return self.category, self.metric

class RiskTrendPoint(RiskModel):
    timestamp: datetime
    overall_risk: float
    infection_risk: float
    readmission_risk: float
    fall_risk: float
    mental_health_risk: float
    medication_risk: float

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def score_for(self, category: RiskCategory) -> float:
        return getattr(self, f"{category.field_name}_risk")

class TrendAnalysis(RiskModel):
    category: RiskCategory
    direction: TrendDirection
    slope: float  # points per day
    intercept: float
    r_squared: float
    days_analyzed: int
    predicted_score_in_7_days: float
    significant_change: bool

class PopulationComparison(RiskModel):
    category: RiskCategory
    patient_score: float
    population_mean: float
    population_std_dev: float
    percentile: float
    z_score: float
    comparison_group: str
    fell_back_to_population: bool = False

class BaselinePatientProfile(RiskModel):
    id: str
    demographics: PatientDemographics
    surgery_complexity: SurgeryComplexity
    age_group: AgeGroup
    overall_risk_score: float
    infection_risk_score: float
    readmission_risk_score: float
    fall_risk_score: float
    mental_health_risk_score: float
    medication_risk_score: float
    outcome: PatientOutcome

    def score_for(self, category: RiskCategory) -> float:
        return getattr(self, f"{category.field_name}_risk_score")

class CategoryStats(RiskModel):
    mean: float
    std_dev: float

class PopulationStats(RiskModel):
    overall: CategoryStats
    infection: CategoryStats
    readmission: CategoryStats
    fall: CategoryStats
    mental_health: CategoryStats
    medication: CategoryStats

    def for_category(self, category: RiskCategory) -> CategoryStats:
        return getattr(self, category.field_name)

class SubgroupFilter(RiskModel):
    age_group: Optional[AgeGroup] = None
    surgery_complexity: Optional[SurgeryComplexity] = None

class ProfileFilter(SubgroupFilter):
    outcome: Optional[PatientOutcome] = None
    min_overall_risk: Optional[float] = None
    max_overall_risk: Optional[float] = None


# Configuration

class BayesianSettings(RiskModel):
    observation_variance: float = 100.0
    min_prior_weight: float = 0.1
    default_prior_mean: float = 30.0
    default_prior_std_dev: float = 15.0

class TrendSettings(RiskModel):
    history_limit: int = 365
    default_days_back: int = 30
    rapid_worsening_slope: float = 2.0
    worsening_slope: float = 0.5
    improving_slope: float = -0.5
    significance_slope: float = 0.5
    significance_r_squared: float = 0.3
    prediction_horizon_days: int = 7
    default_prediction: float = 30.0

class PopulationSettings(RiskModel):
    cohort_size: int = 210
    seed: int = 42
    min_subgroup_size: int = 5

class ValidationSettings(RiskModel):
    strict: bool = True

class RiskConfig(RiskModel):
    """Configuration for the recovery risk engine"""

    category_weights: CategoryWeights = CategoryWeights()

    # Share of the readmission score taken from LACE
    readmission_lace_weight: float = Field(default=0.5, ge=0.0, le=1.0)

    # None means the built-in default threshold table
    alert_thresholds: Optional[Tuple[AlertThreshold, ...]] = None

    bayesian: BayesianSettings = BayesianSettings()
    trend: TrendSettings = TrendSettings()
    population: PopulationSettings = PopulationSettings()
    validation: ValidationSettings = ValidationSettings()

    def validate_weights(self) -> Dict[RiskCategory, float]:
        """Weight totals per category"""
        return {c: self.category_weights.for_category(c).total() for c in RiskCategory}
