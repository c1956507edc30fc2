"""
Domain scorers: each input domain becomes a 0-100 score plus weighted contributors
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .schema import (PatientDemographics, SurgicalFactors, ComplianceData,
                     ClinicalIndicators, BehavioralSignals, RiskContributor, Domain,
                     SurgeryComplexity, AnesthesiaType, WoundHealingPhase, PainTrend)
from .indices import compute_charlson_index
from .numeric import clamp

COMPLEXITY_RISK = {
    SurgeryComplexity.MINOR: 10,
    SurgeryComplexity.MODERATE: 30,
    SurgeryComplexity.MAJOR: 60,
    SurgeryComplexity.COMPLEX: 85,
}

ANESTHESIA_RISK = {
    AnesthesiaType.LOCAL: 5,
    AnesthesiaType.SEDATION: 15,
    AnesthesiaType.REGIONAL: 25,
    AnesthesiaType.GENERAL: 45,
}

WOUND_PHASE_RISK = {
    WoundHealingPhase.HEALED: 0,
    WoundHealingPhase.REMODELING: 10,
    WoundHealingPhase.PROLIFERATIVE: 25,
    WoundHealingPhase.INFLAMMATORY: 45,
    WoundHealingPhase.COMPLICATED: 85,
}

DEFAULT_PACK_YEARS = 10


@dataclass
class DomainResult:
    """Score for one domain with the factors that produced it"""
    domain: Domain
    score: float
    contributors: List[RiskContributor] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        """Share of the domain's factor weight that had data (factor weights sum to 1)"""
        return min(1.0, sum(c.weight for c in self.contributors))


def _contributor(domain: Domain, factor: str, weight: float, raw_value, value: float,
                 description: str) -> RiskContributor:
    return RiskContributor(
        factor=factor,
        weight=weight,
        raw_value=raw_value,
        normalized_contribution=clamp(value),
        description=description,
        domain=domain,
    )


def _result(domain: Domain, contributors: List[RiskContributor]) -> DomainResult:
    total_weight = sum(c.weight for c in contributors)
    if total_weight <= 0:
        return DomainResult(domain=domain, score=0.0, contributors=contributors)
    weighted = sum(c.weight * c.normalized_contribution for c in contributors)
    return DomainResult(domain=domain, score=clamp(weighted / total_weight), contributors=contributors)


def _age_risk(age: float) -> float:
    if age < 40:
        return 5
    elif age < 50:
        return 12
    elif age < 60:
        return 22
    elif age < 70:
        return 40
    elif age < 80:
        return 60
    return 80


def _bmi_risk(bmi: float) -> float:
    if bmi < 18.5:
        return 35  # underweight
    elif bmi < 25:
        return 5
    elif bmi < 30:
        return 15
    elif bmi < 35:
        return 35
    elif bmi < 40:
        return 55
    return 75


def _comorbidity_burden(cci: int) -> str:
    if cci == 0:
        return "no significant comorbidities"
    elif cci <= 2:
        return "mild comorbidity burden"
    elif cci <= 5:
        return "moderate comorbidity burden"
    return "severe comorbidity burden"


def score_demographics(demographics: PatientDemographics) -> DomainResult:
    d = Domain.DEMOGRAPHICS
    contributors = []

    contributors.append(_contributor(
        d, "age", 0.25, demographics.age, _age_risk(demographics.age),
        f"Age {demographics.age:g}: {'advanced age increases risk' if demographics.age >= 65 else 'age-related baseline'}"))

    contributors.append(_contributor(
        d, "bmi", 0.15, round(demographics.bmi, 1), _bmi_risk(demographics.bmi),
        f"BMI {demographics.bmi:.1f}"))

    if demographics.is_smoker:
        pack_years = demographics.smoking_pack_years
        smoking_risk = clamp(30 + (pack_years if pack_years is not None else DEFAULT_PACK_YEARS) * 1.5, 30, 80)
        raw = f"Yes ({pack_years:g} pack-years)" if pack_years is not None else "Yes (unknown pack-years)"
        description = "Smoking impairs wound healing and increases infection risk"
    else:
        smoking_risk, raw, description = 0, "No", "Non-smoker baseline"
    contributors.append(_contributor(d, "smoking", 0.15, raw, smoking_risk, description))

    cci = compute_charlson_index(demographics.comorbidities, int(demographics.age))
    contributors.append(_contributor(
        d, "charlsonComorbidityIndex", 0.25, cci, clamp(cci * 12),
        f"CCI {cci}: {_comorbidity_burden(cci)}"))

    asa = int(demographics.asa_class)
    if asa <= 2:
        asa_text = "low anesthetic risk"
    elif asa == 3:
        asa_text = "moderate systemic disease"
    else:
        asa_text = "severe systemic disease"
    contributors.append(_contributor(
        d, "asaClass", 0.10, asa, clamp((asa - 1) * 22), f"ASA {asa}: {asa_text}"))

    social_risk = ((20 if demographics.lives_alone else 0) +
                   (15 if not demographics.has_caregiver else 0) +
                   (10 if not demographics.primary_language_english else 0))
    contributors.append(_contributor(
        d, "socialFactors", 0.10,
        f"Lives alone: {demographics.lives_alone}, Caregiver: {demographics.has_caregiver}",
        social_risk,
        f"Social support: {'limited (lives alone)' if demographics.lives_alone else 'adequate'}"))

    return _result(d, contributors)


def days_since(when: datetime, now: datetime) -> float:
    """Fractional days elapsed, never negative"""
    return max(0.0, (now - when).total_seconds() / 86400.0)


def score_surgical(surgical: SurgicalFactors, now: datetime) -> DomainResult:
    d = Domain.SURGICAL
    contributors = []

    contributors.append(_contributor(
        d, "surgeryComplexity", 0.30, surgical.complexity.value, COMPLEXITY_RISK[surgical.complexity],
        f"{surgical.complexity.value} complexity: {surgical.surgery_type}"))

    minutes = surgical.duration_minutes
    if minutes < 60:
        duration_risk = 5
    elif minutes < 120:
        duration_risk = 15
    elif minutes < 180:
        duration_risk = 30
    elif minutes < 300:
        duration_risk = 55
    else:
        duration_risk = 80
    contributors.append(_contributor(
        d, "surgeryDuration", 0.20, minutes, duration_risk,
        f"{minutes:g} min duration: {'prolonged procedure increases risk' if minutes > 180 else 'within expected range'}"))

    contributors.append(_contributor(
        d, "anesthesiaType", 0.15, surgical.anesthesia_type.value, ANESTHESIA_RISK[surgical.anesthesia_type],
        f"{surgical.anesthesia_type.value} anesthesia"))

    elapsed = days_since(surgical.surgery_date, now)
    if elapsed < 3:
        recency_risk = 70
    elif elapsed < 7:
        recency_risk = 50
    elif elapsed < 14:
        recency_risk = 35
    elif elapsed < 30:
        recency_risk = 20
    else:
        recency_risk = 10
    if elapsed < 7:
        phase = "acute recovery phase"
    elif elapsed < 30:
        phase = "early recovery"
    else:
        phase = "established recovery"
    contributors.append(_contributor(
        d, "daysSinceSurgery", 0.15, round(elapsed), recency_risk, f"{round(elapsed)} days post-op: {phase}"))

    emergency_risk = (30 if surgical.is_emergency else 0) + (25 if surgical.is_reoperation else 0)
    contributors.append(_contributor(
        d, "emergencyReoperation", 0.10,
        f"Emergency: {surgical.is_emergency}, Reoperation: {surgical.is_reoperation}",
        emergency_risk,
        f"{'Emergency procedure' if surgical.is_emergency else 'Elective'}"
        f"{', reoperation' if surgical.is_reoperation else ''}"))

    ebl = surgical.estimated_blood_loss_ml
    if ebl is not None:
        if ebl < 200:
            blood_loss_risk = 5
        elif ebl < 500:
            blood_loss_risk = 20
        elif ebl < 1000:
            blood_loss_risk = 50
        else:
            blood_loss_risk = 80
        contributors.append(_contributor(
            d, "estimatedBloodLoss", 0.10, ebl, blood_loss_risk,
            f"EBL {ebl:g}ml: {'significant blood loss' if ebl > 500 else 'within expected range'}"))

    return _result(d, contributors)


def _missed_days_risk(days: int) -> float:
    if days == 0:
        return 0
    elif days <= 1:
        return 15
    elif days <= 3:
        return 45
    elif days <= 7:
        return 75
    return 95


def score_compliance(compliance: ComplianceData) -> DomainResult:
    d = Domain.COMPLIANCE
    adherence = compliance.medication_adherence_rate
    if adherence >= 0.9:
        adherence_text = "excellent"
    elif adherence >= 0.7:
        adherence_text = "adequate"
    else:
        adherence_text = "concerning"

    missed = compliance.consecutive_missed_days
    contributors = [
        _contributor(d, "medicationAdherence", 0.35, adherence, (1 - adherence) * 100,
                     f"{adherence * 100:.0f}% adherence: {adherence_text}"),
        _contributor(d, "missionCompletion", 0.25, compliance.mission_completion_rate,
                     (1 - compliance.mission_completion_rate) * 100,
                     f"{compliance.mission_completion_rate * 100:.0f}% mission completion"),
        _contributor(d, "appointmentAttendance", 0.20, compliance.appointment_attendance_rate,
                     (1 - compliance.appointment_attendance_rate) * 100,
                     f"{compliance.appointment_attendance_rate * 100:.0f}% appointment attendance "
                     f"({compliance.appointments_no_show} no-shows)"),
        _contributor(d, "consecutiveMissedDays", 0.20, missed, _missed_days_risk(missed),
                     f"{missed} consecutive missed days: "
                     f"{'intervention needed' if missed >= 3 else 'within tolerance'}"),
    ]
    return _result(d, contributors)


def _temperature_risk(temperature: float) -> float:
    if temperature < 36.0:
        return 30  # hypothermia
    elif temperature <= 37.5:
        return 0
    elif temperature <= 38.0:
        return 25
    elif temperature <= 38.5:
        return 50
    elif temperature <= 39.0:
        return 75
    return 95


def _vitals_risk(clinical: ClinicalIndicators) -> float:
    risk = 0
    hr = clinical.heart_rate
    if hr < 50 or hr > 120:
        risk += 40
    elif hr < 60 or hr > 100:
        risk += 15

    sbp = clinical.blood_pressure_systolic
    if sbp > 180 or sbp < 90:
        risk += 35
    elif sbp > 140 or sbp < 100:
        risk += 12

    spo2 = clinical.oxygen_saturation
    if spo2 < 90:
        risk += 50
    elif spo2 < 94:
        risk += 25
    elif spo2 < 96:
        risk += 8
    return clamp(risk)


def _lab_penalties(clinical: ClinicalIndicators) -> List[float]:
    """One penalty per lab actually reported"""
    penalties = []

    wbc = clinical.white_blood_cell_count
    if wbc is not None:
        if wbc > 12000:
            penalties.append(40)
        elif wbc > 11000:
            penalties.append(15)
        elif wbc < 4000:
            penalties.append(30)
        else:
            penalties.append(0)

    crp = clinical.crp_level
    if crp is not None:
        if crp > 50:
            penalties.append(50)
        elif crp > 20:
            penalties.append(30)
        elif crp > 10:
            penalties.append(15)
        else:
            penalties.append(0)

    albumin = clinical.albumin
    if albumin is not None:
        if albumin < 2.5:
            penalties.append(45)
        elif albumin < 3.0:
            penalties.append(25)
        elif albumin < 3.5:
            penalties.append(10)
        else:
            penalties.append(0)

    hemoglobin = clinical.hemoglobin
    if hemoglobin is not None:
        if hemoglobin < 8:
            penalties.append(45)
        elif hemoglobin < 10:
            penalties.append(25)
        elif hemoglobin < 12:
            penalties.append(10)
        else:
            penalties.append(0)

    return penalties


def score_clinical(clinical: ClinicalIndicators) -> DomainResult:
    d = Domain.CLINICAL
    contributors = []

    wound_risk = WOUND_PHASE_RISK[clinical.wound_healing_phase] + (0 if clinical.wound_healing_on_track else 20)
    contributors.append(_contributor(
        d, "woundHealing", 0.20, clinical.wound_healing_phase.value, wound_risk,
        f"Wound in {clinical.wound_healing_phase.value} phase: "
        f"{'on track' if clinical.wound_healing_on_track else 'delayed healing'}"))

    temp = clinical.temperature
    contributors.append(_contributor(
        d, "temperature", 0.15, temp, _temperature_risk(temp),
        f"Temp {temp:.1f}C: {'fever detected' if temp > 38.0 else 'afebrile'}"))

    pain = clinical.pain_level
    pain_risk = pain * 10 + (15 if clinical.pain_trend is PainTrend.INCREASING else 0)
    if pain >= 7:
        severity = "severe"
    elif pain >= 4:
        severity = "moderate"
    else:
        severity = "controlled"
    contributors.append(_contributor(
        d, "painLevel", 0.12, pain, pain_risk,
        f"Pain {pain:g}/10 ({clinical.pain_trend.value}): {severity}"))

    vitals = (f"HR {clinical.heart_rate:g}, BP {clinical.blood_pressure_systolic:g}/"
              f"{clinical.blood_pressure_diastolic:g}, SpO2 {clinical.oxygen_saturation:g}%")
    contributors.append(_contributor(
        d, "vitalSigns", 0.18, vitals, _vitals_risk(clinical), f"Vitals: {vitals}"))

    penalties = _lab_penalties(clinical)
    if penalties:
        contributors.append(_contributor(
            d, "labResults", 0.15,
            f"WBC:{clinical.white_blood_cell_count} CRP:{clinical.crp_level} "
            f"Alb:{clinical.albumin} Hgb:{clinical.hemoglobin}",
            sum(penalties) / len(penalties),
            f"Lab values: {len(penalties)} results available"))

    signs = [name for name, present in (
        ("infection signs", clinical.has_infection_signs),
        ("drainage", clinical.has_drainage_abnormality),
        ("swelling", clinical.has_swelling),
        ("redness", clinical.has_redness),
    ) if present]
    contributors.append(_contributor(
        d, "infectionSigns", 0.20, len(signs), len(signs) * 25,
        f"{len(signs)} infection sign(s): {', '.join(signs) if signs else 'none detected'}"))

    return _result(d, contributors)


def _mood_risk(moods) -> Optional[float]:
    if not moods:
        return None
    avg = sum(moods) / len(moods)
    risk = clamp((5 - avg) * 20)
    recent = moods[-3:]
    if len(recent) == 3 and recent[2] < recent[0]:
        risk = clamp(risk + 15)  # declining
    return risk


def score_behavioral(behavioral: BehavioralSignals) -> DomainResult:
    d = Domain.BEHAVIORAL
    contributors = []

    engagement = behavioral.app_engagement_score
    if engagement >= 0.7:
        engagement_text = "active user"
    elif engagement >= 0.4:
        engagement_text = "moderate engagement"
    else:
        engagement_text = "low engagement"
    contributors.append(_contributor(
        d, "appEngagement", 0.25, engagement, (1 - engagement) * 80,
        f"{engagement * 100:.0f}% engagement: {engagement_text}"))

    active = behavioral.days_active_last_week
    contributors.append(_contributor(
        d, "weeklyActivity", 0.15, active, (1 - active / 7) * 80, f"Active {active}/7 days last week"))

    week, month = behavioral.symptom_reports_last_7_days, behavioral.symptom_reports_last_30_days
    if week == 0 and month == 0:
        reporting_risk, reporting_text = 30, "no reports (may indicate disengagement)"
    elif week > 10:
        reporting_risk, reporting_text = 60, "high frequency"
    else:
        reporting_risk, reporting_text = 5, "normal"
    contributors.append(_contributor(
        d, "symptomReporting", 0.15, week, reporting_risk,
        f"{week} symptom reports this week: {reporting_text}"))

    moods = list(behavioral.mood_scores)
    mood_risk = _mood_risk(moods)
    if mood_risk is None:
        contributors.append(_contributor(d, "moodTrend", 0.20, "N/A", 30, "Mood: no data"))
    else:
        avg = sum(moods) / len(moods)
        contributors.append(_contributor(
            d, "moodTrend", 0.20, round(avg, 1), mood_risk, f"Mood: avg {avg:.1f}/5"))

    if behavioral.sleep_quality_score is not None:
        sleep = behavioral.sleep_quality_score
        contributors.append(_contributor(
            d, "sleepQuality", 0.15, sleep, (10 - sleep) * 10,
            f"Sleep quality {sleep:g}/10: {'poor sleep' if sleep < 5 else 'adequate'}"))

    if behavioral.social_interaction_score is not None:
        social = behavioral.social_interaction_score
        contributors.append(_contributor(
            d, "socialInteraction", 0.10, social, (10 - social) * 10,
            f"Social interaction {social:g}/10: {'isolated' if social < 4 else 'connected'}"))

    return _result(d, contributors)
