#!/usr/bin/env python3
"""
API tests for the recovery risk blueprint
"""

import pytest
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.app import create_app
from recovery_risk.baseline import BaselinePopulation
from recovery_risk.engine import RiskScoringEngine
from services.risk_summary import RiskSummaryService

BASE = "/api/recovery-risk"


@pytest.fixture(scope="module")
def population():
    return BaselinePopulation.generate()


@pytest.fixture
def client(clock, population):
    engine = RiskScoringEngine(population=population, clock=clock)
    app = create_app(engine=engine, summary_service=RiskSummaryService())
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def healthy_payload(recovery_fixtures):
    return recovery_fixtures["patients"]["healthy"]


@pytest.fixture
def critical_payload(recovery_fixtures):
    return recovery_fixtures["patients"]["critical"]


class TestAssessment:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "baseline_profiles": 210, "tracked_patients": 0}

    def test_assess(self, client, critical_payload):
        response = client.post(f'{BASE}/assess', json=critical_payload)
        assert response.status_code == 200

        data = response.get_json()
        assert data["patientId"] == "patient-critical"
        assert data["overallRisk"]["tier"] == "critical"
        assert data["laceIndexScore"] == 16
        assert data["charlsonComorbidityIndex"] == 12
        assert "medicationNonAdherenceRisk" in data
        assert data["alerts"][0]["severity"] == "critical"

    def test_invalid_input(self, client, healthy_payload):
        payload = {**healthy_payload, "clinical": {**healthy_payload["clinical"], "pain_level": 14}}
        response = client.post(f'{BASE}/assess', json=payload)
        assert response.status_code == 400
        data = response.get_json()
        assert data["kind"] == "invalid_input"
        assert data["details"]["field"] == "clinical.pain_level"

    def test_missing_section(self, client, healthy_payload):
        payload = {key: value for key, value in healthy_payload.items() if key != "surgical"}
        response = client.post(f'{BASE}/assess', json=payload)
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "surgical"

    def test_non_json_body(self, client):
        response = client.post(f'{BASE}/assess', data="not json", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "APP_001"


class TestPatientState:

    def test_trend(self, client, healthy_payload):
        client.post(f'{BASE}/assess', json=healthy_payload)
        response = client.get(f'{BASE}/patients/patient-healthy/trend/overall?days_back=14')
        assert response.status_code == 200
        data = response.get_json()
        assert data["category"] == "overall"
        assert data["direction"] == "stable"
        assert data["daysAnalyzed"] == 1

    def test_trend_window_past_earliest_date(self, client, healthy_payload):
        client.post(f'{BASE}/assess', json=healthy_payload)
        response = client.get(f'{BASE}/patients/patient-healthy/trend/overall?days_back=1000000')
        assert response.status_code == 200
        assert response.get_json()["daysAnalyzed"] == 1

    def test_unknown_trend_category(self, client):
        response = client.get(f'{BASE}/patients/p1/trend/cardiac')
        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"

    def test_history(self, client):
        point = {"timestamp": "2026-02-20T12:00:00Z", "overallRisk": 40, "infectionRisk": 30,
                 "readmissionRisk": 35, "fallRisk": 20, "mentalHealthRisk": 25, "medicationRisk": 15}
        response = client.post(f'{BASE}/patients/p1/history', json=point)
        assert response.status_code == 201
        assert response.get_json()["history_length"] == 1

        data = client.get(f'{BASE}/patients/p1/history').get_json()
        assert data["count"] == 1
        assert data["history"][0]["overallRisk"] == 40

    def test_invalid_history_point(self, client):
        response = client.post(f'{BASE}/patients/p1/history', json={"timestamp": "2026-02-20T12:00:00Z"})
        assert response.status_code == 400

    def test_assessment_count_and_reset(self, client, healthy_payload):
        assert client.get(f'{BASE}/patients/patient-healthy/assessment-count').get_json()["assessment_count"] == 0
        client.post(f'{BASE}/assess', json=healthy_payload)
        client.post(f'{BASE}/assess', json=healthy_payload)
        assert client.get(f'{BASE}/patients/patient-healthy/assessment-count').get_json()["assessment_count"] == 2

        assert client.post(f'{BASE}/patients/patient-healthy/reset-priors').status_code == 200
        assert client.get(f'{BASE}/patients/patient-healthy/assessment-count').get_json()["assessment_count"] == 0
        assert client.get(f'{BASE}/patients/patient-healthy/history').get_json()["count"] == 2

        assert client.post(f'{BASE}/patients/unknown/reset-priors').status_code == 404

    def test_clear_patient(self, client, healthy_payload):
        client.post(f'{BASE}/assess', json=healthy_payload)
        assert client.delete(f'{BASE}/patients/patient-healthy').status_code == 200
        assert client.get(f'{BASE}/patients/patient-healthy/history').get_json()["count"] == 0
        assert client.delete(f'{BASE}/patients/patient-healthy').status_code == 404


class TestPopulation:

    def test_stats(self, client):
        data = client.get(f'{BASE}/population/stats').get_json()
        assert set(data) == {"overall", "infection", "readmission", "fall", "mentalHealth", "medication"}
        assert data["overall"]["stdDev"] > 0

    def test_compare(self, client):
        response = client.get(f'{BASE}/population/fall?score=50')
        assert response.status_code == 200
        data = response.get_json()
        assert data["category"] == "fall"
        assert 0 <= data["percentile"] <= 100
        assert data["comparisonGroup"].startswith("All post-operative patients")

    def test_compare_subgroup(self, client):
        response = client.get(f'{BASE}/population/overall?score=50&age_group=65-74')
        assert response.status_code == 200
        assert response.get_json()["patientScore"] == 50

    def test_compare_requires_score(self, client):
        response = client.get(f'{BASE}/population/overall')
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "score"

    def test_compare_unknown_category(self, client):
        assert client.get(f'{BASE}/population/cardiac?score=50').status_code == 404

    def test_invalid_subgroup(self, client):
        assert client.get(f'{BASE}/population/overall?score=50&age_group=toddler').status_code == 400

    def test_profiles(self, client):
        data = client.get(f'{BASE}/baseline/profiles').get_json()
        assert data["count"] == 210
        assert data["profiles"][0]["id"] == "baseline-000"

    def test_filtered_profiles(self, client):
        data = client.get(f'{BASE}/baseline/profiles?surgery_complexity=major&min_overall_risk=30').get_json()
        assert all(p["surgeryComplexity"] == "major" for p in data["profiles"])
        assert all(p["overallRiskScore"] >= 30 for p in data["profiles"])

    def test_summary(self, client):
        data = client.get(f'{BASE}/baseline/summary').get_json()
        assert data["all"]["n"] == 210
        grouped = client.get(f'{BASE}/baseline/summary?group_by=age_group').get_json()
        assert sum(entry["n"] for entry in grouped.values()) == 210
        assert client.get(f'{BASE}/baseline/summary?group_by=gender').status_code == 400


class TestThresholds:

    def test_list(self, client):
        data = client.get(f'{BASE}/thresholds').get_json()
        assert len(data["thresholds"]) == 11

    def test_add_and_remove(self, client):
        threshold = {"category": "vitals", "metric": "bloodPressure", "warningLevel": 1,
                     "urgentLevel": 2, "criticalLevel": 3}
        assert client.post(f'{BASE}/thresholds', json=threshold).status_code == 400

        threshold = {"category": "custom", "metric": "heartRate", "warningLevel": 95,
                     "urgentLevel": 115, "criticalLevel": 135}
        response = client.post(f'{BASE}/thresholds', json=threshold)
        assert response.status_code == 201
        assert len(client.get(f'{BASE}/thresholds').get_json()["thresholds"]) == 12

        assert client.delete(f'{BASE}/thresholds/custom/heartRate').status_code == 200
        assert client.delete(f'{BASE}/thresholds/custom/heartRate').status_code == 404

    def test_update(self, client):
        response = client.patch(f'{BASE}/thresholds/vitals/heartRate', json={"warningLevel": 95})
        assert response.status_code == 200
        assert response.get_json()["warningLevel"] == 95

        response = client.patch(f'{BASE}/thresholds/vitals/heartRate', json={"enabled": False})
        assert response.get_json()["enabled"] is False

    def test_update_unknown(self, client):
        assert client.patch(f'{BASE}/thresholds/vitals/unknownMetric', json={"warningLevel": 1}).status_code == 404

    def test_update_out_of_order(self, client):
        response = client.patch(f'{BASE}/thresholds/vitals/heartRate', json={"warning_level": 150})
        assert response.status_code == 400


class TestUtilities:

    def test_charlson(self, client):
        response = client.post(f'{BASE}/indices/charlson', json={"comorbidities": ["chf", "diabetes"], "age": 55})
        assert response.status_code == 200
        assert response.get_json() == {"charlson_comorbidity_index": 3}

    def test_charlson_requires_age(self, client):
        assert client.post(f'{BASE}/indices/charlson', json={"comorbidities": []}).status_code == 400

    @pytest.mark.parametrize("field", ["length_of_stay_days", "ed_visits"])
    def test_lace_rejects_non_numeric(self, client, field):
        body = {"is_emergency": True, "charlson": 3, field: "5"}
        response = client.post(f'{BASE}/indices/lace', json=body)
        assert response.status_code == 400
        data = response.get_json()
        assert data["error_code"] == "APP_001"
        assert data["details"]["field"] == field

    def test_lace_accepts_null_values(self, client):
        body = {"length_of_stay_days": None, "is_emergency": False, "charlson": 0, "ed_visits": None}
        assert client.post(f'{BASE}/indices/lace', json=body).get_json() == {"lace_index_score": 1}

    def test_charlson_rejects_non_list_comorbidities(self, client):
        response = client.post(f'{BASE}/indices/charlson', json={"comorbidities": 5, "age": 60})
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "comorbidities"

    def test_charlson_rejects_unknown_comorbidity(self, client):
        response = client.post(f'{BASE}/indices/charlson', json={"comorbidities": ["gout"], "age": 60})
        assert response.status_code == 400

    def test_lace(self, client):
        response = client.post(f'{BASE}/indices/lace', json={"length_of_stay_days": 3, "is_emergency": True,
                                                             "charlson": 2, "ed_visits": 1})
        assert response.get_json() == {"lace_index_score": 9}

    def test_care_team_summary(self, client, critical_payload):
        assessment = client.post(f'{BASE}/assess', json=critical_payload).get_json()
        response = client.post(f'{BASE}/summary', json={"assessment": assessment, "days_back": 7})
        assert response.status_code == 200
        data = response.get_json()
        assert data["patient_id"] == "patient-critical"
        assert data["total_categories"] == 6
        assert data["alerts_by_severity"]["critical"]

    def test_summary_requires_assessment(self, client):
        assert client.post(f'{BASE}/summary', json={}).status_code == 400


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
