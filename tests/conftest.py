"""
Shared fixtures for the recovery risk tests
"""

import json
import sys
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery_risk.engine import RiskScoringEngine
from recovery_risk.schema import PatientRiskInput

FIXTURES_PATH = Path(__file__).parent / "fixtures" / "recovery" / "sample_patients.json"

ASSESSMENT_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def load_recovery_fixtures():
    with open(FIXTURES_PATH, 'r') as f:
        return json.load(f)


class FixedClock:
    """Clock that only moves when a test advances it"""

    def __init__(self, now: datetime = ASSESSMENT_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope="session")
def recovery_fixtures():
    return load_recovery_fixtures()


@pytest.fixture
def healthy_input(recovery_fixtures):
    return PatientRiskInput.model_validate(recovery_fixtures["patients"]["healthy"])


@pytest.fixture
def critical_input(recovery_fixtures):
    return PatientRiskInput.model_validate(recovery_fixtures["patients"]["critical"])


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(clock):
    return RiskScoringEngine(clock=clock)
