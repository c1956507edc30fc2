"""
Meridian Recovery Risk
Post-operative multi-domain risk scoring with Bayesian smoothing, trends and population baselines
"""

from .schema import (PatientRiskInput, RiskAssessment, RiskCategory, RiskTier, AlertSeverity,
                     AlertThreshold, RiskAlert, TrendAnalysis, PopulationComparison, RiskConfig)
from .engine import RiskScoringEngine, create_risk_scoring_engine
from .bayes import PatientStateStore, BayesianSmoother
from .baseline import BaselinePopulation
from .config import load_config
from .errors import RiskEngineError, ValidationError, NotFoundError, ConfigError

__all__ = [
    'PatientRiskInput', 'RiskAssessment', 'RiskCategory', 'RiskTier', 'AlertSeverity',
    'AlertThreshold', 'RiskAlert', 'TrendAnalysis', 'PopulationComparison', 'RiskConfig',
    'RiskScoringEngine', 'create_risk_scoring_engine', 'PatientStateStore', 'BayesianSmoother',
    'BaselinePopulation', 'load_config',
    'RiskEngineError', 'ValidationError', 'NotFoundError', 'ConfigError'
]
