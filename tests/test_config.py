#!/usr/bin/env python3
"""
Unit tests for configuration loading
"""

import pytest
import yaml
import tempfile
from pathlib import Path
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from recovery_risk.config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH, load_config
from recovery_risk.errors import ConfigError, ErrorCode
from recovery_risk.schema import RiskCategory, RiskConfig


class TestLoadConfig:

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_path = Path(self.temp_dir.name) / "recovery_risk.yaml"

    def teardown_method(self):
        self.temp_dir.cleanup()

    def write(self, content):
        with open(self.config_path, 'w') as f:
            if isinstance(content, str):
                f.write(content)
            else:
                yaml.dump(content, f)

    def test_packaged_config_matches_defaults(self):
        assert DEFAULT_CONFIG_PATH.exists()
        config = load_config(DEFAULT_CONFIG_PATH)
        assert config.model_dump() == RiskConfig().model_dump()
        assert all(total == pytest.approx(1.0) for total in config.validate_weights().values())

    def test_missing_file_uses_defaults(self):
        config = load_config(Path(self.temp_dir.name) / "missing.yaml")
        assert config == RiskConfig()

    def test_partial_override(self):
        self.write({
            'readmission_lace_weight': 0.3,
            'trend': {'history_limit': 30},
            'category_weights': {'fall': {'demographics': 0.5, 'surgical': 0.1, 'compliance': 0.1,
                                          'clinical': 0.2, 'behavioral': 0.1}},
        })
        config = load_config(self.config_path)
        assert config.readmission_lace_weight == 0.3
        assert config.trend.history_limit == 30
        assert config.trend.default_days_back == 30
        assert config.category_weights.fall.demographics == 0.5
        assert config.category_weights.overall == RiskConfig().category_weights.overall

    def test_camel_case_keys_accepted(self):
        self.write({'readmissionLaceWeight': 0.25, 'validation': {'strict': False}})
        config = load_config(self.config_path)
        assert config.readmission_lace_weight == 0.25
        assert config.validation.strict is False

    def test_alert_thresholds(self):
        self.write({'alert_thresholds': [
            {'category': 'vitals', 'metric': 'heartRate', 'warning_level': 90,
             'urgent_level': 110, 'critical_level': 130},
        ]})
        config = load_config(self.config_path)
        assert len(config.alert_thresholds) == 1
        assert config.alert_thresholds[0].warning_level == 90

    def test_env_var(self, monkeypatch):
        self.write({'population': {'seed': 7}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(self.config_path))
        assert load_config().population.seed == 7

    def test_malformed_yaml(self):
        self.write("trend: [unclosed\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(self.config_path)
        assert exc_info.value.error_code == ErrorCode.CFG_INVALID_CONFIG
        assert exc_info.value.kind == "invalid_config"

    def test_non_mapping(self):
        self.write("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(self.config_path)

    def test_invalid_values(self):
        self.write({'readmission_lace_weight': 2.0})
        with pytest.raises(ConfigError) as exc_info:
            load_config(self.config_path)
        assert exc_info.value.details["path"] == str(self.config_path)

    def test_unbalanced_weights_warn(self, caplog):
        self.write({'category_weights': {'overall': {'demographics': 0.5, 'surgical': 0.5, 'compliance': 0.5,
                                                     'clinical': 0.5, 'behavioral': 0.5}}})
        config = load_config(self.config_path)
        assert config.validate_weights()[RiskCategory.OVERALL] == pytest.approx(2.5)
        assert "sum to 2.500" in caplog.text

    def test_empty_file(self):
        self.write("")
        assert load_config(self.config_path) == RiskConfig()
