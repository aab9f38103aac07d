"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for optimizer configs.
"""

import os
import shutil
import tempfile
from decimal import Decimal

import pytest
import yaml

from ai_optimizer.config.loader import (
    CacheConfig,
    OptimizerConfig,
    load_optimizer_config,
    load_or_default,
    parse_optimizer_config,
)
from ai_optimizer.core.context import OptimizationContext
from ai_optimizer.core.pricing import ModelPricing
from ai_optimizer.core.rate_limit import RATE_LIMITS, RateLimitConfig


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        config_data = {
            "cache": {"default_ttl_ms": 5000, "max_size": 50, "single_flight": False},
            "rate_limits": {
                "ai_summary": {"max_requests": 2, "window_ms": 1000},
                "batch": {"max_requests": 1, "window_ms": 60000},
            },
            "pricing": {"local-llm": {"input_per_1k": 0, "output_per_1k": 0.0001}},
            "monitor": {"max_records": 100, "retention_days": 7},
            "cleanup": {"interval_seconds": 30},
        }

        config = load_optimizer_config(self._write_config(config_data))

        # Verify cache
        assert config.cache == CacheConfig(default_ttl_ms=5000, max_size=50, single_flight=False)

        # Verify presets and pricing
        assert config.rate_limits["ai_summary"] == RateLimitConfig(max_requests=2, window_ms=1000)
        assert config.rate_limits["batch"].window_ms == 60000
        assert config.pricing["local-llm"] == ModelPricing(Decimal("0"), Decimal("0.0001"))

        assert config.monitor.retention_days == 7
        assert config.cleanup_interval_seconds == 30.0

    def test_missing_sections_use_defaults(self):
        config = load_optimizer_config(self._write_config({"monitor": {"retention_days": 3}}))

        assert config.cache == CacheConfig()
        assert config.rate_limits == {}
        assert config.pricing == {}
        assert config.monitor.retention_days == 3

    def test_empty_file_fails(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("")

        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_optimizer_config(config_path)

    def test_missing_file_fails(self):
        with pytest.raises(FileNotFoundError):
            load_optimizer_config(os.path.join(self.temp_dir, "nope.yaml"))

    def test_invalid_yaml_fails(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("cache: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_optimizer_config(config_path)

    def test_non_mapping_fails(self):
        with pytest.raises(ValueError, match="must be a dictionary"):
            load_optimizer_config(self._write_config(["cache"]))


class TestStrictValidation:
    """Typos and bad values are rejected rather than defaulted."""

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_optimizer_config({"caches": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown keys in cache"):
            parse_optimizer_config({"cache": {"ttl": 10}})

    def test_non_positive_max_size(self):
        with pytest.raises(ValueError, match="'max_size' in cache must be a positive integer"):
            parse_optimizer_config({"cache": {"max_size": 0}})

    def test_bool_is_not_an_integer(self):
        with pytest.raises(ValueError, match="positive integer"):
            parse_optimizer_config({"cache": {"max_size": True}})

    def test_single_flight_must_be_bool(self):
        with pytest.raises(ValueError, match="true or false"):
            parse_optimizer_config({"cache": {"single_flight": "yes"}})

    def test_rate_limit_requires_window(self):
        with pytest.raises(ValueError, match="Missing required 'window_ms' in rate_limits.ai_quiz"):
            parse_optimizer_config({"rate_limits": {"ai_quiz": {"max_requests": 3}}})

    def test_negative_price(self):
        with pytest.raises(ValueError, match="must be >= 0"):
            parse_optimizer_config({"pricing": {"gpt-4": {"input_per_1k": -1, "output_per_1k": 0}}})

    def test_cleanup_interval_must_be_positive(self):
        with pytest.raises(ValueError, match="interval_seconds"):
            parse_optimizer_config({"cleanup": {"interval_seconds": 0}})


class TestDefaultsAndContext:

    def test_load_or_default_without_path(self):
        assert load_or_default(None) == OptimizerConfig()

    def test_context_merges_overrides(self, clock):
        config = parse_optimizer_config({
            "cache": {"max_size": 5},
            "rate_limits": {"ai_summary": {"max_requests": 1, "window_ms": 1000}},
            "pricing": {"gpt-4": {"input_per_1k": 1, "output_per_1k": 1}},
            "monitor": {"retention_days": 2},
        })

        context = OptimizationContext.from_config(config, clock=clock)

        assert context.cache.max_size == 5
        assert context.rate_limit("ai_summary") == RateLimitConfig(1, 1000)
        assert context.rate_limit("general") == RATE_LIMITS["general"]
        assert context.retention_days == 2

        record = context.monitor.record_usage("quiz", "gpt-4", 1000, 1000)
        assert record.cost == pytest.approx(2.0)

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown rate limit preset"):
            OptimizationContext().rate_limit("nope")
