"""
Configuration management and loading.

Reads optional overrides for the cache, rate-limit presets, model pricing
and monitor retention from a YAML file.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ai_optimizer.core.cache import DEFAULT_MAX_SIZE, DEFAULT_TTL_MS
from ai_optimizer.core.monitor import DEFAULT_MAX_RECORDS, DEFAULT_RETENTION_DAYS
from ai_optimizer.core.pricing import ModelPricing
from ai_optimizer.core.rate_limit import RateLimitConfig

DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class CacheConfig:
    """Response cache sizing."""
    default_ttl_ms: int = DEFAULT_TTL_MS
    max_size: int = DEFAULT_MAX_SIZE
    single_flight: bool = True

    def __post_init__(self):
        """Validate cache values are positive."""
        if self.default_ttl_ms <= 0:
            raise ValueError("default_ttl_ms must be > 0")
        if self.max_size <= 0:
            raise ValueError("max_size must be > 0")


@dataclass(frozen=True)
class MonitorConfig:
    max_records: int = DEFAULT_MAX_RECORDS
    retention_days: int = DEFAULT_RETENTION_DAYS

    def __post_init__(self):
        if self.max_records <= 0:
            raise ValueError("max_records must be > 0")
        if self.retention_days <= 0:
            raise ValueError("retention_days must be > 0")


@dataclass(frozen=True)
class OptimizerConfig:
    """Complete optimizer configuration.

    ``rate_limits`` and ``pricing`` hold overrides only; they are merged
    over the built-in presets and pricing table when a context is built.
    """
    cache: CacheConfig = field(default_factory=CacheConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    rate_limits: Dict[str, RateLimitConfig] = field(default_factory=dict)
    pricing: Dict[str, ModelPricing] = field(default_factory=dict)
    cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS

    def __post_init__(self):
        if self.cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be > 0")


def load_optimizer_config(path: str) -> OptimizerConfig:
    """Load and validate optimizer configuration from YAML file.

    Unknown keys are rejected so that a typo cannot silently fall back to
    a default limit or rate.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated OptimizerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Optimizer config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    return parse_optimizer_config(raw_config)


def parse_optimizer_config(raw_config: Dict[str, Any]) -> OptimizerConfig:
    """Validate an already-loaded configuration mapping."""
    allowed_top_keys = {'cache', 'rate_limits', 'pricing', 'monitor', 'cleanup'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    cache_data = _section(raw_config, 'cache', {'default_ttl_ms', 'max_size', 'single_flight'})
    cache = CacheConfig(
        default_ttl_ms=_positive_int(cache_data, 'default_ttl_ms', 'cache', DEFAULT_TTL_MS),
        max_size=_positive_int(cache_data, 'max_size', 'cache', DEFAULT_MAX_SIZE),
        single_flight=_bool(cache_data, 'single_flight', 'cache', True),
    )

    monitor_data = _section(raw_config, 'monitor', {'max_records', 'retention_days'})
    monitor = MonitorConfig(
        max_records=_positive_int(monitor_data, 'max_records', 'monitor', DEFAULT_MAX_RECORDS),
        retention_days=_positive_int(monitor_data, 'retention_days', 'monitor', DEFAULT_RETENTION_DAYS),
    )

    cleanup_data = _section(raw_config, 'cleanup', {'interval_seconds'})
    interval = cleanup_data.get('interval_seconds', DEFAULT_CLEANUP_INTERVAL_SECONDS)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ValueError("'interval_seconds' in cleanup must be > 0")

    rate_limits = {}
    for name, preset in _mapping(raw_config, 'rate_limits').items():
        rate_limits[name] = _parse_rate_limit(preset, f"rate_limits.{name}")

    pricing = {}
    for model, rates in _mapping(raw_config, 'pricing').items():
        pricing[model] = _parse_pricing(rates, f"pricing.{model}")

    return OptimizerConfig(
        cache=cache,
        monitor=monitor,
        rate_limits=rate_limits,
        pricing=pricing,
        cleanup_interval_seconds=float(interval),
    )


def _mapping(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _section(raw_config: Dict[str, Any], name: str, allowed_keys: set) -> Dict[str, Any]:
    data = _mapping(raw_config, name)
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _positive_int(data: Dict[str, Any], key: str, path: str, default: int) -> int:
    value = data.get(key, default)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{key}' in {path} must be a positive integer")
    return value


def _bool(data: Dict[str, Any], key: str, path: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' in {path} must be true or false")
    return value


def _parse_rate_limit(data: Any, path: str) -> RateLimitConfig:
    """Parse and validate a rate-limit preset.

    Args:
        data: Preset configuration data
        path: Path for error messages

    Returns:
        Validated RateLimitConfig

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")

    allowed_keys = {'max_requests', 'window_ms'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('max_requests', 'window_ms'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")

    return RateLimitConfig(
        max_requests=_positive_int(data, 'max_requests', path, 0),
        window_ms=_positive_int(data, 'window_ms', path, 0),
    )


def _parse_pricing(data: Any, path: str) -> ModelPricing:
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")

    allowed_keys = {'input_per_1k', 'output_per_1k'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    rates: Dict[str, Decimal] = {}
    for key in ('input_per_1k', 'output_per_1k'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"'{key}' in {path} must be >= 0")
        rates[key] = Decimal(str(value))

    return ModelPricing(**rates)


def default_config() -> OptimizerConfig:
    return OptimizerConfig()


def load_or_default(path: Optional[str]) -> OptimizerConfig:
    """Load ``path`` when given, otherwise the built-in defaults."""
    if path is None:
        return default_config()
    return load_optimizer_config(path)
