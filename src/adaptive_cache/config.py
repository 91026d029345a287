"""Adaptive cache configuration.

Every section has working defaults. Values can be overridden from a YAML or
JSON file and then from ``ADAPTIVE_CACHE_*`` environment variables.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class BehaviorConfig:
    """Session behavior tracking limits."""
    max_queries: int = 10
    max_categories: int = 5
    max_time_points: int = 20
    max_frequency_points: int = 20
    max_sessions: int = 1000
    retention_seconds: float = 24 * 3600
    active_window_seconds: float = 3600


@dataclass
class PredictionConfig:
    """Prediction and preload thresholds."""
    score_threshold: float = 0.6
    probability_threshold: float = 0.6
    high_priority_probability: float = 0.8
    preload_confidence_threshold: float = 0.7
    max_preloads: int = 10
    preload_ttl: int = 1800  # 30 minutes
    recent_queries: int = 3
    recent_categories: int = 2
    recency_window_seconds: float = 24 * 3600
    api_probability: float = 0.7
    api_confidence: float = 0.8
    search_access_offset: float = 300
    category_access_offset: float = 600
    api_access_offset: float = 120


@dataclass
class InvalidationConfig:
    """Pattern scan, rule execution and cascade settings."""
    confidence_threshold: float = 0.7
    update_ttl: int = 3600
    min_confidence: float = 0.1
    max_confidence: float = 1.0
    frequency_saturation: int = 10
    recency_window_seconds: float = 24 * 3600
    seed_grace_period: float = 3600
    cascade_depth: int = 1
    max_keys_per_pattern: int = 10000


@dataclass
class SchedulerConfig:
    """Background cycle timing."""
    prediction_interval: float = 300
    invalidation_interval: float = 300
    run_on_start: bool = False
    store_timeout: float = 5.0
    max_concurrent_operations: int = 10


@dataclass
class StoreConfig:
    """Cache store backend selection."""
    backend: str = "memory"  # "memory", "redis"
    max_entries: int = 10000
    default_ttl: int = 300
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    scan_count: int = 500


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class ApiConfig:
    """Introspection HTTP server settings."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8010
    prefix: str = "/cache"


@dataclass
class AdaptiveCacheConfig:
    """Top-level configuration."""
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    invalidation: InvalidationConfig = field(default_factory=InvalidationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    _SECTIONS = {
        "behavior": BehaviorConfig,
        "prediction": PredictionConfig,
        "invalidation": InvalidationConfig,
        "scheduler": SchedulerConfig,
        "store": StoreConfig,
        "logging": LoggingConfig,
        "api": ApiConfig,
    }

    # env var -> (section, field, converter)
    _ENV_MAPPINGS = {
        "ADAPTIVE_CACHE_MAX_SESSIONS": ("behavior", "max_sessions", int),
        "ADAPTIVE_CACHE_SESSION_RETENTION": ("behavior", "retention_seconds", float),
        "ADAPTIVE_CACHE_PREDICTION_THRESHOLD": ("prediction", "score_threshold", float),
        "ADAPTIVE_CACHE_MAX_PRELOADS": ("prediction", "max_preloads", int),
        "ADAPTIVE_CACHE_PRELOAD_TTL": ("prediction", "preload_ttl", int),
        "ADAPTIVE_CACHE_CONFIDENCE_THRESHOLD": ("invalidation", "confidence_threshold", float),
        "ADAPTIVE_CACHE_SEED_GRACE_PERIOD": ("invalidation", "seed_grace_period", float),
        "ADAPTIVE_CACHE_CASCADE_DEPTH": ("invalidation", "cascade_depth", int),
        "ADAPTIVE_CACHE_PREDICTION_INTERVAL": ("scheduler", "prediction_interval", float),
        "ADAPTIVE_CACHE_INVALIDATION_INTERVAL": ("scheduler", "invalidation_interval", float),
        "ADAPTIVE_CACHE_STORE_TIMEOUT": ("scheduler", "store_timeout", float),
        "ADAPTIVE_CACHE_STORE_BACKEND": ("store", "backend", str),
        "ADAPTIVE_CACHE_REDIS_HOST": ("store", "redis_host", str),
        "ADAPTIVE_CACHE_REDIS_PORT": ("store", "redis_port", int),
        "ADAPTIVE_CACHE_REDIS_DB": ("store", "redis_db", int),
        "ADAPTIVE_CACHE_REDIS_PASSWORD": ("store", "redis_password", str),
        "ADAPTIVE_CACHE_LOG_LEVEL": ("logging", "level", str),
        "ADAPTIVE_CACHE_LOG_FILE": ("logging", "file_path", str),
        "ADAPTIVE_CACHE_API_ENABLED": ("api", "enabled", bool),
        "ADAPTIVE_CACHE_API_HOST": ("api", "host", str),
        "ADAPTIVE_CACHE_API_PORT": ("api", "port", int),
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptiveCacheConfig":
        """Build a configuration from a nested dict, ignoring unknown sections."""
        config = cls()
        for section, section_cls in cls._SECTIONS.items():
            section_data = data.get(section)
            if not section_data:
                continue
            if not isinstance(section_data, dict):
                raise ConfigurationError(f"Section '{section}' must be a mapping", field_name=section)
            known = {f.name for f in fields(section_cls)}
            unknown = set(section_data) - known
            if unknown:
                logger.warning(f"Ignoring unknown {section} settings: {sorted(unknown)}")
            values = {k: v for k, v in section_data.items() if k in known}
            setattr(config, section, section_cls(**values))
        return config

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> "AdaptiveCacheConfig":
        """Load configuration from a YAML or JSON file."""
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}", field_name="path")

        with open(config_file, "r", encoding="utf-8") as f:
            if config_file.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            elif config_file.suffix.lower() == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported configuration file format: {config_file.suffix}",
                    field_name="path"
                )

        config = cls.from_dict(data)
        logger.info(f"Loaded configuration from {config_file}")
        return config

    @classmethod
    def load_from_env(cls, base: Optional["AdaptiveCacheConfig"] = None) -> "AdaptiveCacheConfig":
        """Apply ``ADAPTIVE_CACHE_*`` environment overrides on top of ``base``."""
        config = base or cls()
        for env_var, (section, field_name, converter) in cls._ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            try:
                if converter is bool:
                    converted = value.lower() in ("true", "1", "yes", "on")
                else:
                    converted = converter(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for {env_var}: {value!r}", field_name=env_var
                ) from e
            setattr(getattr(config, section), field_name, converted)
            logger.debug(f"Environment override: {env_var} -> {section}.{field_name}")
        return config

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "AdaptiveCacheConfig":
        """Defaults, then the optional file, then the environment; validated."""
        config = cls.load_from_file(path) if path else cls()
        config = cls.load_from_env(config)
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values the engines cannot work with."""
        checks = [
            (self.behavior.max_sessions > 0, "behavior.max_sessions"),
            (self.behavior.max_queries > 0, "behavior.max_queries"),
            (self.behavior.max_categories > 0, "behavior.max_categories"),
            (self.behavior.max_time_points > 0, "behavior.max_time_points"),
            (self.behavior.retention_seconds > 0, "behavior.retention_seconds"),
            (0 <= self.prediction.score_threshold <= 1, "prediction.score_threshold"),
            (0 <= self.prediction.probability_threshold <= 1, "prediction.probability_threshold"),
            (self.prediction.max_preloads >= 0, "prediction.max_preloads"),
            (self.prediction.preload_ttl > 0, "prediction.preload_ttl"),
            (0 <= self.invalidation.confidence_threshold <= 1, "invalidation.confidence_threshold"),
            (0 < self.invalidation.min_confidence <= self.invalidation.max_confidence <= 1,
             "invalidation.min_confidence"),
            (self.invalidation.seed_grace_period >= 0, "invalidation.seed_grace_period"),
            (self.invalidation.cascade_depth >= 1, "invalidation.cascade_depth"),
            (self.scheduler.prediction_interval > 0, "scheduler.prediction_interval"),
            (self.scheduler.invalidation_interval > 0, "scheduler.invalidation_interval"),
            (self.scheduler.store_timeout > 0, "scheduler.store_timeout"),
            (self.scheduler.max_concurrent_operations > 0, "scheduler.max_concurrent_operations"),
            (self.store.backend in ("memory", "redis"), "store.backend"),
            (self.logging.level.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
             "logging.level"),
        ]
        for ok, field_name in checks:
            if not ok:
                raise ConfigurationError(f"Invalid configuration value: {field_name}", field_name=field_name)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["store"].get("redis_password"):
            data["store"]["redis_password"] = "***"
        return data
