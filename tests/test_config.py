import json

import pytest
import yaml

from adaptive_cache.config import AdaptiveCacheConfig
from adaptive_cache.exceptions import ConfigurationError


def test_defaults_are_valid():
    config = AdaptiveCacheConfig()
    config.validate()

    assert config.behavior.max_queries == 10
    assert config.prediction.preload_ttl == 1800
    assert config.invalidation.confidence_threshold == 0.7
    assert config.invalidation.cascade_depth == 1
    assert config.scheduler.prediction_interval == 300


def test_load_yaml_file(tmp_path):
    path = tmp_path / "cache.yaml"
    path.write_text(yaml.safe_dump({
        "prediction": {"max_preloads": 5},
        "invalidation": {"cascade_depth": 2, "unknown_setting": 1},
        "store": {"backend": "redis", "redis_host": "cache.internal"},
    }))

    config = AdaptiveCacheConfig.load_from_file(path)

    assert config.prediction.max_preloads == 5
    assert config.prediction.preload_ttl == 1800
    assert config.invalidation.cascade_depth == 2
    assert config.store.redis_host == "cache.internal"


def test_load_json_file(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"scheduler": {"invalidation_interval": 60}}))

    assert AdaptiveCacheConfig.load_from_file(path).scheduler.invalidation_interval == 60


def test_bad_files_raise_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        AdaptiveCacheConfig.load_from_file(tmp_path / "missing.yaml")

    path = tmp_path / "cache.ini"
    path.write_text("[x]")
    with pytest.raises(ConfigurationError):
        AdaptiveCacheConfig.load_from_file(path)

    with pytest.raises(ConfigurationError):
        AdaptiveCacheConfig.from_dict({"behavior": ["not", "a", "mapping"]})


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ADAPTIVE_CACHE_MAX_PRELOADS", "3")
    monkeypatch.setenv("ADAPTIVE_CACHE_SEED_GRACE_PERIOD", "0")
    monkeypatch.setenv("ADAPTIVE_CACHE_API_ENABLED", "true")
    monkeypatch.setenv("ADAPTIVE_CACHE_LOG_LEVEL", "DEBUG")

    config = AdaptiveCacheConfig.load()

    assert config.prediction.max_preloads == 3
    assert config.invalidation.seed_grace_period == 0.0
    assert config.api.enabled is True
    assert config.logging.level == "DEBUG"


def test_invalid_environment_value(monkeypatch):
    monkeypatch.setenv("ADAPTIVE_CACHE_REDIS_PORT", "not-a-port")

    with pytest.raises(ConfigurationError) as exc_info:
        AdaptiveCacheConfig.load_from_env()
    assert exc_info.value.details["field"] == "ADAPTIVE_CACHE_REDIS_PORT"


def test_validation_rejects_bad_values():
    config = AdaptiveCacheConfig.from_dict({"invalidation": {"min_confidence": 0}})
    with pytest.raises(ConfigurationError):
        config.validate()

    config = AdaptiveCacheConfig.from_dict({"store": {"backend": "memcached"}})
    with pytest.raises(ConfigurationError):
        config.validate()


def test_to_dict_masks_password():
    config = AdaptiveCacheConfig.from_dict({"store": {"redis_password": "secret"}})

    assert config.to_dict()["store"]["redis_password"] == "***"
    assert config.store.redis_password == "secret"
