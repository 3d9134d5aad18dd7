"""
Tests for PostConfig models and the file < env < CLI loader.
"""

import json

import pytest
from pydantic import ValidationError

from CloudPost.config import (
    PostConfig,
    RetryPolicy,
    StoreConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)


class TestModels:
    """Defaults and validation."""

    def test_defaults(self):
        config = PostConfig()
        assert config.batch_size == 5000
        assert config.commit_within_s == 120
        assert config.workers == 1
        assert config.delay_s == 0
        assert config.file_types == ["xml", "zip", "gz"]
        assert config.commit is True
        assert config.optimize is False
        assert config.retry == RetryPolicy(max_attempts=3, wait_seconds=10)
        assert config.store.url == "http://localhost:8983/solr"

    @pytest.mark.parametrize(
        "overrides",
        [{"batch_size": 0}, {"workers": 0}, {"delay_s": -1}, {"file_types": []}, {"unknown": 1}],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            PostConfig(**overrides)

    def test_retry_policy_is_frozen(self):
        policy = RetryPolicy()
        with pytest.raises((ValidationError, TypeError)):
            policy.max_attempts = 5  # type: ignore

    def test_retry_policy_needs_one_attempt(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)

    def test_store_url_normalized(self):
        assert StoreConfig(url="http://solr:8983/solr/").url == "http://solr:8983/solr"

    def test_store_url_scheme_required(self):
        with pytest.raises(ValidationError):
            StoreConfig(url="solr:8983")

    def test_file_types_normalized(self):
        assert PostConfig(file_types=[".XML", " zip "]).file_types == ["xml", "zip"]

    def test_config_hash(self):
        assert PostConfig().config_hash() == PostConfig().config_hash()
        assert PostConfig(batch_size=10).config_hash() != PostConfig().config_hash()

    def test_schema_export(self):
        schema = export_config_schema()
        assert "batch_size" in schema["properties"]


class TestLoader:
    """Precedence and file formats."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "cloudpost.yaml"
        path.write_text("batch_size: 100\nstore:\n  collection: articles\n")
        config = load_config(str(path), environ={})
        assert config.batch_size == 100
        assert config.store.collection == "articles"

    def test_json_file(self, tmp_path):
        path = tmp_path / "cloudpost.json"
        path.write_text(json.dumps({"workers": 4, "retry": {"max_attempts": 5}}))
        config = load_config(str(path), environ={})
        assert config.workers == 4
        assert config.retry.max_attempts == 5

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "cloudpost.yaml"
        path.write_text("batch_size: 100\n")
        environ = {
            "CLOUDPOST_BATCH_SIZE": "200",
            "CLOUDPOST_RETRY__WAIT_SECONDS": "1.5",
            "CLOUDPOST_STORE__URL": "http://solr:8983/solr",
            "OTHER_BATCH_SIZE": "1",
        }
        config = load_config(str(path), environ=environ)
        assert config.batch_size == 200
        assert config.retry.wait_seconds == 1.5
        assert config.store.url == "http://solr:8983/solr"

    def test_cli_overrides_env(self):
        config = load_config(
            environ={"CLOUDPOST_WORKERS": "2"},
            cli_overrides={"workers": 8, "batch_size": None, "store": {"collection": "x"}},
        )
        assert config.workers == 8
        assert config.batch_size == 5000
        assert config.store.collection == "x"

    def test_config_path_variable_ignored(self):
        config = load_config(environ={"CLOUDPOST_CONFIG": "/etc/cloudpost.yaml"})
        assert config == PostConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            load_config(str(tmp_path / "missing.yaml"), environ={})

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "cloudpost.toml"
        path.write_text("batch_size = 1\n")
        with pytest.raises(ValueError, match="Unsupported file format"):
            load_config(str(path), environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "cloudpost.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(str(path), environ={})

    def test_validate_config_file(self, tmp_path, monkeypatch):
        path = tmp_path / "cloudpost.yaml"
        path.write_text("batch_size: 0\n")
        monkeypatch.setenv("CLOUDPOST_BATCH_SIZE", "10")
        with pytest.raises(ValueError):
            validate_config_file(str(path))
