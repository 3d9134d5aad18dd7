"""
CLI tests using Typer's CliRunner.

The store client factory is replaced with the in-memory recording client, so
the real discovery, parsing, batching and scheduling path runs end to end.
"""

import json

import pytest
from typer.testing import CliRunner

from CloudPost import cli
from CloudPost.errors import PoolTimeoutError
from conftest import RecordingClient, docs_xml

runner = CliRunner()


class ContextClient(RecordingClient):
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None


@pytest.fixture
def store(monkeypatch):
    fake = ContextClient()
    created = []

    class Factory:
        @staticmethod
        def from_config(config):
            created.append(config)
            return fake

    monkeypatch.setattr(cli, "SolrUpdateClient", Factory)
    for name in ("CLOUDPOST_CONFIG", "CLOUDPOST_WORKERS", "CLOUDPOST_BATCH_SIZE"):
        monkeypatch.delenv(name, raising=False)
    fake.created = created
    return fake


class TestPostCommand:
    """Exit codes and summaries of ``post``."""

    def test_success(self, store, write_xml):
        path = write_xml("a.xml", docs_xml(3))
        result = runner.invoke(cli.app, ["post", str(path), "--batch-size", "2"])
        assert result.exit_code == 0, result.output
        assert "All files posted" in result.output
        assert [unit.operation_count for unit in store.units] == [2, 1]
        assert store.commits == 1

    def test_store_options_reach_client_factory(self, store, write_xml):
        path = write_xml("a.xml", docs_xml(1))
        result = runner.invoke(
            cli.app,
            ["post", str(path), "--url", "http://solr:8983/solr/", "--collection", "articles"],
        )
        assert result.exit_code == 0, result.output
        (config,) = store.created
        assert config.url == "http://solr:8983/solr"
        assert config.collection == "articles"

    def test_partial_failure_exit_code(self, store, write_xml, tmp_path):
        write_xml("a.xml", docs_xml(2))
        write_xml("b.xml", "<commit/>")
        result = runner.invoke(cli.app, ["post", str(tmp_path), "--workers", "2", "--no-commit"])
        assert result.exit_code == 1
        assert "b.xml" in result.output
        assert store.total_operations == 2
        assert store.commits == 0

    def test_json_summary(self, store, write_xml):
        path = write_xml("a.xml", docs_xml(4))
        result = runner.invoke(cli.app, ["post", str(path), "--json"])
        assert result.exit_code == 0
        record = json.loads(result.stdout)
        assert record["files_processed"] == 1
        assert record["total_posted"] == 4
        assert record["failures"] == []

    def test_invalid_option_value(self, store, write_xml):
        path = write_xml("a.xml", docs_xml(1))
        result = runner.invoke(cli.app, ["post", str(path), "--batch-size", "0"])
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output
        assert store.calls == 0

    def test_pool_timeout_terminates(self, store, write_xml, monkeypatch):
        path = write_xml("a.xml", docs_xml(1))

        def timeout(*args, **kwargs):
            raise PoolTimeoutError(1.0, pending=1)

        def terminate(code):
            raise SystemExit(code)

        monkeypatch.setattr(cli, "post_files", timeout)
        monkeypatch.setattr(cli, "_terminate", terminate)
        result = runner.invoke(cli.app, ["post", str(path)])
        assert result.exit_code == 2
        assert "FATAL" in result.output


class TestPrintConfig:
    """Effective configuration output."""

    def test_prints_merged_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CLOUDPOST_CONFIG", raising=False)
        path = tmp_path / "cloudpost.yaml"
        path.write_text("batch_size: 42\n")
        monkeypatch.setenv("CLOUDPOST_WORKERS", "3")
        result = runner.invoke(cli.app, ["print-config", "--config", str(path)])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["batch_size"] == 42
        assert payload["workers"] == 3

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "cloudpost.yaml"
        path.write_text("workers: 0\n")
        result = runner.invoke(cli.app, ["print-config", "--config", str(path)])
        assert result.exit_code == 2
