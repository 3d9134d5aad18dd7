"""
End-to-end tests for IngestJob: one command file through parser, assembler and
dispatcher against the recording store client.
"""

import httpx

from CloudPost.config import RetryPolicy
from CloudPost.errors import ErrorKind, RetryExhaustedError, UnsupportedElementError
from CloudPost.job import IngestJob
from CloudPost.sources import CommandSource
from conftest import RecordingClient, docs_xml


def run_job(path, client, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=3, wait_seconds=0))
    kwargs.setdefault("sleep", lambda seconds: None)
    return IngestJob(CommandSource(path), client, **kwargs).run()


class TestSuccessfulJobs:
    """Files that post completely."""

    def test_one_document_per_unit(self, client, write_xml):
        path = write_xml(
            "a.xml",
            '<add><doc><field name="id">1</field></doc><doc><field name="id">2</field></doc></add>',
        )
        result = run_job(path, client, batch_size=1)
        assert result.success
        assert result.is_success()
        assert result.source == "a.xml"
        assert result.posted == 2
        assert [[doc["id"] for doc in unit.documents] for unit in client.units] == [["1"], ["2"]]

    def test_delete_file(self, client, write_xml):
        path = write_xml("d.xml", "<delete><id>7</id><id>8</id><id>9</id></delete>")
        result = run_job(path, client)
        assert result.success
        assert result.posted == 3
        assert client.delete_ids == [["7", "8", "9"]]
        assert client.units[0].documents == []

    def test_commit_within_applied(self, client, write_xml):
        path = write_xml("a.xml", docs_xml(3))
        run_job(path, client, commit_within_seconds=30)
        assert client.units[0].commit_within_ms == 30000

    def test_delay_after_success(self, client, write_xml, record_sleep, sleeps):
        path = write_xml("a.xml", docs_xml(1))
        run_job(path, client, delay_seconds=0.5, sleep=record_sleep)
        assert sleeps == [0.5]

    def test_empty_add_posts_nothing(self, client, write_xml):
        path = write_xml("empty.xml", "<add/>")
        result = run_job(path, client)
        assert result.success
        assert result.posted == 0
        assert client.calls == 0

    def test_transient_failure_recovers(self, write_xml):
        client = RecordingClient(failures=[httpx.ConnectError("refused")])
        path = write_xml("a.xml", docs_xml(2))
        result = run_job(path, client)
        assert result.success
        assert result.posted == 2
        assert client.calls == 2


class TestFailedJobs:
    """Failures are captured in the result, never raised."""

    def test_unsupported_command(self, client, write_xml, record_sleep, sleeps):
        path = write_xml("c.xml", "<commit/>")
        result = run_job(path, client, delay_seconds=1, sleep=record_sleep)
        assert not result.success
        assert result.posted == 0
        assert result.error_kind is ErrorKind.UNSUPPORTED_ELEMENT
        assert isinstance(result.error, UnsupportedElementError)
        assert client.calls == 0
        assert sleeps == []

    def test_partial_post_is_counted(self, client, write_xml):
        body = docs_xml(3)[: -len("</add>")] + "<optimize/></add>"
        path = write_xml("p.xml", body)
        result = run_job(path, client, batch_size=2)
        assert not result.success
        assert result.posted == 2
        assert result.error_kind is ErrorKind.UNSUPPORTED_ELEMENT
        assert len(client.units) == 1

    def test_malformed_file(self, client, write_xml):
        path = write_xml("m.xml", '<add><doc><field name="id">1</field></add>')
        result = run_job(path, client)
        assert result.error_kind is ErrorKind.MALFORMED_INPUT

    def test_missing_file(self, client, tmp_path):
        result = run_job(tmp_path / "missing.xml", client)
        assert result.error_kind is ErrorKind.SOURCE_READ

    def test_retry_exhausted(self, write_xml):
        client = RecordingClient(failures=[httpx.ConnectError("down") for _ in range(3)])
        path = write_xml("a.xml", docs_xml(1))
        result = run_job(path, client)
        assert result.error_kind is ErrorKind.RETRY_EXHAUSTED
        assert isinstance(result.error, RetryExhaustedError)
        assert result.posted == 0

    def test_failure_is_logged(self, client, write_xml, caplog):
        path = write_xml("c.xml", "<commit/>")
        with caplog.at_level("ERROR"):
            run_job(path, client)
        assert any(
            "[error posting file c.xml]" in record.getMessage() for record in caplog.records
        )
