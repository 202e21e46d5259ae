"""Tests for the bulktag CLI commands.

Runs the Typer app against a temporary SQLite file with the Shopify
client replaced by the in-memory fake.
"""

import json
import os
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from src.cli.main import EXIT_ABORTED, EXIT_OK, EXIT_RECORD_FAILURES, app
from src.db.connection import Database
from src.db.models import JobStatus, OperationType
from src.services.job_models import JobSpec
from src.services.job_recorder import JobRecorder
from tests.helpers import FakeTagClient

runner = CliRunner()


@pytest.fixture
def db_url(monkeypatch, tmp_path) -> str:
    """Point the CLI at a fresh database with pacing and backoff disabled."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in list(os.environ):
        if key.startswith("BULKTAG_"):
            monkeypatch.delenv(key)
    url = f"sqlite:///{tmp_path / 'state.db'}"
    monkeypatch.setenv("BULKTAG_DATABASE_URL", url)
    monkeypatch.setenv("BULKTAG_SHOPIFY_SHOP", "demo")
    monkeypatch.setenv("BULKTAG_ENGINE_PACING_INTERVAL_MS", "0")
    monkeypatch.setenv("BULKTAG_ENGINE_RETRY_BASE_DELAY_MS", "0")
    return url


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("src.cli.main.configure_logging"):
        yield


@pytest.fixture
def fake():
    client = FakeTagClient(products={"1": ["a"], "2": ["a", "sale"], "3": []})
    with patch("src.cli.main.build_tag_client", return_value=client):
        yield client


def _jobs(url: str) -> list:
    with Database(url) as database, database.session_scope() as session:
        return [
            JobRecorder(session).get_job_summary(job.id)
            for job in JobRecorder(session).list_jobs()
        ]


class TestRunCommands:
    """Tests for run add/remove/replace."""

    def test_add_success(self, db_url, fake):
        result = runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1", "--id", "2"])

        assert result.exit_code == EXIT_OK, result.output
        assert fake.products["1"] == ["a", "sale"]
        assert len(fake.writes()) == 1
        assert fake.closed is True
        [job] = _jobs(db_url)
        assert job["status"] == "completed"
        assert job["shop"] == "demo"

    def test_json_output(self, db_url, fake):
        result = runner.invoke(
            app, ["run", "remove", "--tag", "sale", "--id", "2", "--json"]
        )

        assert result.exit_code == EXIT_OK, result.output
        parsed = json.loads(result.output)
        assert parsed["status"] == "completed"
        assert parsed["write_count"] == 1

    def test_replace_with_ids_file(self, db_url, fake, tmp_path):
        ids_file = tmp_path / "ids.txt"
        ids_file.write_text("# products\n1\n\n2  # second\n")

        result = runner.invoke(
            app,
            ["run", "replace", "--old-tag", "a", "--tag", "b", "--ids-file", str(ids_file)],
        )

        assert result.exit_code == EXIT_OK, result.output
        assert fake.products["1"] == ["b"]
        assert fake.products["2"] == ["b", "sale"]

    def test_record_failures_exit_code(self, db_url, fake):
        """A completed job with failed records exits 1."""
        result = runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1", "--id", "404"])

        assert result.exit_code == EXIT_RECORD_FAILURES
        assert "record 404 not found" in result.output

    def test_no_ids_aborts(self, db_url, fake):
        result = runner.invoke(app, ["run", "add", "--tag", "sale"])
        assert result.exit_code == EXIT_ABORTED
        assert _jobs(db_url) == []

    def test_invalid_tag_aborts_before_job(self, db_url, fake):
        result = runner.invoke(app, ["run", "add", "--tag", "  ", "--id", "1"])
        assert result.exit_code == EXIT_ABORTED
        assert _jobs(db_url) == []

    def test_unconfigured_shopify_aborts(self, db_url):
        """Without the fake, the real factory needs credentials."""
        result = runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1"])
        assert result.exit_code == EXIT_ABORTED
        assert "not configured" in result.output

    def test_auth_failure_fails_job(self, db_url, fake):
        fake.fail_writes("1", times=1, retryable=False, code="E-5001")

        result = runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1"])

        assert result.exit_code == EXIT_RECORD_FAILURES
        [job] = _jobs(db_url)
        assert job["failed_count"] == 1

    def test_batch_size_from_preferences(self, db_url, fake):
        """Stored preference is used when --batch-size is absent."""
        assert runner.invoke(app, ["prefs", "set-batch-size", "1"]).exit_code == EXIT_OK

        with patch("src.services.pacer.Pacer.wait") as wait:
            result = runner.invoke(
                app, ["run", "add", "--tag", "x", "--id", "1", "--id", "2", "--id", "3"]
            )

        assert result.exit_code == EXIT_OK, result.output
        assert wait.await_count == 2


class TestJobCommands:
    """Tests for job list/show."""

    def test_list_and_show(self, db_url, fake):
        runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1"])
        [job] = _jobs(db_url)

        listed = json.loads(runner.invoke(app, ["job", "list", "--json"]).output)
        assert [j["id"] for j in listed] == [job["id"]]

        shown = runner.invoke(app, ["job", "show", job["id"], "--json"])
        assert shown.exit_code == EXIT_OK
        assert json.loads(shown.output)["success_count"] == 1

    def test_list_status_filter(self, db_url, fake):
        runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1"])
        result = runner.invoke(app, ["job", "list", "--status", "failed"])
        assert "No jobs found." in result.output

    def test_show_unknown_job(self, db_url):
        result = runner.invoke(app, ["job", "show", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestOtherCommands:
    """Tests for tags, recover, prefs and config."""

    def test_tags_top(self, db_url, fake):
        runner.invoke(app, ["run", "add", "--tag", "summer", "--id", "1"])
        result = runner.invoke(app, ["tags", "top", "--json"])
        assert json.loads(result.output)[0]["tag_name"] == "summer"

    def test_recover_fails_interrupted_job(self, db_url):
        with Database(db_url) as database, database.session_scope() as session:
            recorder = JobRecorder(session)
            job = recorder.create(
                JobSpec(
                    shop="demo",
                    operation=OperationType.add_tag,
                    tag_value="sale",
                    old_tag_value=None,
                    product_ids=["1", "2"],
                )
            )
            recorder.set_status(job.id, JobStatus.in_progress)
            job_id = job.id

        result = runner.invoke(app, ["recover"])

        assert result.exit_code == EXIT_OK, result.output
        assert "marked failed" in result.output
        [summary] = _jobs(db_url)
        assert summary["id"] == job_id
        assert summary["status"] == "failed"

    def test_recover_nothing(self, db_url):
        result = runner.invoke(app, ["recover"])
        assert "No interrupted jobs" in result.output

    def test_prefs_rejects_bad_size(self, db_url):
        result = runner.invoke(app, ["prefs", "set-batch-size", "500"])
        assert result.exit_code == 1

    def test_prefs_show(self, db_url):
        result = runner.invoke(app, ["prefs", "show", "--json"])
        assert json.loads(result.output)["default_batch_size"] == 10

    def test_config_show_masks_token(self, db_url, monkeypatch):
        monkeypatch.setenv("BULKTAG_SHOPIFY_ACCESS_TOKEN", "shpat_supersecret")
        result = runner.invoke(app, ["config", "show", "--json"])
        data = json.loads(result.output)
        assert data["shopify"]["access_token"] == "shpa***"
        assert "supersecret" not in result.output

    def test_explicit_missing_config(self, db_url):
        result = runner.invoke(app, ["--config", "missing.yaml", "config", "show"])
        assert result.exit_code == EXIT_ABORTED


class TestStatsAndPreferences:
    """Tests for job stats and the remaining prefs commands."""

    def test_job_stats(self, db_url, fake):
        runner.invoke(app, ["run", "add", "--tag", "sale", "--id", "1", "--id", "404"])
        runner.invoke(app, ["run", "add", "--tag", "new", "--id", "3"])

        result = runner.invoke(app, ["job", "stats", "--shop", "demo", "--json"])

        assert result.exit_code == EXIT_OK, result.output
        stats = json.loads(result.output)
        assert stats["job_count"] == 2
        assert stats["products_processed"] == 3
        assert stats["failed_count"] == 1
        assert stats["success_rate"] == pytest.approx(66.7)

    def test_job_stats_empty(self, db_url):
        result = runner.invoke(app, ["job", "stats"])
        assert "No completed jobs." in result.output

    def test_set_email_notifications(self, db_url):
        result = runner.invoke(app, ["prefs", "set-email-notifications", "false"])

        assert result.exit_code == EXIT_OK, result.output
        shown = json.loads(runner.invoke(app, ["prefs", "show", "--json"]).output)
        assert shown["email_notifications"] is False

    def test_save_filter(self, db_url):
        result = runner.invoke(app, ["prefs", "save-filter", "summer", "tag:summer"])

        assert result.exit_code == EXIT_OK, result.output
        shown = json.loads(runner.invoke(app, ["prefs", "show", "--json"]).output)
        assert shown["saved_filters"] == {"summer": "tag:summer"}

    def test_save_filter_blank_name(self, db_url):
        result = runner.invoke(app, ["prefs", "save-filter", " ", "tag:x"])
        assert result.exit_code == 1

    def test_recover_resume_uses_shop_batch_size(self, db_url, fake):
        """Resumed jobs honour the stored batch size of their shop."""
        runner.invoke(app, ["prefs", "set-batch-size", "1"])
        with Database(db_url) as database, database.session_scope() as session:
            recorder = JobRecorder(session)
            job = recorder.create(
                JobSpec(
                    shop="demo",
                    operation=OperationType.add_tag,
                    tag_value="sale",
                    old_tag_value=None,
                    product_ids=["1", "2", "3"],
                )
            )
            recorder.set_status(job.id, JobStatus.in_progress)

        with patch("src.services.pacer.Pacer.wait") as wait:
            result = runner.invoke(app, ["recover", "--resume"])

        assert result.exit_code == EXIT_OK, result.output
        assert wait.await_count == 2
        [summary] = _jobs(db_url)
        assert summary["status"] == "completed"
        assert fake.products["3"] == ["sale"]
