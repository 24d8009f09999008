from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs
from typer.testing import CliRunner

from scrutin import cli

runner = CliRunner()


@pytest.fixture
def rows_file(tmp_path: Path, circonscription_rows) -> Path:
    path = tmp_path / "rows.json"
    path.write_text(json.dumps(circonscription_rows), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Stockage isolé et logging sans handlers persistants.

    English: Isolated storage and logging without lingering handlers.
    """
    storage = tmp_path / "storage"
    storage.mkdir()
    monkeypatch.setenv("SCRUTIN_STORAGE_PATH", str(storage))
    monkeypatch.delenv("SCRUTIN_HIERARCHY_CONFIG", raising=False)
    monkeypatch.delenv("SCRUTIN_PAGE_SIZE", raising=False)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: structlog.get_logger())
    return storage


def test_aggregate_ranks_each_circonscription(rows_file: Path) -> None:
    result = runner.invoke(cli.app, ["aggregate", str(rows_file), "--level", "circonscription"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [item["node"]["id"] for item in payload] == ["004", "012"]
    assert payload[0]["state"] == "WINNER"
    assert payload[0]["ranking"][0]["candidate_id"] == "U-002"
    assert payload[0]["node"]["registered_voters"] == 450


def test_aggregate_rejects_invalid_rows(tmp_path: Path) -> None:
    path = tmp_path / "rows.json"
    path.write_text(json.dumps([{"unit_id": "BV01", "actual_voters": 3}]), encoding="utf-8")

    result = runner.invoke(cli.app, ["aggregate", str(path)])

    assert result.exit_code == 1
    assert "registered_voters" in result.output


def test_entities_filters_ready_and_search(rows_file: Path) -> None:
    result = runner.invoke(cli.app, ["entities", str(rows_file), "--status", "ready", "--search", "anyama"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["total"] == 1
    assert payload["entities"][0]["code"] == "004"
    assert payload["entities"][0]["cels"] == ["C042"]
    assert payload["entities"][0]["ready"] is True


def test_publish_then_status_history_and_stats(rows_file: Path) -> None:
    """Parcours complet : publication puis consultation.

    English: Full path: publication then queries.
    """
    with capture_logs() as logs:
        published = runner.invoke(
            cli.app,
            ["publish", "004", "--rows", str(rows_file), "--actor", "admin01", "--role", "ADMIN"],
        )

    assert published.exit_code == 0, published.output
    assert "PUBLISHED" in published.output
    assert any(entry["event"] == "publish_succeeded" and entry["entity_id"] == "004" for entry in logs)

    status = runner.invoke(cli.app, ["status", "004"])
    assert status.stdout.strip() == "PUBLISHED"

    history = json.loads(runner.invoke(cli.app, ["history", "004"]).stdout)
    assert len(history) == 1
    assert history[0]["actor"] == "admin01"
    assert history[0]["to_status"] == "PUBLISHED"

    stats = json.loads(runner.invoke(cli.app, ["stats", str(rows_file)]).stdout)
    assert stats["total_entities"] == 2
    assert stats["published_entities"] == 1
    assert stats["publication_rate"] == 50.0


def test_publish_as_viewer_is_rejected(rows_file: Path) -> None:
    with capture_logs():
        result = runner.invoke(cli.app, ["publish", "004", "--rows", str(rows_file), "--actor", "viewer"])

    assert result.exit_code == 1
    assert "UNAUTHORIZED" in result.output


def test_cancel_unpublished_is_rejected(rows_file: Path) -> None:
    runner.invoke(cli.app, ["entities", str(rows_file)])

    with capture_logs():
        result = runner.invoke(cli.app, ["cancel", "004", "--actor", "admin01", "--role", "SADMIN"])

    assert result.exit_code == 1
    assert "ILLEGAL_TRANSITION" in result.output


def test_status_of_unknown_entity(rows_file: Path) -> None:
    result = runner.invoke(cli.app, ["status", "999"])

    assert result.exit_code == 1
    assert "unknown circonscription 999" in result.output


def test_missing_storage_path_exits_with_config_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SCRUTIN_STORAGE_PATH", str(tmp_path / "absent"))

    result = runner.invoke(cli.app, ["status", "004"])

    assert result.exit_code == 2


def test_expected_units_from_hierarchy_config(
    rows_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Une CEL attendue sans lignes rend la circonscription non prête.

    English: An expected CEL without rows makes the circonscription not ready.
    """
    config_path = tmp_path / "hierarchy.yaml"
    config_path.write_text("expected_units:\n  circonscription:\n    '004': 3\n", encoding="utf-8")
    monkeypatch.setenv("SCRUTIN_HIERARCHY_CONFIG", str(config_path))

    result = runner.invoke(cli.app, ["entities", str(rows_file), "--status", "ready"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [entity["code"] for entity in payload["entities"]] == ["012"]


def test_department_shares_code_with_circonscription(tmp_path: Path, circonscription_rows) -> None:
    """Le département 004 a son propre statut, distinct de la circonscription 004.

    English: Department 004 has its own status, separate from circonscription 004.
    """
    path = tmp_path / "rows.json"
    path.write_text(json.dumps([dict(row, department="004") for row in circonscription_rows]), encoding="utf-8")
    admin = ["--actor", "admin01", "--role", "ADMIN"]

    with capture_logs():
        published = runner.invoke(cli.app, ["publish", "004", "--rows", str(path), *admin])
    assert published.exit_code == 0, published.output

    unknown = runner.invoke(cli.app, ["status", "004", "--entity-type", "department"])
    assert unknown.exit_code == 1
    assert "unknown department 004" in unknown.output

    with capture_logs():
        department = runner.invoke(
            cli.app, ["publish", "004", "--rows", str(path), "--entity-type", "department", *admin]
        )
    assert department.exit_code == 0, department.output

    history = json.loads(runner.invoke(cli.app, ["history", "004", "--entity-type", "department"]).stdout)
    assert [entry["action"] for entry in history] == ["PUBLISH"]

    with capture_logs():
        cancelled = runner.invoke(
            cli.app, ["cancel", "004", "--entity-type", "department", "--actor", "sadmin", "--role", "SADMIN"]
        )
    assert cancelled.exit_code == 0, cancelled.output
    assert runner.invoke(cli.app, ["status", "004"]).stdout.strip() == "PUBLISHED"
    assert runner.invoke(cli.app, ["status", "004", "--entity-type", "department"]).stdout.strip() == "CANCELLED"
