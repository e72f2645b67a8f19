import json
import logging

import pytest

import backup_cli
from core.paths import get_database_path
from store.sqlite import SqliteEntityStore
from conftest import populate


@pytest.fixture
def working_dir(tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    settings = {"device_name": "cli-host", "backup": {"exports_dir": str(tmp_path / "exports")}}
    (work / "settings.json").write_text(json.dumps(settings), encoding="utf-8")
    yield work
    logger = logging.getLogger("evtracker")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def _run(capsys, *argv):
    code = backup_cli.main(list(argv))
    return code, json.loads(capsys.readouterr().out)


def test_export_then_import_round_trip(working_dir, capsys):
    store = SqliteEntityStore.open(get_database_path(working_dir))
    try:
        populate(store, cars=2, expenses_per_car=1)
    finally:
        store.close()

    code, exported = _run(capsys, "--working-dir", str(working_dir), "export")
    assert code == 0 and exported["ok"] is True

    code, imported = _run(capsys, "--working-dir", str(working_dir), "import", exported["path"])
    assert code == 0
    assert imported["counts"]["cars"] == 2
    assert imported["counts"]["expenses"] == 2
    assert sorted(imported["car_id_map"]) == ["1", "2"]

    code, listed = _run(capsys, "--working-dir", str(working_dir), "safety-list")
    assert code == 0
    assert [item["path"] for item in listed["backups"]] == [imported["safety_backup"]]
    assert listed["backups"][0]["cars"] == 2


def test_malformed_import_exits_with_error(working_dir, tmp_path, capsys):
    broken = tmp_path / "broken.json"
    broken.write_text("{ not json", encoding="utf-8")

    code, payload = _run(capsys, "--working-dir", str(working_dir), "import", str(broken))

    assert code == 1
    assert payload["ok"] is False
    assert payload["type"] == "MalformedDocument"


def test_remote_commands_require_enabled_remote(working_dir, capsys):
    code, payload = _run(capsys, "--working-dir", str(working_dir), "remote-list")

    assert code == 1
    assert payload["type"] == "RemoteUnavailable"


@pytest.mark.parametrize(("json_lines", "log_name"), [(True, "evtracker.log.jsonl"), (False, "evtracker.log")])
def test_logging_format_follows_settings(working_dir, tmp_path, capsys, json_lines, log_name):
    settings = {"backup": {"exports_dir": str(tmp_path / "exports")}, "logging": {"level": "INFO", "json": json_lines}}
    (working_dir / "settings.json").write_text(json.dumps(settings), encoding="utf-8")

    code, _ = _run(capsys, "--working-dir", str(working_dir), "safety-list")

    assert code == 0
    assert [path.name for path in (working_dir / "logs").glob("evtracker.log*")] == [log_name]
