"""Tests for simcopy CLI commands."""

import pytest
from typer.testing import CliRunner

from simcopy import config as config_module
from simcopy.cli.main import app
from simcopy.db import get_connection
from simcopy.db import run as db_run
from simcopy.db import task as db_task
from simcopy.db import workset as db_workset
from simcopy.db.model import list_models

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_global_config(temp_dir, monkeypatch):
    """Do not pick up user config from home directory."""
    monkeypatch.setattr(config_module, "get_global_config_dir", lambda: temp_dir / "home" / ".simcopy")


def run_names(db_path):
    conn = get_connection(db_path)
    try:
        return [r.run_name for r in db_run.list_runs(conn, 1)]
    finally:
        conn.close()


class TestInitCommand:
    """Tests for simcopy init command."""

    def test_init_creates_database(self, temp_dir):
        db_path = temp_dir / "data" / "new.sqlite"

        result = runner.invoke(app, ["init", str(db_path)])

        assert result.exit_code == 0
        assert "Initialized database" in result.stdout
        assert db_path.exists()

        conn = get_connection(db_path)
        try:
            assert list_models(conn) == []
        finally:
            conn.close()

    def test_init_already_exists(self, empty_db):
        result = runner.invoke(app, ["init", str(empty_db)])

        assert result.exit_code == 0
        assert "Already exists" in result.stdout


class TestListCommand:
    """Tests for simcopy list command."""

    def test_list_models(self, sample_db):
        result = runner.invoke(app, ["list", str(sample_db)])

        assert result.exit_code == 0
        assert "modelOne" in result.stdout
        assert "1.0.0" in result.stdout

    def test_list_empty(self, empty_db):
        result = runner.invoke(app, ["list", str(empty_db)])

        assert result.exit_code == 0
        assert "No models found" in result.stdout

    def test_list_model_entities(self, sample_db):
        """Runs, input sets and tasks of the model are listed."""
        result = runner.invoke(app, ["list", str(sample_db), "--model", "modelOne"])

        assert result.exit_code == 0
        assert "Model modelOne" in result.stdout
        assert "Second" in result.stdout
        assert "running" in result.stdout
        assert "Draft" in result.stdout
        assert "taskOne" in result.stdout

    def test_list_model_not_found(self, sample_db):
        result = runner.invoke(app, ["list", str(sample_db), "-m", "noSuchModel"])

        assert result.exit_code == 1
        assert "model not found" in result.stdout

    def test_list_missing_database(self, temp_dir):
        result = runner.invoke(app, ["list", str(temp_dir / "missing.sqlite")])

        assert result.exit_code == 1
        assert "database not found" in result.stdout


class TestCopyCommand:
    """Tests for simcopy copy command."""

    def test_copy_model_to_text(self, sample_db, temp_dir):
        out_dir = temp_dir / "out"

        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(out_dir)]
        )

        assert result.exit_code == 0
        assert "Copy done" in result.stdout
        assert (out_dir / "modelOne" / "modelOne.index.json").is_file()
        assert (out_dir / "modelOne" / "modelOne.run.Second.json").is_file()

    def test_copy_run_to_zip(self, sample_db, temp_dir):
        out_dir = temp_dir / "out"

        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(out_dir), "--run", "Second", "--zip"],
        )

        assert result.exit_code == 0
        assert (out_dir / "modelOne.zip").is_file()

    def test_copy_text_to_db(self, sample_db, empty_db, temp_dir):
        """Text written from one database is copied into another database."""
        out_dir = temp_dir / "out"
        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(out_dir), "--id-csv"]
        )
        assert result.exit_code == 0

        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--to", "db", "--db", str(empty_db), "--input-dir", str(out_dir), "--id-csv"],
        )

        assert result.exit_code == 0
        assert run_names(empty_db) == ["Default", "Second"]

    def test_copy_db_to_db(self, sample_db, empty_db):
        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--to", "db2db", "--db", str(sample_db), "--to-db", str(empty_db), "--set", "Default"],
        )

        assert result.exit_code == 0
        assert "base run not found" in result.stdout
        conn = get_connection(empty_db)
        try:
            assert [ws.set_name for ws in db_workset.list_worksets(conn, 1)] == ["Default"]
            assert db_run.list_runs(conn, 1) == []
        finally:
            conn.close()

    def test_copy_same_database(self, sample_db):
        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--to", "db2db", "--db", str(sample_db), "--to-db", str(sample_db)]
        )

        assert result.exit_code == 1
        assert "must be different" in result.stdout

    def test_copy_run_not_found(self, sample_db, temp_dir):
        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(temp_dir), "--run", "Missing"],
        )

        assert result.exit_code == 1
        assert "run not found" in result.stdout

    def test_copy_run_not_completed(self, sample_db, temp_dir):
        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(temp_dir), "--run", "Running"],
        )

        assert result.exit_code == 1
        assert "not completed" in result.stdout

    def test_copy_by_id_from_text(self, sample_db, empty_db, temp_dir):
        """Selection by id is not possible when source is text."""
        out_dir = temp_dir / "out"
        _ = runner.invoke(app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--output-dir", str(out_dir)])

        result = runner.invoke(
            app,
            ["copy", "-m", "modelOne", "--to", "db", "--db", str(empty_db), "--input-dir", str(out_dir), "--run-id", "1"],
        )

        assert result.exit_code == 1
        assert "cannot be selected by id" in result.stdout

    def test_copy_two_entities(self, sample_db):
        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--run", "Default", "--task", "taskOne"]
        )

        assert result.exit_code == 1
        assert "only one of" in result.stdout

    def test_copy_run_selected_twice(self, sample_db):
        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--run", "Default", "--first-run"]
        )

        assert result.exit_code == 1
        assert "selected more than once" in result.stdout

    def test_copy_invalid_direction(self, sample_db):
        result = runner.invoke(app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--to", "xml"])

        assert result.exit_code == 1
        assert "invalid copy direction" in result.stdout

    def test_copy_model_required(self, sample_db):
        result = runner.invoke(app, ["copy", "--db", str(sample_db)])

        assert result.exit_code == 1
        assert "model name or model digest required" in result.stdout

    def test_copy_missing_config(self, sample_db, temp_dir):
        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(sample_db), "--config", str(temp_dir / "none.yaml")]
        )

        assert result.exit_code == 1
        assert "unable to load config" in result.stdout

    def test_copy_invalid_database_file(self, temp_dir):
        """Database error is reported as error, not as traceback."""
        db_path = temp_dir / "broken.sqlite"
        _ = db_path.write_bytes(b"this is not a database file" * 8)

        result = runner.invoke(
            app, ["copy", "-m", "modelOne", "--db", str(db_path), "--output-dir", str(temp_dir / "out")]
        )

        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_copy_null_token_string_to_text(self, sample_db, temp_dir):
        """String value equal to NULL token cannot be written into csv."""
        conn = get_connection(sample_db)
        try:
            _ = conn.execute(
                "UPDATE run_parameter_value SET value = 'NULL' WHERE run_id = 1 AND param_hid = 3"
            )
        finally:
            conn.close()

        result = runner.invoke(
            app,
            [
                "copy", "-m", "modelOne", "--db", str(sample_db),
                "--output-dir", str(temp_dir / "out"), "--run", "Default",
            ],
        )

        assert result.exit_code == 1
        assert "cannot write row 1" in result.stdout


class TestDeleteCommand:
    """Tests for simcopy delete command."""

    def test_delete_run(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "modelOne", "--run", "Second"])

        assert result.exit_code == 0
        assert "Deleted model run Second" in result.stdout
        assert run_names(sample_db) == ["Default", "Running"]

    def test_delete_workset_by_id(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "modelOne", "--set-id", "1"])

        assert result.exit_code == 0
        assert "Deleted input set Default" in result.stdout
        conn = get_connection(sample_db)
        try:
            assert [ws.set_name for ws in db_workset.list_worksets(conn, 1)] == ["Draft"]
        finally:
            conn.close()

    def test_delete_task(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "modelOne", "--task", "taskOne"])

        assert result.exit_code == 0
        conn = get_connection(sample_db)
        try:
            assert db_task.list_tasks(conn, 1) == []
        finally:
            conn.close()

    def test_delete_run_not_completed(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "modelOne", "--last-run"])

        assert result.exit_code == 1
        assert "not completed" in result.stdout
        assert run_names(sample_db) == ["Default", "Second", "Running"]

    def test_delete_nothing_selected(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "modelOne"])

        assert result.exit_code == 1
        assert "select one model run, input set or modeling task" in result.stdout

    def test_delete_model_not_found(self, sample_db):
        result = runner.invoke(app, ["delete", str(sample_db), "-m", "noSuchModel", "--run", "Default"])

        assert result.exit_code == 1
        assert "model not found" in result.stdout


class TestRenameCommand:
    """Tests for simcopy rename command."""

    def test_rename_run(self, sample_db):
        result = runner.invoke(
            app, ["rename", str(sample_db), "-m", "modelOne", "--run-id", "2", "--new-name", "Final"]
        )

        assert result.exit_code == 0
        assert "Renamed model run Second into Final" in result.stdout
        assert run_names(sample_db) == ["Default", "Final", "Running"]

    def test_rename_task(self, sample_db):
        result = runner.invoke(
            app, ["rename", str(sample_db), "-m", "modelOne", "--task", "taskOne", "-n", "scenarios"]
        )

        assert result.exit_code == 0
        conn = get_connection(sample_db)
        try:
            assert [t.task_name for t in db_task.list_tasks(conn, 1)] == ["scenarios"]
        finally:
            conn.close()

    def test_rename_workset_name_in_use(self, sample_db):
        result = runner.invoke(
            app, ["rename", str(sample_db), "-m", "modelOne", "--set", "Draft", "--new-name", "Default"]
        )

        assert result.exit_code == 1
        assert "workset already exists: Default" in result.stdout

    def test_rename_two_entities(self, sample_db):
        result = runner.invoke(
            app,
            ["rename", str(sample_db), "-m", "modelOne", "--run", "Default", "--set", "Draft", "-n", "x"],
        )

        assert result.exit_code == 1
        assert "select one model run" in result.stdout
