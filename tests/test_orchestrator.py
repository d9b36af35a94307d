"""Tests for copy orchestrator."""

import pytest

from simcopy.copier import CopyOptions
from simcopy.db import get_connection, init_db, transaction
from simcopy.db import model as db_model
from simcopy.db import run as db_run
from simcopy.db import values as db_values
from simcopy.db import workset as db_workset
from simcopy.db.task import get_task_set_ids, list_task_run_sets, list_tasks
from simcopy.errors import NotEligibleError, NotFoundError
from simcopy.models.cell import ParamCell
from simcopy.models.meta import ModelDef, ParamDef
from simcopy.orchestrator import CopyOrchestrator, CopyState
from simcopy.selector import Selector
from simcopy.stores import DbSource, DbTarget


@pytest.fixture
def m1_conn(temp_dir):
    """Model M1 (digest d1) with run R1 (digest rA) and read-only workset W1 based on R1."""
    db_path = temp_dir / "m1.sqlite"
    init_db(db_path)
    conn = get_connection(db_path)

    model = ModelDef(
        name="M1",
        digest="d1",
        params=[ParamDef(name="P1", hid=1, type_name="int"), ParamDef(name="P2", hid=2, type_name="double")],
    )
    with transaction(conn):
        model_id = db_model.create_model(conn, model)

        run_id = db_run.create_run(conn, model_id, "R1", "success", run_digest="rA", sub_completed=1)
        db_run.add_run_parameter(conn, run_id, 1)
        db_values.write_parameter_values(conn, "run", run_id, 1, [ParamCell(0, (), 7)])
        db_run.add_run_parameter(conn, run_id, 2)
        db_values.write_parameter_values(conn, "run", run_id, 2, [ParamCell(0, (), 0.25)])
        _ = db_run.compute_run_digest(conn, run_id, model)

        set_id = db_workset.create_workset(conn, model_id, "W1", is_readonly=True, base_run_id=run_id)
        db_workset.add_workset_parameter(conn, set_id, 1)
        db_values.write_parameter_values(conn, "set", set_id, 1, [ParamCell(0, (), 8)])

    yield conn
    conn.close()


class TestScenarios:
    """End-to-end copy between two databases."""

    def test_copy_model_end_to_end(self, m1_conn, empty_conn):
        """Whole model: one model, one run, one workset based on the new run, no warnings."""
        orchestrator = CopyOrchestrator(DbSource(m1_conn, "M1"), DbTarget(empty_conn))

        report = orchestrator.copy_model()

        assert report.state == CopyState.DONE
        assert report.warnings == []

        models = db_model.list_models(empty_conn)
        assert [(m.model_name, m.model_digest) for m in models] == [("M1", "d1")]

        runs = db_run.list_runs(empty_conn, models[0].model_id)
        assert [(r.run_name, r.run_digest) for r in runs] == [("R1", "rA")]
        assert db_values.read_parameter_values(empty_conn, "run", runs[0].run_id, 1, "int") == [
            ParamCell(0, (), 7)
        ]
        assert db_values.read_parameter_values(empty_conn, "run", runs[0].run_id, 2, "float") == [
            ParamCell(0, (), 0.25)
        ]

        sets = db_workset.list_worksets(empty_conn, models[0].model_id)
        assert [ws.set_name for ws in sets] == ["W1"]
        assert sets[0].base_run_id == runs[0].run_id
        assert sets[0].is_readonly

    def test_copy_workset_without_base_run(self, m1_conn, empty_conn):
        """Workset alone: created without base run and one warning reported."""
        orchestrator = CopyOrchestrator(DbSource(m1_conn, "M1"), DbTarget(empty_conn))

        report = orchestrator.copy_workset(Selector.by_name("W1"))

        assert report.state == CopyState.DONE
        assert len(report.warnings) == 1
        assert "base run not found" in report.warnings[0]

        sets = db_workset.list_worksets(empty_conn, 1)
        assert [ws.set_name for ws in sets] == ["W1"]
        assert sets[0].base_run_id is None
        assert db_run.list_runs(empty_conn, 1) == []

    def test_copy_model_twice(self, m1_conn, empty_conn):
        """Second copy finds model and run, nothing is duplicated."""
        _ = CopyOrchestrator(DbSource(m1_conn, "M1"), DbTarget(empty_conn)).copy_model()

        report = CopyOrchestrator(DbSource(m1_conn, "M1"), DbTarget(empty_conn)).copy_model()

        assert report.existing["model"] == 1
        assert report.existing["run"] == 1
        assert report.copied["run"] == 0
        assert len(db_run.list_runs(empty_conn, 1)) == 1
        assert len(db_workset.list_worksets(empty_conn, 1)) == 1


class TestOrchestrator:
    """Tests for copy states and entity selection."""

    def test_copy_sample_model(self, sample_conn, empty_conn):
        """Not completed runs and writable worksets are skipped."""
        report = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn)).copy_model()

        assert report.copied["run"] == 2
        assert report.copied["workset"] == 1
        assert report.copied["task"] == 1
        assert [r.run_name for r in db_run.list_runs(empty_conn, 1)] == ["Default", "Second"]
        assert [ws.set_name for ws in db_workset.list_worksets(empty_conn, 1)] == ["Default"]
        assert report.warnings == []
        assert "run: 2 copied" in report.summary()

    def test_copy_run(self, sample_conn, empty_conn):
        orchestrator = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn))

        report = orchestrator.copy_run(Selector.by_name("Second"))

        assert orchestrator.state == CopyState.DONE
        assert report.copied["model"] == 1
        assert report.copied["run"] == 1
        assert [r.run_name for r in db_run.list_runs(empty_conn, 1)] == ["Second"]

    def test_copy_run_not_completed(self, sample_conn, empty_conn):
        """Explicitly selected run which is not completed aborts the copy."""
        orchestrator = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn))

        with pytest.raises(NotEligibleError):
            _ = orchestrator.copy_run(Selector.by_name("Running"))

        assert orchestrator.state == CopyState.ABORT
        assert db_run.list_runs(empty_conn, 1) == []

    def test_copy_run_not_found(self, sample_conn, empty_conn):
        orchestrator = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn))

        with pytest.raises(NotFoundError, match="run not found: name Missing"):
            _ = orchestrator.copy_run(Selector.by_name("Missing"))

        assert orchestrator.state == CopyState.ABORT
        assert db_model.list_models(empty_conn) == []

    def test_copy_task_with_dependencies(self, sample_conn, empty_conn):
        """Task copy brings runs of its history and its worksets."""
        report = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn)).copy_task(
            Selector.by_name("taskOne")
        )

        assert report.warnings == []
        assert [r.run_name for r in db_run.list_runs(empty_conn, 1)] == ["Default"]
        assert [ws.set_name for ws in db_workset.list_worksets(empty_conn, 1)] == ["Default"]

        tasks = list_tasks(empty_conn, 1)
        assert [t.task_name for t in tasks] == ["taskOne"]
        assert get_task_set_ids(empty_conn, tasks[0].task_id) == [1]
        assert [(p.run_id, p.set_id) for p in list_task_run_sets(empty_conn, tasks[0].task_id)] == [(1, 1)]

    def test_session_per_invocation(self, sample_conn, empty_conn):
        """Each copy starts with new state and warnings."""
        orchestrator = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn))

        first = orchestrator.copy_workset(Selector.by_name("Default"))
        second = orchestrator.copy_run(Selector.by_name("Default"))

        assert len(first.warnings) == 1
        assert second.warnings == []
        assert second.state == CopyState.DONE

    def test_log_period_option(self, sample_conn, empty_conn):
        options = CopyOptions(log_period=0)
        orchestrator = CopyOrchestrator(DbSource(sample_conn, "modelOne"), DbTarget(empty_conn), options)

        report = orchestrator.copy_model()

        assert report.state == CopyState.DONE
