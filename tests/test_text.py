"""Tests for text directory source and destination."""

import json
import tempfile
import zipfile

import pytest

from simcopy.codec import ValueFormat
from simcopy.db import run as db_run
from simcopy.db import values as db_values
from simcopy.db import workset as db_workset
from simcopy.db.task import list_task_runs, list_tasks
from simcopy.errors import CopyError, NotFoundError
from simcopy.orchestrator import CopyOrchestrator
from simcopy.selector import Selector
from simcopy.stores import DbSource, DbTarget, TextSource, TextTarget
from simcopy.stores.text import clean_file_name

from conftest import add_run


def to_text(conn, out_dir, fmt=None, use_zip=False):
    target = TextTarget(out_dir, fmt or ValueFormat(), use_zip=use_zip)
    try:
        report = CopyOrchestrator(DbSource(conn, "modelOne"), target).copy_model()
    finally:
        target.close()
    return report


def runs_by_name(conn):
    return {r.run_name: r for r in db_run.list_runs(conn, 1)}


class TestTextTarget:
    """Tests for writing model into text directory."""

    def test_model_directory_layout(self, sample_conn, temp_dir):
        """Documents and value files are written under model directory."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        model_dir = out_dir / "modelOne"
        assert (model_dir / "modelOne.model.json").is_file()
        assert (model_dir / "modelOne.run.Default.json").is_file()
        assert (model_dir / "run.Default" / "parameters" / "ageSex.csv").is_file()
        assert (model_dir / "run.Default" / "output-tables" / "salarySex.acc.csv").is_file()
        assert (model_dir / "run.Default" / "output-tables" / "salarySex.csv").is_file()
        assert (model_dir / "run.Default" / "microdata" / "Person.csv").is_file()
        assert (model_dir / "set.Default" / "startSeed.csv").is_file()
        assert not (model_dir / "run.Running").exists()
        assert not (model_dir / "set.Draft").exists()

    def test_document_index(self, sample_conn, temp_dir):
        """Index lists documents in write order."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        index = json.loads((out_dir / "modelOne" / "modelOne.index.json").read_text(encoding="utf-8"))

        assert index["model_name"] == "modelOne"
        assert index["model_file"] == "modelOne.model.json"
        assert index["runs"] == ["modelOne.run.Default.json", "modelOne.run.Second.json"]
        assert index["worksets"] == ["modelOne.set.Default.json"]
        assert index["tasks"] == ["modelOne.task.taskOne.json"]

    def test_run_document(self, sample_conn, temp_dir):
        """Run document refers to its value files and has no numeric ids."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)
        source_run = DbSource(sample_conn, "modelOne").select_run(Selector.by_name("Default"))

        doc = json.loads((out_dir / "modelOne" / "modelOne.run.Default.json").read_text(encoding="utf-8"))

        assert doc["name"] == "Default"
        assert doc["digest"] == source_run.digest
        assert "run_id" not in doc
        assert [p["file"] for p in doc["params"]] == [
            "run.Default/parameters/ageSex.csv",
            "run.Default/parameters/startSeed.csv",
            "run.Default/parameters/fullName.csv",
        ]

    def test_workset_base_run_digest(self, sample_conn, temp_dir):
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)
        source_run = DbSource(sample_conn, "modelOne").select_run(Selector.by_name("Default"))

        doc = json.loads((out_dir / "modelOne" / "modelOne.set.Default.json").read_text(encoding="utf-8"))

        assert doc["base_run_digest"] == source_run.digest
        assert doc["base_run_name"] == "Default"
        assert doc["is_readonly"] is True

    def test_run_name_collision(self, sample_conn, sample_model, temp_dir):
        """Second run with the same name is written under name and digest."""
        _ = add_run(sample_conn, 1, sample_model, "Second", seed=42)
        dup = DbSource(sample_conn, "modelOne").runs()[-1]
        out_dir = temp_dir / "out"

        _ = to_text(sample_conn, out_dir)

        index = json.loads((out_dir / "modelOne" / "modelOne.index.json").read_text(encoding="utf-8"))
        assert index["runs"][1] == "modelOne.run.Second.json"
        assert index["runs"][2] == f"modelOne.run.Second.{dup.digest}.json"
        assert (out_dir / "modelOne" / f"run.Second.{dup.digest}" / "parameters" / "ageSex.csv").is_file()

    def test_copy_into_existing_directory(self, sample_conn, temp_dir):
        """Existing documents are found, runs and task history are not duplicated."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        report = to_text(sample_conn, out_dir)

        assert report.existing["model"] == 1
        assert report.existing["run"] == 2
        assert report.copied["run"] == 0

        index = json.loads((out_dir / "modelOne" / "modelOne.index.json").read_text(encoding="utf-8"))
        assert len(index["runs"]) == 2
        assert len(index["worksets"]) == 1

        task = json.loads((out_dir / "modelOne" / "modelOne.task.taskOne.json").read_text(encoding="utf-8"))
        assert len(task["task_runs"]) == 1

    def test_clean_file_name(self):
        assert clean_file_name("Default") == "Default"
        assert clean_file_name("a/b:c") == "a_b_c"
        assert clean_file_name(" x ") == "x"
        assert clean_file_name("..") == "__"
        assert clean_file_name("") == "_"


class TestTextSource:
    """Tests for reading model from text directory."""

    def test_round_trip(self, sample_conn, empty_conn, temp_dir):
        """Database to text and back keeps digests and values."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        source = TextSource(out_dir, "modelOne")
        report = CopyOrchestrator(source, DbTarget(empty_conn)).copy_model()
        source.close()

        assert report.warnings == []
        src_runs = runs_by_name(sample_conn)
        dst_runs = runs_by_name(empty_conn)
        assert sorted(dst_runs) == ["Default", "Second"]

        for name in ("Default", "Second"):
            src, dst = src_runs[name], dst_runs[name]
            assert dst.run_digest == src.run_digest
            assert dst.status == src.status
            assert db_values.read_parameter_values(
                empty_conn, "run", dst.run_id, 1, "float"
            ) == db_values.read_parameter_values(sample_conn, "run", src.run_id, 1, "float")
            assert db_values.read_table_expr(empty_conn, dst.run_id, 101) == db_values.read_table_expr(
                sample_conn, src.run_id, 101
            )
            assert db_values.read_table_expr(empty_conn, dst.run_id, 102) == db_values.read_table_expr(
                sample_conn, src.run_id, 102
            )
            assert db_values.read_microdata(
                empty_conn, dst.run_id, "Person", ["int", "enum", "float"]
            ) == db_values.read_microdata(sample_conn, src.run_id, "Person", ["int", "enum", "float"])

        sets = db_workset.list_worksets(empty_conn, 1)
        assert [ws.set_name for ws in sets] == ["Default"]
        assert sets[0].base_run_id == dst_runs["Default"].run_id

        tasks = list_tasks(empty_conn, 1)
        assert [t.task_name for t in tasks] == ["taskOne"]
        assert [tr.run_name for tr in list_task_runs(empty_conn, tasks[0].task_id)] == ["taskRun1"]

    def test_base_run_found_by_name(self, sample_conn, empty_conn, temp_dir):
        """Workset document without base run digest refers to its base run by name."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)
        doc_path = out_dir / "modelOne" / "modelOne.set.Default.json"
        doc = json.loads(doc_path.read_text(encoding="utf-8"))
        doc["base_run_digest"] = ""
        _ = doc_path.write_text(json.dumps(doc), encoding="utf-8")

        source = TextSource(out_dir, "modelOne")
        report = CopyOrchestrator(source, DbTarget(empty_conn)).copy_model()

        assert report.warnings == []
        sets = db_workset.list_worksets(empty_conn, 1)
        assert sets[0].base_run_id == runs_by_name(empty_conn)["Default"].run_id

    def test_id_csv_round_trip(self, sample_conn, empty_conn, temp_dir):
        """Csv written with enum ids is read back with the same format."""
        out_dir = temp_dir / "out"
        fmt = ValueFormat(use_id_csv=True, double_format="%.15g")
        _ = to_text(sample_conn, out_dir, fmt)

        source = TextSource(out_dir, "modelOne", fmt=fmt)
        _ = CopyOrchestrator(source, DbTarget(empty_conn)).copy_run(Selector.by_name("Default"))

        dst = runs_by_name(empty_conn)["Default"]
        src = runs_by_name(sample_conn)["Default"]
        assert dst.run_digest == src.run_digest
        assert db_values.read_table_acc(empty_conn, dst.run_id, 101) == db_values.read_table_acc(
            sample_conn, src.run_id, 101
        )
        assert db_values.read_table_acc(empty_conn, dst.run_id, 102) == db_values.read_table_acc(
            sample_conn, src.run_id, 102
        )

    def test_zip_round_trip(self, sample_conn, empty_conn, temp_dir):
        """Model directory is packed into zip and read back from it."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir, use_zip=True)
        assert (out_dir / "modelOne.zip").is_file()

        source = TextSource(out_dir, "modelOne", use_zip=True)
        tmp_dir = source.model_dir
        try:
            report = CopyOrchestrator(source, DbTarget(empty_conn)).copy_model()
        finally:
            source.close()

        assert report.copied["run"] == 2
        assert sorted(runs_by_name(empty_conn)) == ["Default", "Second"]
        assert not tmp_dir.exists()

    def test_source_ids_are_positions(self, sample_conn, temp_dir):
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        source = TextSource(out_dir, "modelOne")

        assert [(r.source_id, r.name) for r in source.runs()] == [(1, "Default"), (2, "Second")]
        assert [(ws.source_id, ws.name) for ws in source.worksets()] == [(1, "Default")]

    def test_select_by_id_rejected(self, sample_conn, temp_dir):
        """Text source has no database ids, selection by id is an error."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)
        source = TextSource(out_dir, "modelOne")

        with pytest.raises(CopyError, match="cannot be selected by id"):
            _ = source.select_run(Selector.by_id(1))

        assert source.select_run(Selector.last()).name == "Second"

    def test_model_not_found(self, sample_conn, temp_dir):
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)

        with pytest.raises(NotFoundError, match="model not found"):
            _ = TextSource(out_dir, "otherModel")
        with pytest.raises(NotFoundError, match="model not found"):
            _ = TextSource(out_dir, "modelOne", model_digest="no-such-digest")

    def test_model_name_required(self, temp_dir):
        with pytest.raises(CopyError, match="model name required"):
            _ = TextSource(temp_dir, "")

    def test_value_file_outside_model_directory(self, sample_conn, temp_dir):
        """Value file path must stay inside model directory."""
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir)
        doc_path = out_dir / "modelOne" / "modelOne.run.Default.json"
        doc = json.loads(doc_path.read_text(encoding="utf-8"))
        doc["params"][0]["file"] = "../../secret.csv"
        _ = doc_path.write_text(json.dumps(doc), encoding="utf-8")

        source = TextSource(out_dir, "modelOne")
        run = source.select_run(Selector.by_name("Default"))

        with pytest.raises(CopyError, match="invalid value file path"):
            _ = source.param_values(run, run.params[0])


class TestTextSourceZipCleanup:
    """Tests for removal of unpacked zip directory when source cannot be opened."""

    @pytest.fixture
    def unpack_dir(self, temp_dir, monkeypatch):
        """Create unpack directories under a known location."""
        unpack_dir = temp_dir / "unpack"
        unpack_dir.mkdir()
        real_mkdtemp = tempfile.mkdtemp
        monkeypatch.setattr(tempfile, "mkdtemp", lambda prefix=None: real_mkdtemp(prefix=prefix, dir=unpack_dir))
        return unpack_dir

    def test_corrupt_zip(self, temp_dir, unpack_dir):
        in_dir = temp_dir / "in"
        in_dir.mkdir()
        _ = (in_dir / "modelOne.zip").write_bytes(b"this is not a zip archive")

        with pytest.raises(zipfile.BadZipFile):
            _ = TextSource(in_dir, "modelOne", use_zip=True)

        assert list(unpack_dir.iterdir()) == []

    def test_missing_model_document(self, temp_dir, unpack_dir):
        """Zip with index but without model document is rejected and unpacked files removed."""
        in_dir = temp_dir / "in"
        in_dir.mkdir()
        index = {"model_name": "modelOne", "model_file": "modelOne.model.json"}
        with zipfile.ZipFile(in_dir / "modelOne.zip", "w") as zf:
            zf.writestr("modelOne/modelOne.index.json", json.dumps(index))

        with pytest.raises(NotFoundError, match="document not found"):
            _ = TextSource(in_dir, "modelOne", use_zip=True)

        assert list(unpack_dir.iterdir()) == []

    def test_zip_of_other_model(self, sample_conn, temp_dir, unpack_dir):
        out_dir = temp_dir / "out"
        _ = to_text(sample_conn, out_dir, use_zip=True)

        with pytest.raises(NotFoundError, match="model not found"):
            _ = TextSource(out_dir, "modelOne", model_digest="no-such-digest", use_zip=True)

        assert list(unpack_dir.iterdir()) == []
