"""Tests for the command line entry point."""
import json
import os

import pytest

from solver import main


@pytest.fixture
def solved_dir(tmp_path):
    """An output directory holding the first three Soma solutions."""
    assert main(["solve", "--puzzle", "soma", "-l", "3", "-q", "--output-dir", str(tmp_path)]) == 0
    return tmp_path


class TestSolveCommand:
    def test_writes_files(self, solved_dir):
        assert os.path.exists(solved_dir / "solutions_soma.bin")
        assert os.path.exists(solved_dir / "solutions_soma.txt")
        with open(solved_dir / "run_soma.json") as f:
            state = json.load(f)
        assert state["unique_count"] == 3
        assert state["limit"] == 3
        assert state["complete"] is False

    def test_reports_count(self, tmp_path, capsys):
        main(["solve", "-l", "2", "-q", "--output-dir", str(tmp_path)])
        out = capsys.readouterr().out
        assert "Found 2 solutions" in out
        assert "solutions_soma.txt" in out

    def test_solve_is_the_default(self, tmp_path, capsys):
        assert main(["-l", "1", "-q", "--output-dir", str(tmp_path)]) == 0
        assert "Found 1 solutions" in capsys.readouterr().out

    def test_parallel_flag(self, tmp_path, capsys):
        assert main(["solve", "-l", "2", "-t", "2", "-q", "--output-dir", str(tmp_path)]) == 0
        assert "Found 2 solutions" in capsys.readouterr().out

    def test_negative_limit_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["solve", "--limit", "-1", "--output-dir", str(tmp_path)])

    def test_zero_threads_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["solve", "-t", "0", "--output-dir", str(tmp_path)])

    def test_unknown_puzzle_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["solve", "--puzzle", "tangram", "--output-dir", str(tmp_path)])


class TestReadCommands:
    def test_count(self, solved_dir, capsys):
        capsys.readouterr()
        assert main(["count", "--output-dir", str(solved_dir)]) == 0
        assert capsys.readouterr().out.strip() == "3 solutions"

    def test_count_without_file(self, tmp_path, capsys):
        assert main(["count", "--output-dir", str(tmp_path)]) == 1
        assert "Run 'solve' first" in capsys.readouterr().err

    def test_count_corrupt_file(self, solved_dir, capsys):
        with open(solved_dir / "solutions_soma.bin", "r+b") as f:
            f.write(b"JUNK")
        assert main(["count", "--output-dir", str(solved_dir)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_display_all(self, solved_dir, capsys):
        capsys.readouterr()
        assert main(["display", "--output-dir", str(solved_dir)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Loaded 3 solutions\nFound 3 solutions:")
        assert "Solution 3:" in out

    def test_display_one(self, solved_dir, capsys):
        capsys.readouterr()
        assert main(["display", "--index", "2", "--output-dir", str(solved_dir)]) == 0
        out = capsys.readouterr().out
        assert "Solution 2:" in out
        assert "Solution 1:" not in out
        assert "z=0  z=1  z=2" in out

    def test_display_index_out_of_range(self, solved_dir, capsys):
        assert main(["display", "--index", "4", "--output-dir", str(solved_dir)]) == 1
        assert "between 1 and 3" in capsys.readouterr().err

    def test_export_js(self, solved_dir, capsys):
        capsys.readouterr()
        assert main(["export-js", "--output-dir", str(solved_dir)]) == 0
        out = capsys.readouterr().out
        assert out.startswith("const SOLUTIONS = [\n")
        assert out.count("\n  [") == 3
