"""Tests for the process pool search."""
import pytest

from pieces import SOMA, Piece, Puzzle, PuzzleInvalid
from run_parallel import _consume, solve_parallel
from symmetry import SymmetryReducer


class TestConsume:
    def test_stops_at_limit(self, soma_first_five):
        reducer = SymmetryReducer(SOMA)
        assert _consume(soma_first_five, reducer, 3) is True
        assert len(reducer) == 3

    def test_skips_duplicates(self, soma_first_five):
        reducer = SymmetryReducer(SOMA)
        assert _consume(soma_first_five[:2], reducer, None) is False
        assert _consume(soma_first_five[:3], reducer, None) is False
        assert len(reducer) == 3


class TestSolveParallel:
    def test_limit_matches_sequential_order(self, soma_first_five):
        solutions, stats = solve_parallel(SOMA, max_solutions=5, processes=2, verbose=False)
        assert solutions == soma_first_five
        assert stats["unique_count"] == 5
        assert stats["limit"] == 5
        assert stats["complete"] is False

    def test_limit_zero(self):
        solutions, stats = solve_parallel(SOMA, max_solutions=0, processes=2, verbose=False)
        assert solutions == []
        assert stats["raw_count"] == 0

    def test_negative_limit(self):
        with pytest.raises(ValueError):
            solve_parallel(SOMA, max_solutions=-1, processes=2, verbose=False)

    def test_invalid_puzzle(self, underfilled_puzzle):
        with pytest.raises(PuzzleInvalid):
            solve_parallel(underfilled_puzzle, processes=2, verbose=False)

    def test_no_tiling(self):
        rod = Piece.from_cubes(0, "rod", [(0, 0, 0), (1, 0, 0), (2, 0, 0)])
        puzzle = Puzzle("rod", 2, (rod, Piece.from_cubes(1, "blob", [(0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0), (0, 0, 1)])))
        solutions, stats = solve_parallel(puzzle, processes=2, verbose=False)
        assert solutions == []
        assert stats["complete"] is True

    def test_progress_output(self, capsys):
        solve_parallel(SOMA, max_solutions=1, processes=2)
        out = capsys.readouterr().out
        assert "with 2 processes" in out
        assert "Unique solutions: 1" in out


@pytest.mark.slow
class TestFullParallelSearch:
    def test_matches_sequential(self, soma_solutions):
        solutions, stats = solve_parallel(SOMA, processes=2, verbose=False)
        assert len(solutions) == 240
        assert solutions == soma_solutions
        assert stats["complete"] is True
        assert stats["raw_count"] >= 240
