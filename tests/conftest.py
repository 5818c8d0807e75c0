"""
Shared fixtures for the packing solver tests.
"""
import sys
from pathlib import Path

import pytest

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pieces import SOMA, Piece, Puzzle
from solver import PuzzleSolver


@pytest.fixture(scope="session")
def soma_solutions():
    """Every unique Soma solution (full search, shared across tests)."""
    return PuzzleSolver(SOMA, verbose=False).solve()


@pytest.fixture(scope="session")
def soma_first_five():
    """The first five unique Soma solutions."""
    return PuzzleSolver(SOMA, max_solutions=5, verbose=False).solve()


@pytest.fixture
def slab_puzzle():
    """A 2x2x2 cube filled by two flat 2x2 squares: one solution up to rotation."""
    square = [(0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0)]
    return Puzzle("slabs", 2, (Piece.from_cubes(0, "a", square), Piece.from_cubes(1, "b", square)))


@pytest.fixture
def underfilled_puzzle():
    """Soma without its last piece: 23 cubes for 27 cells."""
    return Puzzle("short", 3, SOMA.pieces[:6])
