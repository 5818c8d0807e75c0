import threading
from collections import namedtuple

import numba
import numpy as np

from geometry import is_reflection, symmetry_group
from pieces import orientation_index
from placements import Placement

# key: bytes of the cell -> (piece id + 1) labelling; placements ordered by piece id
CanonicalSolution = namedtuple("CanonicalSolution", ["key", "placements"])


def solution_labels(solution, grid):
    """Flat grid where each cell holds piece id + 1 (0 = empty)."""
    labels = np.zeros(grid.size, dtype=np.uint8)
    for placement in solution:
        mask = placement.mask
        while mask:
            low = mask & -mask
            labels[low.bit_length() - 1] = placement.piece + 1
            mask ^= low
    return labels


@numba.jit(nopython=True)
def smallest_candidate(candidates):
    """Row index of the lexicographically smallest row."""
    n_rows = candidates.shape[0]
    n_cols = candidates.shape[1]
    best = 0
    for r in range(1, n_rows):
        for c in range(n_cols):
            a = candidates[r, c]
            b = candidates[best, c]
            if a < b:
                best = r
                break
            if a > b:
                break
    return best


class SymmetryReducer:
    """
    Collapses solutions that differ only by a symmetry of the cube.

    Every transform of the puzzle's group is applied to the whole labelled grid at once;
    the lexicographically smallest labelling is the canonical key. Mirror transforms
    also swap the labels of chiral partners so a mirrored solution uses the real pieces.
    """

    def __init__(self, puzzle):
        self.puzzle = puzzle
        self.grid = puzzle.grid
        self.group = symmetry_group(puzzle.reflections)
        self.cell_maps = self.grid.cell_maps(self.group)
        self.mirrored = np.array([is_reflection(m) for m in self.group], dtype=np.bool_)
        self.label_swap = puzzle.label_swap()
        self._rows = np.arange(len(self.group))[:, np.newaxis]

        self.seen = set()
        self.solutions = []
        self.lock = threading.Lock()

    def labels(self, solution):
        return solution_labels(solution, self.grid)

    def candidates(self, labels):
        """One transformed labelling per group element, shape (group size, cells)."""
        out = np.empty((len(self.group), self.grid.size), dtype=np.uint8)
        # move each source cell value into its transformed destination
        out[self._rows, self.cell_maps] = labels
        out[self.mirrored] = self.label_swap[out[self.mirrored]]
        return out

    def solution_from_labels(self, labels):
        """Rebuilds placements (ordered by piece id) from a labelled grid."""
        solution = []
        for piece in self.puzzle.pieces:
            cells = [self.grid.coord(int(i)) for i in np.flatnonzero(labels == piece.pid + 1)]
            if not cells:
                raise ValueError(f"piece {piece.pid} ({piece.name}) is missing from the labelling")
            k = orientation_index(piece, cells, self.puzzle.piece_reflections)
            if k is None:
                raise ValueError(f"cells {cells} are not an orientation of piece {piece.pid} ({piece.name})")
            translation = tuple(min(c[axis] for c in cells) for axis in range(3))
            mask = 0
            for x, y, z in cells:
                mask |= self.grid.bit(x, y, z)
            solution.append(Placement(piece.pid, k, translation, mask))
        return tuple(solution)

    def transform_solution(self, solution, t):
        """Applies group element t to a whole solution."""
        labels = self.labels(solution)
        moved = np.empty_like(labels)
        moved[self.cell_maps[t]] = labels
        if self.mirrored[t]:
            moved = self.label_swap[moved]
        return self.solution_from_labels(moved)

    def canonicalize(self, solution):
        candidates = self.candidates(self.labels(solution))
        best = candidates[smallest_candidate(candidates)]
        return CanonicalSolution(best.tobytes(), self.solution_from_labels(best))

    def is_new(self, canonical):
        return canonical.key not in self.seen

    def record(self, canonical):
        """Adds a canonical solution unless already seen. Returns True if it was new."""
        with self.lock:
            if canonical.key in self.seen:
                return False
            self.seen.add(canonical.key)
            self.solutions.append(canonical)
            return True

    def __len__(self):
        return len(self.solutions)
