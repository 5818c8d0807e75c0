import functools
from dataclasses import dataclass, field

import numpy as np

from geometry import Grid, REFLECTIONS, normalize, symmetry_group, transform_offsets

# Occupancy masks are persisted as unsigned 64-bit words
MAX_CELLS = 64


class PuzzleInvalid(ValueError):
    """The puzzle definition cannot be tiled as stated."""


@dataclass(frozen=True)
class Piece:
    """A polycube: an id, a display name and its unit-cube offsets."""
    pid: int
    name: str
    offsets: tuple

    @classmethod
    def from_cubes(cls, pid, name, cubes):
        if not cubes:
            raise PuzzleInvalid(f"piece {pid} ({name}) has no cubes")
        if len(set(cubes)) != len(cubes):
            raise PuzzleInvalid(f"piece {pid} ({name}) repeats a cube")
        return cls(pid, name, normalize(cubes))

    @property
    def volume(self):
        return len(self.offsets)


@functools.lru_cache(maxsize=None)
def orientations(piece, reflections=False):
    """
    All geometrically distinct orientations of a piece.

    Applies every transform of the group, normalizes each result to the origin and
    drops duplicates. Pieces with internal symmetry return fewer than 24 (48) entries.
    The position of an orientation in the returned tuple is its orientation index.
    """
    unique_shapes = set()
    for matrix in symmetry_group(reflections):
        unique_shapes.add(transform_offsets(piece.offsets, matrix))
    return tuple(sorted(unique_shapes))


@functools.lru_cache(maxsize=None)
def _orientation_lookup(piece, reflections):
    return {shape: i for i, shape in enumerate(orientations(piece, reflections))}


def orientation_index(piece, offsets, reflections=False):
    """Index of the given (normalized) offsets among the piece's orientations, or None."""
    return _orientation_lookup(piece, reflections).get(normalize(offsets))


@dataclass(frozen=True)
class Puzzle:
    """
    A packing puzzle: grid size, piece set and which symmetries collapse solutions.

    reflections: mirror images of a whole solution count as the same solution.
    chiral_pairs: piece ids that turn into each other under a mirror.
    piece_reflections: pieces may be flipped over (two-sided pieces).
    """
    name: str
    dim: int
    pieces: tuple
    reflections: bool = False
    chiral_pairs: tuple = field(default_factory=tuple)
    piece_reflections: bool = False

    @property
    def grid(self):
        return Grid(self.dim)

    @property
    def volume(self):
        return sum(p.volume for p in self.pieces)

    def chiral_partner(self, pid):
        for a, b in self.chiral_pairs:
            if pid == a:
                return b
            if pid == b:
                return a
        return pid

    def label_swap(self):
        """Lookup table relabelling cells (piece id + 1, 0 = empty) under a mirror."""
        table = np.arange(len(self.pieces) + 1, dtype=np.uint8)
        for a, b in self.chiral_pairs:
            table[a + 1], table[b + 1] = b + 1, a + 1
        return table

    def validate(self):
        """Raises PuzzleInvalid unless the piece set can in principle tile the grid."""
        if self.dim < 1:
            raise PuzzleInvalid(f"{self.name}: grid dimension must be positive, got {self.dim}")
        grid = self.grid
        if grid.size > MAX_CELLS:
            raise PuzzleInvalid(f"{self.name}: {grid.size} cells exceed the {MAX_CELLS}-bit occupancy mask")
        if not self.pieces:
            raise PuzzleInvalid(f"{self.name}: no pieces")
        if len(self.pieces) > 255:
            raise PuzzleInvalid(f"{self.name}: too many pieces ({len(self.pieces)})")

        for i, piece in enumerate(self.pieces):
            if piece.pid != i:
                raise PuzzleInvalid(f"{self.name}: piece ids must be 0..{len(self.pieces) - 1}, found {piece.pid} at {i}")
            if not piece.offsets:
                raise PuzzleInvalid(f"{self.name}: piece {piece.pid} ({piece.name}) has no cubes")
            if len(set(piece.offsets)) != len(piece.offsets):
                raise PuzzleInvalid(f"{self.name}: piece {piece.pid} ({piece.name}) repeats a cube")

        if self.volume != grid.size:
            raise PuzzleInvalid(
                f"{self.name}: pieces cover {self.volume} cells but the grid has {grid.size}"
            )

        seen = set()
        for pair in self.chiral_pairs:
            for pid in pair:
                if not 0 <= pid < len(self.pieces):
                    raise PuzzleInvalid(f"{self.name}: chiral pair {pair} names an unknown piece")
                if pid in seen:
                    raise PuzzleInvalid(f"{self.name}: piece {pid} appears in more than one chiral pair")
                seen.add(pid)

        if self.reflections:
            # A mirrored solution is only a solution if every mirrored piece is still in the set
            mirror = REFLECTIONS[0]
            for piece in self.pieces:
                mirrored = transform_offsets(piece.offsets, mirror)
                partner = self.pieces[self.chiral_partner(piece.pid)]
                if orientation_index(partner, mirrored, self.piece_reflections) is None:
                    raise PuzzleInvalid(
                        f"{self.name}: the mirror image of piece {piece.pid} ({piece.name}) "
                        f"is not a rotation of piece {partner.pid} ({partner.name})"
                    )


def _make_pieces(definitions):
    return tuple(Piece.from_cubes(i, name, cubes) for i, (name, cubes) in enumerate(definitions))


# The seven Soma pieces that fill a 3x3x3 cube
SOMA_PIECES = _make_pieces([
    ("L", [(0, 0, 0), (1, 0, 0), (2, 0, 0), (0, 1, 0)]),
    ("T", [(0, 0, 0), (1, 0, 0), (2, 0, 0), (1, 1, 0)]),
    ("S", [(0, 0, 0), (1, 0, 0), (1, 1, 0), (2, 1, 0)]),
    ("V", [(0, 0, 0), (1, 0, 0), (0, 1, 0)]),
    ("screw A", [(0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 0, 1)]),
    ("branch", [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 0, 1)]),
    ("screw B", [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 1, 1)]),
])

# The thirteen Bedlam pieces that fill a 4x4x4 cube
BEDLAM_PIECES = _make_pieces([
    ("little corner", [(0, 0, 0), (0, 1, 0), (1, 0, 0), (0, 0, 1)]),
    ("long stick", [(0, 0, 0), (1, 0, 0), (2, 0, 0), (3, 0, 0), (3, 1, 0)]),
    ("hat", [(0, 0, 0), (0, 1, 0), (1, 1, 0), (1, 2, 0), (2, 2, 0)]),
    ("bucket", [(0, 0, 0), (0, 1, 0), (1, 1, 0), (1, 2, 0), (1, 1, 1)]),
    ("screw", [(0, 0, 0), (1, 0, 0), (1, 0, 1), (1, 1, 1), (2, 1, 1)]),
    ("twist", [(0, 0, 0), (1, 0, 0), (1, 1, 0), (1, 1, 1), (2, 1, 1)]),
    ("signpost", [(0, 0, 0), (1, 0, 0), (2, 0, 0), (1, 1, 0), (1, 0, 1)]),
    ("ducktail", [(0, 0, 0), (1, 0, 0), (1, 1, 0), (2, 1, 0), (1, 0, 1)]),
    ("plane", [(0, 0, 0), (0, 1, 0), (1, 1, 0), (2, 1, 0), (1, 2, 0)]),
    ("bridge", [(0, 0, 0), (1, 0, 0), (2, 0, 0), (0, 1, 0), (2, 1, 0)]),
    ("staircase", [(0, 0, 0), (1, 0, 0), (1, 1, 0), (2, 1, 0), (2, 2, 0)]),
    ("spikey zag", [(0, 0, 1), (0, 1, 0), (0, 1, 1), (1, 1, 0), (1, 2, 0)]),
    ("middle zig", [(0, 0, 0), (0, 1, 0), (0, 1, 1), (1, 1, 0), (1, 2, 0)]),
])

SOMA = Puzzle("soma", 3, SOMA_PIECES, reflections=True, chiral_pairs=((4, 6),))
BEDLAM = Puzzle("bedlam", 4, BEDLAM_PIECES)

PUZZLES = {
    SOMA.name: SOMA,
    BEDLAM.name: BEDLAM,
}


def get_puzzle(name):
    try:
        return PUZZLES[name]
    except KeyError:
        raise PuzzleInvalid(f"unknown puzzle '{name}' (choose from {', '.join(sorted(PUZZLES))})") from None
