import itertools
from dataclasses import dataclass

import numpy as np


class OutOfBounds(IndexError):
    """A coordinate or cell index fell outside the grid."""


def _signed_permutations():
    """Generates all 48 signed permutation matrices, identity first."""
    matrices = []
    for perm in itertools.permutations(range(3)):
        for signs in itertools.product((1, -1), repeat=3):
            m = np.zeros((3, 3), dtype=np.int8)
            for row, (axis, sign) in enumerate(zip(perm, signs)):
                m[row, axis] = sign
            matrices.append(m)
    return matrices


# Symmetry group of the cube: 24 proper rotations + 24 improper (mirror) transforms
TRANSFORMS = tuple(_signed_permutations())
ROTATIONS = tuple(m for m in TRANSFORMS if round(np.linalg.det(m)) == 1)
REFLECTIONS = tuple(m for m in TRANSFORMS if round(np.linalg.det(m)) == -1)


def symmetry_group(reflections=False):
    """Returns the 24 rotations, followed by the 24 reflections if requested."""
    if reflections:
        return ROTATIONS + REFLECTIONS
    return ROTATIONS


def is_reflection(matrix):
    return round(np.linalg.det(matrix)) == -1


def normalize(coords):
    """Translates coords so each axis minimum is zero and sorts them."""
    min_x = min(c[0] for c in coords)
    min_y = min(c[1] for c in coords)
    min_z = min(c[2] for c in coords)
    return tuple(sorted((x - min_x, y - min_y, z - min_z) for x, y, z in coords))


def transform_offsets(coords, matrix):
    """Applies a transform to a set of offsets and normalizes the result."""
    moved = np.asarray(coords, dtype=np.int64) @ matrix.T.astype(np.int64)
    return normalize([tuple(int(v) for v in row) for row in moved])


@dataclass(frozen=True)
class Grid:
    """An N x N x N voxel space, cells numbered x-major."""
    dim: int

    @property
    def size(self):
        return self.dim ** 3

    @property
    def full_mask(self):
        return (1 << self.size) - 1

    def contains(self, x, y, z):
        return 0 <= x < self.dim and 0 <= y < self.dim and 0 <= z < self.dim

    def index(self, x, y, z):
        if not self.contains(x, y, z):
            raise OutOfBounds(f"({x}, {y}, {z}) is outside a {self.dim}x{self.dim}x{self.dim} grid")
        return x * self.dim * self.dim + y * self.dim + z

    def coord(self, index):
        if not 0 <= index < self.size:
            raise OutOfBounds(f"cell {index} is outside a grid of {self.size} cells")
        d = self.dim
        return (index // (d * d), (index // d) % d, index % d)

    def bit(self, x, y, z):
        return 1 << self.index(x, y, z)

    def mask_cells(self, mask):
        """Yields the coordinates of every set bit in mask, lowest first."""
        while mask:
            low = mask & -mask
            yield self.coord(low.bit_length() - 1)
            mask ^= low

    def cell_maps(self, group):
        """
        For every transform in group, maps each source cell to the cell it lands on
        when the whole grid is transformed about its centre.

        Uses doubled coordinates so odd (3x3x3) and even (4x4x4) grids both stay integral.
        """
        d = self.dim
        idx = np.arange(self.size)
        coords = np.stack((idx // (d * d), (idx // d) % d, idx % d), axis=1)
        centred = 2 * coords - (d - 1)

        maps = np.empty((len(group), self.size), dtype=np.intp)
        for t, matrix in enumerate(group):
            moved = (centred @ matrix.T.astype(np.int64) + (d - 1)) // 2
            maps[t] = moved[:, 0] * d * d + moved[:, 1] * d + moved[:, 2]
        return maps
