from collections import namedtuple

from pieces import orientations

# An orientation of a piece translated into the grid, with its occupancy bitmask
Placement = namedtuple("Placement", ["piece", "orientation", "translation", "mask"])


def placement_cells(placement, grid):
    """Absolute coordinates covered by a placement, lowest cell first."""
    return tuple(grid.mask_cells(placement.mask))


def lowest_cell(mask):
    """Index of the lowest set bit."""
    return (mask & -mask).bit_length() - 1


def placements(grid, piece, orientation_index, offsets):
    """Yields every in-bounds translation of one orientation of a piece."""
    max_x = max(c[0] for c in offsets)
    max_y = max(c[1] for c in offsets)
    max_z = max(c[2] for c in offsets)

    for tx in range(grid.dim - max_x):
        for ty in range(grid.dim - max_y):
            for tz in range(grid.dim - max_z):
                mask = 0
                for cx, cy, cz in offsets:
                    mask |= grid.bit(cx + tx, cy + ty, cz + tz)
                yield Placement(piece.pid, orientation_index, (tx, ty, tz), mask)


def piece_placements(grid, piece, piece_reflections=False):
    """All placements of all orientations of a piece."""
    for k, offsets in enumerate(orientations(piece, piece_reflections)):
        yield from placements(grid, piece, k, offsets)


def build_placement_table(grid, pieces, piece_reflections=False):
    """
    Lookup table indexed by [piece id][cell index].

    Each entry lists the placements whose lowest occupied cell is that cell. When the
    search fills the lowest free cell every lower cell is already taken, so these are the
    only placements that can cover it without colliding.
    """
    table = []
    for piece in pieces:
        by_cell = [[] for _ in range(grid.size)]
        for placement in piece_placements(grid, piece, piece_reflections):
            by_cell[lowest_cell(placement.mask)].append(placement)
        table.append(tuple(tuple(cell) for cell in by_cell))
    return tuple(table)


def placement_from_record(grid, piece, orientation_index, translation, piece_reflections=False):
    """Rebuilds a placement from its orientation index and translation, or None if it leaves the grid."""
    shapes = orientations(piece, piece_reflections)
    if not 0 <= orientation_index < len(shapes):
        return None
    tx, ty, tz = translation
    mask = 0
    for cx, cy, cz in shapes[orientation_index]:
        if not grid.contains(cx + tx, cy + ty, cz + tz):
            return None
        mask |= grid.bit(cx + tx, cy + ty, cz + tz)
    return Placement(piece.pid, orientation_index, (tx, ty, tz), mask)
