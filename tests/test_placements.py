"""Tests for placement generation and the placement table."""
from geometry import Grid
from pieces import BEDLAM, SOMA, Piece, orientations
from placements import (
    Placement, build_placement_table, lowest_cell, piece_placements, placement_cells,
    placement_from_record, placements,
)


class TestPlacements:
    def test_mask_has_piece_volume_bits_in_bounds(self):
        for puzzle in (SOMA, BEDLAM):
            grid = puzzle.grid
            for piece in puzzle.pieces:
                for placement in piece_placements(grid, piece):
                    assert bin(placement.mask).count("1") == piece.volume
                    assert placement.mask & ~grid.full_mask == 0
                    for x, y, z in placement_cells(placement, grid):
                        assert grid.contains(x, y, z)

    def test_single_cube_fills_every_cell(self):
        grid = Grid(3)
        cube = Piece.from_cubes(0, "unit", [(0, 0, 0)])
        found = list(piece_placements(grid, cube))
        assert len(found) == 27
        assert {p.mask for p in found} == {1 << i for i in range(27)}

    def test_v_piece_placement_count(self):
        # 12 orientations, each with a 2x2x1 bounding box: 2 * 2 * 3 translations
        v = SOMA.pieces[3]
        assert len(list(piece_placements(SOMA.grid, v))) == 144

    def test_placements_are_lazy_and_restartable(self):
        grid = Grid(3)
        piece = SOMA.pieces[0]
        offsets = orientations(piece)[0]
        gen = placements(grid, piece, 0, offsets)
        first = next(gen)
        assert isinstance(first, Placement)
        assert list(placements(grid, piece, 0, offsets))[0] == first

    def test_translation_and_orientation_recorded(self):
        grid = Grid(3)
        piece = SOMA.pieces[3]
        for placement in piece_placements(grid, piece):
            shape = orientations(piece)[placement.orientation]
            tx, ty, tz = placement.translation
            expected = sorted((x + tx, y + ty, z + tz) for x, y, z in shape)
            assert sorted(placement_cells(placement, grid)) == expected

    def test_oversized_piece_has_no_placements(self):
        rod = Piece.from_cubes(0, "rod", [(i, 0, 0) for i in range(4)])
        assert list(piece_placements(Grid(3), rod)) == []


class TestPlacementTable:
    def test_entries_keyed_by_lowest_cell(self):
        grid = SOMA.grid
        table = build_placement_table(grid, SOMA.pieces)
        assert len(table) == len(SOMA.pieces)
        for pid, by_cell in enumerate(table):
            assert len(by_cell) == grid.size
            for cell, entries in enumerate(by_cell):
                for placement in entries:
                    assert placement.piece == pid
                    assert lowest_cell(placement.mask) == cell

    def test_table_holds_every_placement(self):
        grid = SOMA.grid
        table = build_placement_table(grid, SOMA.pieces)
        for piece in SOMA.pieces:
            total = sum(len(entries) for entries in table[piece.pid])
            assert total == len(list(piece_placements(grid, piece)))

    def test_lowest_cell(self):
        assert lowest_cell(0b1) == 0
        assert lowest_cell(0b101000) == 3
        assert lowest_cell(1 << 63) == 63


class TestPlacementFromRecord:
    def test_rebuilds_generated_placement(self):
        grid = SOMA.grid
        piece = SOMA.pieces[2]
        for placement in piece_placements(grid, piece):
            rebuilt = placement_from_record(grid, piece, placement.orientation, placement.translation)
            assert rebuilt == placement

    def test_rejects_out_of_grid(self):
        piece = SOMA.pieces[0]
        assert placement_from_record(SOMA.grid, piece, 0, (2, 2, 2)) is None

    def test_rejects_unknown_orientation(self):
        piece = SOMA.pieces[5]
        assert placement_from_record(SOMA.grid, piece, 8, (0, 0, 0)) is None
        assert placement_from_record(SOMA.grid, piece, -1, (0, 0, 0)) is None
