"""
Saving and loading puzzle solutions.

Binary format for solutions_<puzzle>.bin (little endian):
- 4 bytes: magic (PCUB)
- u1: format version
- u1: grid dimension
- u1: piece count
- u1: reserved
- 16 bytes: puzzle name, NUL padded
- u4: solution count
- repeat per solution, per piece (13 bytes each):
  - u1: piece id
  - u1: orientation index
  - 3 x u1: translation (x, y, z)
  - u8: occupancy mask
"""
import json
import os

import numpy as np

from placements import placement_from_record, placement_cells
from symmetry import CanonicalSolution, solution_labels

FILE_MAGIC = b"PCUB"
FILE_VERSION = 1
NAME_BYTES = 16

HEADER_DTYPE = np.dtype([
    ("magic", "S4"),
    ("version", "u1"),
    ("dim", "u1"),
    ("piece_count", "u1"),
    ("reserved", "u1"),
    ("name", f"S{NAME_BYTES}"),
    ("solution_count", "<u4"),
])

RECORD_DTYPE = np.dtype([
    ("piece", "u1"),
    ("orientation", "u1"),
    ("translation", "u1", (3,)),
    ("mask", "<u8"),
])


class PersistenceCorrupt(ValueError):
    """A solutions file is inconsistent with itself or with its puzzle."""


def binary_path(puzzle, output_dir="results"):
    return os.path.join(output_dir, f"solutions_{puzzle.name}.bin")


def text_path(puzzle, output_dir="results"):
    return os.path.join(output_dir, f"solutions_{puzzle.name}.txt")


def encode(puzzle, solutions):
    """Serializes canonical solutions to the binary format."""
    name = puzzle.name.encode("ascii")
    if len(name) > NAME_BYTES:
        raise ValueError(f"puzzle name '{puzzle.name}' is longer than {NAME_BYTES} bytes")
    piece_count = len(puzzle.pieces)

    header = np.zeros(1, dtype=HEADER_DTYPE)
    header["magic"] = FILE_MAGIC
    header["version"] = FILE_VERSION
    header["dim"] = puzzle.dim
    header["piece_count"] = piece_count
    header["name"] = name
    header["solution_count"] = len(solutions)

    placements = []
    for solution in solutions:
        if len(solution.placements) != piece_count:
            raise ValueError(f"solution has {len(solution.placements)} placements, expected {piece_count}")
        placements.extend(solution.placements)

    records = np.zeros(len(placements), dtype=RECORD_DTYPE)
    if placements:
        records["piece"] = [p.piece for p in placements]
        records["orientation"] = [p.orientation for p in placements]
        records["translation"] = [p.translation for p in placements]
        records["mask"] = np.array([p.mask for p in placements], dtype=np.uint64)

    return header.tobytes() + records.tobytes()


def _check_header(puzzle, header, data_size=None):
    """Validates a header against the puzzle and returns the solution count."""
    if bytes(header["magic"]) != FILE_MAGIC:
        raise PersistenceCorrupt("not a solutions file (bad magic)")
    if int(header["version"]) != FILE_VERSION:
        raise PersistenceCorrupt(f"unsupported format version {int(header['version'])}")
    if int(header["dim"]) != puzzle.dim or int(header["piece_count"]) != len(puzzle.pieces):
        raise PersistenceCorrupt(
            f"file is for a {int(header['dim'])}-cube with {int(header['piece_count'])} pieces, "
            f"puzzle '{puzzle.name}' is a {puzzle.dim}-cube with {len(puzzle.pieces)} pieces"
        )
    name = bytes(header["name"]).rstrip(b"\0").decode("ascii", errors="replace")
    if name != puzzle.name:
        raise PersistenceCorrupt(f"file is for puzzle '{name}', not '{puzzle.name}'")

    solution_count = int(header["solution_count"])
    if data_size is not None:
        expected = HEADER_DTYPE.itemsize + solution_count * len(puzzle.pieces) * RECORD_DTYPE.itemsize
        if data_size != expected:
            raise PersistenceCorrupt(
                f"header declares {solution_count} solutions ({expected} bytes) but the file has {data_size} bytes"
            )
    return solution_count


def _read_header(puzzle, data, data_size):
    if len(data) < HEADER_DTYPE.itemsize:
        raise PersistenceCorrupt("file is too short to hold a header")
    header = np.frombuffer(data, dtype=HEADER_DTYPE, count=1)[0]
    return _check_header(puzzle, header, data_size)


def _parse_solution(puzzle, grid, rows):
    placements = []
    seen_pieces = set()
    covered = 0

    for row in rows:
        pid = int(row["piece"])
        if pid >= len(puzzle.pieces):
            raise PersistenceCorrupt(f"piece id {pid} out of range")
        if pid in seen_pieces:
            # every piece must appear exactly once
            raise PersistenceCorrupt(f"piece {pid} appears twice in one solution")
        seen_pieces.add(pid)

        translation = tuple(int(v) for v in row["translation"])
        placement = placement_from_record(
            grid, puzzle.pieces[pid], int(row["orientation"]), translation, puzzle.piece_reflections
        )
        if placement is None:
            raise PersistenceCorrupt(
                f"piece {pid}: orientation {int(row['orientation'])} at {translation} does not fit the grid"
            )
        if placement.mask != int(row["mask"]):
            raise PersistenceCorrupt(f"piece {pid}: stored mask does not match its orientation and translation")
        if covered & placement.mask:
            raise PersistenceCorrupt(f"piece {pid} overlaps another piece")
        covered |= placement.mask
        placements.append(placement)

    if covered != grid.full_mask:
        raise PersistenceCorrupt("solution does not fill the grid")

    placements = tuple(placements)
    return CanonicalSolution(solution_labels(placements, grid).tobytes(), placements)


def decode(puzzle, data):
    """Parses the binary format back into canonical solutions, in stored order."""
    puzzle.validate()
    solution_count = _read_header(puzzle, data, len(data))
    if solution_count == 0:
        return []

    grid = puzzle.grid
    records = np.frombuffer(data, dtype=RECORD_DTYPE, offset=HEADER_DTYPE.itemsize)
    records = records.reshape(solution_count, len(puzzle.pieces))
    return [_parse_solution(puzzle, grid, rows) for rows in records]


def format_solution(solution, grid):
    """
    Renders a solution as z-slices side by side.

    Rows run from y=DIM-1 at the top down to y=0, x increases to the right.
    Cells show the piece id (hex from 10 up), '.' for empty.
    """
    labels = solution_labels(solution, grid)
    dim = grid.dim

    lines = ["  ".join(f"z={z}".ljust(dim) for z in range(dim)).rstrip()]
    for y in reversed(range(dim)):
        slices = []
        for z in range(dim):
            row = ""
            for x in range(dim):
                label = int(labels[grid.index(x, y, z)])
                row += "." if label == 0 else format(label - 1, "X")
            slices.append(row)
        lines.append("  ".join(slices))
    return "\n".join(lines) + "\n"


def format_placements(puzzle, solution):
    """One line per piece: id, name, orientation, translation and whitespace-separated cells."""
    grid = puzzle.grid
    lines = []
    for placement in solution:
        piece = puzzle.pieces[placement.piece]
        cells = "  ".join(f"{x} {y} {z}" for x, y, z in placement_cells(placement, grid))
        tx, ty, tz = placement.translation
        lines.append(f"{placement.piece} {piece.name} orientation {placement.orientation} at {tx} {ty} {tz}: {cells}")
    return "\n".join(lines) + "\n"


def format_text(puzzle, solutions):
    parts = [f"Found {len(solutions)} solutions:\n\n"]
    for i, solution in enumerate(solutions):
        parts.append(f"Solution {i + 1}:\n")
        parts.append(format_placements(puzzle, solution.placements))
        parts.append(format_solution(solution.placements, puzzle.grid))
        parts.append("\n")
    return "".join(parts)


def format_js(puzzle, solutions):
    """JavaScript array literal: one [piece id, [[x,y,z], ...]] entry per piece."""
    grid = puzzle.grid
    rows = []
    for solution in solutions:
        pieces = []
        for p in solution.placements:
            cells = ",".join(f"[{x},{y},{z}]" for x, y, z in placement_cells(p, grid))
            pieces.append(f"[{p.piece}, [{cells}]]")
        rows.append("  [" + ", ".join(pieces) + "]")
    if not rows:
        return "const SOLUTIONS = [];\n"
    return "const SOLUTIONS = [\n" + ",\n".join(rows) + "\n];\n"


def save(puzzle, solutions, output_dir="results"):
    """Saves solutions to both binary and text files. Returns (binary path, text path)."""
    os.makedirs(output_dir, exist_ok=True)
    data = encode(puzzle, solutions)

    txt_file = text_path(puzzle, output_dir)
    with open(txt_file, "w") as f:
        f.write(format_text(puzzle, solutions))

    # write to a temporary name first so readers never see a half-written file
    bin_file = binary_path(puzzle, output_dir)
    tmp_file = bin_file + ".tmp"
    with open(tmp_file, "wb") as f:
        f.write(data)
    os.replace(tmp_file, bin_file)

    return bin_file, txt_file


def load_all(puzzle, output_dir="results"):
    """Loads all solutions from the binary file."""
    with open(binary_path(puzzle, output_dir), "rb") as f:
        data = f.read()
    return decode(puzzle, data)


def count(puzzle, output_dir="results"):
    """Returns the number of saved solutions without loading them all."""
    puzzle.validate()
    path = binary_path(puzzle, output_dir)
    with open(path, "rb") as f:
        data = f.read(HEADER_DTYPE.itemsize)
    return _read_header(puzzle, data, os.path.getsize(path))


def summary_path(puzzle, output_dir="results"):
    return os.path.join(output_dir, f"run_{puzzle.name}.json")


def save_summary(puzzle, stats, output_dir="results"):
    """Writes run statistics (elapsed time, raw and unique counts, limit) next to the solutions."""
    os.makedirs(output_dir, exist_ok=True)
    state = {"puzzle": puzzle.name, "dim": puzzle.dim, "pieces": len(puzzle.pieces)}
    state.update(stats)
    path = summary_path(puzzle, output_dir)
    with open(path, "w") as f:
        json.dump(state, f, indent=2)
    return path


def load_summary(puzzle, output_dir="results"):
    with open(summary_path(puzzle, output_dir), "r") as f:
        return json.load(f)
