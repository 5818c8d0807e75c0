import argparse
import sys
import time

from persistence import (
    PersistenceCorrupt, binary_path, count, format_js, format_solution, format_text,
    load_all, save, save_summary,
)
from pieces import PUZZLES, PuzzleInvalid, get_puzzle
from placements import build_placement_table, lowest_cell
from symmetry import SymmetryReducer


class PuzzleSolver:
    def __init__(self, puzzle, max_solutions=None, verbose=True):
        if max_solutions is not None and max_solutions < 0:
            raise ValueError(f"max_solutions must be non-negative, got {max_solutions}")

        self.puzzle = puzzle
        self.max_solutions = max_solutions
        self.verbose = verbose

        self._log(f"Initializing {puzzle.name} solver...")

        # 1. Reject puzzles that cannot tile the grid before doing any work
        puzzle.validate()
        self.grid = puzzle.grid

        # 2. Pre-compute every placement of every orientation, keyed by lowest cell
        self.table = build_placement_table(self.grid, puzzle.pieces, puzzle.piece_reflections)

        # 3. Solutions collapse under the puzzle's symmetry group
        self.reducer = SymmetryReducer(puzzle)

        # Optional external stop condition (used by parallel workers)
        self.should_stop = None

        self.raw_count = 0
        self.start_time = 0
        self.elapsed = 0.0
        self._stopped = False

    def _log(self, *args, **kwargs):
        if self.verbose:
            print(*args, **kwargs)

    def _reset(self):
        self.reducer = SymmetryReducer(self.puzzle)
        self.raw_count = 0
        self._stopped = False
        self.start_time = time.time()

    @property
    def placement_count(self):
        return sum(len(cell) for piece in self.table for cell in piece)

    @property
    def complete(self):
        """True when the last search ran to exhaustion instead of stopping at the limit."""
        return not self._stopped

    def solve(self):
        """Runs the full search and returns the unique canonical solutions in discovery order."""
        self._log(f"Grid: {self.grid.dim}x{self.grid.dim}x{self.grid.dim} ({self.grid.size} cells).")
        self._log(f"Pieces: {len(self.puzzle.pieces)}, placements: {self.placement_count:,}.")
        self._log(f"Symmetry group size: {len(self.reducer.group)}")
        if self.max_solutions is not None:
            self._log(f"Stopping after {self.max_solutions} unique solutions.")

        self._reset()
        if self.max_solutions == 0:
            self._stopped = True
        else:
            all_pieces = tuple(p.pid for p in self.puzzle.pieces)
            self._backtrack(0, all_pieces, ())

        self.elapsed = time.time() - self.start_time
        self._log("\nSearch complete." if self.complete else "\nSolution limit reached.")
        self._log(f"Raw tilings found: {self.raw_count}")
        self._log(f"Unique solutions: {len(self.reducer)} ({self.elapsed:.2f} seconds)")
        return list(self.reducer.solutions)

    def branches(self):
        """Top-level choices: every placement that can fill cell 0 of the empty grid."""
        return [
            placement
            for piece in self.puzzle.pieces
            for placement in self.table[piece.pid][0]
        ]

    def solve_branch(self, first):
        """Searches only below one top-level placement."""
        self._reset()
        remaining = tuple(p.pid for p in self.puzzle.pieces if p.pid != first.piece)
        if self.max_solutions == 0 or (self.should_stop is not None and self.should_stop()):
            self._stopped = True
        else:
            self._backtrack(first.mask, remaining, (first,))
        self.elapsed = time.time() - self.start_time
        return list(self.reducer.solutions)

    def _backtrack(self, occupied, remaining, path):
        # Base case: total piece volume equals grid volume, so no pieces left means full
        if not remaining:
            self._record_solution(path)
            return

        # Always fill the lowest free cell first
        target = lowest_cell(~occupied & self.grid.full_mask)

        for i, pid in enumerate(remaining):
            rest = remaining[:i] + remaining[i + 1:]
            for placement in self.table[pid][target]:
                # collision check: any shared bit means overlap
                if occupied & placement.mask:
                    continue

                self._backtrack(occupied | placement.mask, rest, path + (placement,))
                if self._stopped:
                    return

    def _record_solution(self, path):
        self.raw_count += 1
        canonical = self.reducer.canonicalize(path)
        if not self.reducer.record(canonical):
            return

        found = len(self.reducer)
        if found == 1:
            self._log(f"First solution found in {time.time() - self.start_time:.2f} seconds!")
            self._log(format_solution(canonical.placements, self.grid))
        elif found % 100 == 0:
            self._log(f"Found {found} solutions...", end="\r")

        if self.max_solutions is not None and found >= self.max_solutions:
            self._stopped = True
        elif self.should_stop is not None and self.should_stop():
            self._stopped = True


def solve(puzzle, max_solutions=None, verbose=False):
    """Convenience wrapper: unique canonical solutions of a puzzle."""
    return PuzzleSolver(puzzle, max_solutions=max_solutions, verbose=verbose).solve()


def run_solve(args):
    puzzle = get_puzzle(args.puzzle)
    verbose = not args.quiet

    if args.threads > 1:
        from run_parallel import solve_parallel
        solutions, stats = solve_parallel(puzzle, max_solutions=args.limit, processes=args.threads, verbose=verbose)
    else:
        solver = PuzzleSolver(puzzle, max_solutions=args.limit, verbose=verbose)
        solutions = solver.solve()
        stats = {
            "raw_count": solver.raw_count,
            "unique_count": len(solutions),
            "limit": args.limit,
            "complete": solver.complete,
            "elapsed_seconds": round(solver.elapsed, 3),
            "processes": 1,
        }

    bin_file, txt_file = save(puzzle, solutions, args.output_dir)
    save_summary(puzzle, stats, args.output_dir)
    print(f"Found {len(solutions)} solutions")
    print(f"Wrote {txt_file} and {bin_file}")
    return 0


def run_count(args):
    puzzle = get_puzzle(args.puzzle)
    print(f"{count(puzzle, args.output_dir)} solutions")
    return 0


def run_display(args):
    puzzle = get_puzzle(args.puzzle)
    solutions = load_all(puzzle, args.output_dir)
    print(f"Loaded {len(solutions)} solutions")

    if args.index is None:
        print(format_text(puzzle, solutions), end="")
        return 0

    if not 1 <= args.index <= len(solutions):
        print(f"Error: solution index must be between 1 and {len(solutions)}", file=sys.stderr)
        return 1
    print(f"Solution {args.index}:")
    print(format_solution(solutions[args.index - 1].placements, puzzle.grid), end="")
    return 0


def run_export_js(args):
    puzzle = get_puzzle(args.puzzle)
    try:
        solutions = load_all(puzzle, args.output_dir)
    except FileNotFoundError:
        solutions = solve(puzzle)
    print(format_js(puzzle, solutions), end="")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Enumerate every distinct way to pack a set of polycubes into a cube."
    )
    subparsers = parser.add_subparsers(dest="command")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--puzzle", choices=sorted(PUZZLES), default="soma",
                        help="Puzzle to work on. Default is soma.")
    common.add_argument("--output-dir", default="results",
                        help="Directory holding the solution files. Default is results.")

    p_solve = subparsers.add_parser("solve", parents=[common], help="Solve the puzzle and save solutions to disk.")
    p_solve.add_argument("-l", "--limit", type=int, default=None,
                         help="Stop after this many unique solutions (default: all).")
    p_solve.add_argument("-t", "--threads", type=int, default=1,
                         help="Number of worker processes. Default is 1.")
    p_solve.add_argument("-q", "--quiet", action="store_true", help="Suppress progress output.")
    p_solve.set_defaults(func=run_solve)

    p_count = subparsers.add_parser("count", parents=[common], help="Show the number of saved solutions.")
    p_count.set_defaults(func=run_count)

    p_display = subparsers.add_parser("display", parents=[common], help="Print saved solutions.")
    p_display.add_argument("-i", "--index", type=int, default=None,
                           help="Print only this solution (1-based).")
    p_display.set_defaults(func=run_display)

    p_export = subparsers.add_parser("export-js", parents=[common], help="Export solutions as a JavaScript array.")
    p_export.set_defaults(func=run_export_js)

    return parser


def main(argv=None):
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else list(argv)
    if not argv or (argv[0].startswith("-") and argv[0] not in ("-h", "--help")):
        # default: solve
        argv = ["solve"] + argv
    args = parser.parse_args(argv)

    if getattr(args, "limit", None) is not None and args.limit < 0:
        parser.error("--limit must be non-negative")
    if getattr(args, "threads", 1) < 1:
        parser.error("--threads must be at least 1")

    try:
        return args.func(args)
    except FileNotFoundError:
        print(f"No solutions file found at {binary_path(get_puzzle(args.puzzle), args.output_dir)}. "
              f"Run 'solve' first.", file=sys.stderr)
    except (PuzzleInvalid, PersistenceCorrupt) as e:
        print(f"Error: {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(0)
