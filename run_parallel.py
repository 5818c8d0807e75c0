import argparse
import multiprocessing
import os
import sys
import time

from persistence import save, save_summary
from pieces import PUZZLES, PuzzleInvalid, get_puzzle
from solver import PuzzleSolver
from symmetry import SymmetryReducer


def init_worker(puzzle, abort_val):
    """Initialize worker with its own solver and the shared abort flag."""
    global SOLVER, BRANCHES, ABORT_VAL
    ABORT_VAL = abort_val
    SOLVER = PuzzleSolver(puzzle, verbose=False)
    SOLVER.should_stop = lambda: ABORT_VAL.value == 1
    BRANCHES = SOLVER.branches()


def run_branch(task):
    """Searches one top-level branch. Returns (index, solutions, raw count, complete)."""
    index, cap = task
    # Check abort value (safe to read shared memory)
    if ABORT_VAL.value == 1:
        return index, [], 0, False

    SOLVER.max_solutions = cap
    solutions = SOLVER.solve_branch(BRANCHES[index])
    return index, solutions, SOLVER.raw_count, SOLVER.complete


def _consume(solutions, reducer, max_solutions):
    """Records solutions in order. Returns True once the limit is met."""
    for canonical in solutions:
        if reducer.record(canonical) and max_solutions is not None and len(reducer) >= max_solutions:
            return True
    return False


def solve_parallel(puzzle, max_solutions=None, processes=None, verbose=True):
    """
    Splits the search by the placement that fills cell 0 and runs the branches in a pool.

    Branch results are consumed in branch order, so the unique solutions come out in the
    same order as a single-process solve. Returns (solutions, stats).
    """
    puzzle.validate()
    if max_solutions is not None and max_solutions < 0:
        raise ValueError(f"max_solutions must be non-negative, got {max_solutions}")
    processes = processes or os.cpu_count()

    planner = PuzzleSolver(puzzle, verbose=False)
    num_branches = len(planner.branches())
    reducer = SymmetryReducer(puzzle)
    raw_count = 0
    done = max_solutions == 0
    start_time = time.time()

    if verbose:
        print(f"Solving {puzzle.name} with {processes} processes over {num_branches} branches...")

    if not done:
        # Use multiprocessing.Value for robust abort signaling
        abort_val = multiprocessing.Value('i', 0)
        tasks = [(i, max_solutions) for i in range(num_branches)]

        with multiprocessing.Pool(processes=processes, initializer=init_worker, initargs=(puzzle, abort_val)) as pool:
            try:
                for index, found, raw, complete in pool.imap(run_branch, tasks):
                    done = _consume(found, reducer, max_solutions)
                    if not done and not complete:
                        # the per-branch cap hid solutions that are still needed: search the whole branch
                        _, full, raw, _ = pool.apply(run_branch, ((index, None),))
                        done = _consume(full[len(found):], reducer, max_solutions)
                    raw_count += raw

                    if verbose:
                        print(f"Branch {index + 1}/{num_branches}: {len(reducer)} unique solutions", end='\r')
                    if done:
                        # Signal workers to abort their branches
                        abort_val.value = 1
                        break
            except KeyboardInterrupt:
                abort_val.value = 1
                raise

    elapsed = time.time() - start_time
    if verbose:
        print(f"\nUnique solutions: {len(reducer)} ({elapsed:.2f} seconds)")

    stats = {
        "raw_count": raw_count,
        "unique_count": len(reducer),
        "limit": max_solutions,
        "complete": not done,
        "elapsed_seconds": round(elapsed, 3),
        "processes": processes,
    }
    return list(reducer.solutions), stats


def main():
    parser = argparse.ArgumentParser(description="Run the packing search across several processes.")
    parser.add_argument("-t", "--threads", type=int, default=os.cpu_count(), help="Number of processes to use.")
    parser.add_argument("--puzzle", choices=sorted(PUZZLES), default="soma", help="Puzzle to solve.")
    parser.add_argument("-l", "--limit", type=int, default=None, help="Stop after this many unique solutions.")
    parser.add_argument("-o", "--output-dir", default="results", help="Directory for the solution files.")

    args = parser.parse_args()

    # Validation
    cpu_count = os.cpu_count()
    if args.threads < 1 or args.threads > cpu_count:
        print(f"Error: Requested threads ({args.threads}) must be between 1 and the CPU count ({cpu_count}).")
        sys.exit(1)
    if args.limit is not None and args.limit < 0:
        print("Error: --limit must be non-negative.")
        sys.exit(1)

    try:
        puzzle = get_puzzle(args.puzzle)
        solutions, stats = solve_parallel(puzzle, max_solutions=args.limit, processes=args.threads)
    except PuzzleInvalid as e:
        print(f"Error: {e}")
        sys.exit(1)

    bin_file, txt_file = save(puzzle, solutions, args.output_dir)
    save_summary(puzzle, stats, args.output_dir)
    print(f"Found {len(solutions)} solutions")
    print(f"Wrote {txt_file} and {bin_file}")


if __name__ == "__main__":
    multiprocessing.freeze_support()
    try:
        main()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(0)
