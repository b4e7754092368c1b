"""Command line entry point: run a master or a worker."""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from .master import FINAL_OUTPUT, run_distributed
from .worker import Worker, WorkerCrashed

N_REDUCE = 2
TOP_K = 5


def main(argv: Sequence[str] | None = None) -> int:
    """Run ``master FILE...`` or ``worker ADDRESS``; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("Usage: mrwordcount master|worker [input_file1 ...|master_addr]", file=sys.stderr)
        return 1
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    mode, rest = args[0], args[1:]
    if mode == "master":
        try:
            run_distributed(rest, N_REDUCE, TOP_K)
        except (OSError, ValueError) as exc:
            print(f"Distributed MapReduce failed: {exc}", file=sys.stderr)
            return 1
        print(f"Distributed MapReduce completed. Check {FINAL_OUTPUT} for top words.")
        return 0
    if mode == "worker":
        try:
            worker = Worker(rest[0])
        except OSError as exc:
            print(f"Worker failed to start: {exc}", file=sys.stderr)
            return 1
        with worker:
            try:
                worker.run()
            except WorkerCrashed:
                print("Worker crashed")
                return 1
            except OSError as exc:
                print(f"Worker failed: {exc}", file=sys.stderr)
                return 1
        return 0
    print(f"Unknown mode: {mode}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())