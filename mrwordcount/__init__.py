"""MapReduce word counting: a task-serving master, workers and a single-process runner."""

__version__ = "0.1.0"

__all__ = ["cli", "common", "mapreduce", "master", "worker"]