"""Task descriptions exchanged between the master and its workers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping


class TaskType(str, Enum):
    """Kind of work a worker is asked to do."""

    MAP = "map"
    REDUCE = "reduce"
    WAIT = "wait"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Task:
    """A unit of MapReduce work.

    ``file`` is the input file of a map task; ``reduce_task_number`` is the
    partition index of a reduce task.
    """

    type: TaskType
    id: int = 0
    job_name: str = ""
    file: str = ""
    n_reduce: int = 0
    n_map: int = 0
    reduce_task_number: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly mapping of this task."""
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        """Build a task from a mapping made by :meth:`to_dict`.

        Missing fields take their zero values; an unknown type raises
        ``ValueError`` and a missing one ``KeyError``.
        """
        return cls(
            type=TaskType(data["type"]),
            id=int(data.get("id", 0)),
            job_name=str(data.get("job_name", "")),
            file=str(data.get("file", "")),
            n_reduce=int(data.get("n_reduce", 0)),
            n_map=int(data.get("n_map", 0)),
            reduce_task_number=int(data.get("reduce_task_number", 0)),
        )