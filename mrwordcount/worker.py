"""A worker that asks the master for tasks and runs them.

Before each request it may simulate a crash (``crash_rate``) or a pause of
a few seconds (``delay_rate``).
"""

from __future__ import annotations

import json
import logging
import random
import socket
import time
from typing import Any

from .common import Task, TaskType
from .mapreduce import do_map, do_reduce, map_f, reduce_f
from .master import GET_TASK, REPORT_TASK_DONE

log = logging.getLogger(__name__)

CRASH_RATE = 0.05
DELAY_RATE = 0.10
MAX_DELAY_SECONDS = 5
RETRY_DELAY = 1.0


class WorkerCrashed(RuntimeError):
    """Raised when the worker simulates a crash."""


class _RPCError(Exception):
    """The master answered a call with an error."""


class Worker:
    """A connection to a master and the loop that serves its tasks."""

    def __init__(self, master_addr: str) -> None:
        self.master_addr = master_addr
        self.crash_rate = CRASH_RATE
        self.delay_rate = DELAY_RATE
        host, _, port_text = master_addr.rpartition(":")
        try:
            self._sock = socket.create_connection((host.strip("[]") or "localhost", int(port_text)))
        except (OSError, ValueError) as exc:
            raise ConnectionError(f"failed to connect to master: {exc}") from exc
        self._stream = self._sock.makefile("rwb")

    def __enter__(self) -> "Worker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the connection to the master."""
        self._stream.close()
        self._sock.close()

    def run(self) -> None:
        """Serve tasks until the master signals that the job is done.

        Raises :class:`WorkerCrashed` when a crash is simulated.
        """
        while True:
            if random.random() < self.crash_rate:
                log.info("Worker crashed")
                raise WorkerCrashed("worker crashed")
            if random.random() < self.delay_rate:
                delay = random.randrange(MAX_DELAY_SECONDS)
                log.info("Worker delayed for %ds", delay)
                time.sleep(delay)

            try:
                task = Task.from_dict(self._call(GET_TASK, {})["task"])
            except (OSError, _RPCError, ValueError, KeyError) as exc:
                log.warning("GetTask failed: %s", exc)
                time.sleep(RETRY_DELAY)
                continue

            if task.type is TaskType.MAP:
                log.info("Worker executing map task %d for file %s", task.id, task.file)
                do_map(task.job_name, task.id, task.file, task.n_reduce, map_f)
            elif task.type is TaskType.REDUCE:
                log.info("Worker executing reduce task %d (index %d)",
                         task.id, task.reduce_task_number)
                do_reduce(task.job_name, task.reduce_task_number, task.n_map, reduce_f)
            elif task.type is TaskType.WAIT:
                time.sleep(RETRY_DELAY)
                continue
            else:
                log.info("Worker received done signal")
                return
            self._report_task_done(task.id, task.type)

    def _report_task_done(self, task_id: int, task_type: TaskType) -> None:
        try:
            result = self._call(REPORT_TASK_DONE, {"task_id": task_id, "type": task_type.value})
            if not result.get("success"):
                raise _RPCError("rejected by master")
        except (OSError, _RPCError, ValueError) as exc:
            log.warning("ReportTaskDone failed for task %d: %s", task_id, exc)

    def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        self._stream.write((json.dumps({"method": method, "params": params}) + "\n").encode())
        self._stream.flush()
        line = self._stream.readline()
        if not line:
            raise ConnectionError("connection to master closed")
        reply = json.loads(line)
        if isinstance(reply, dict) and "error" in reply:
            raise _RPCError(str(reply["error"]))
        result = reply.get("result") if isinstance(reply, dict) else None
        if not isinstance(result, dict):
            raise _RPCError("malformed reply from master")
        return result