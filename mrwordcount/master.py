"""The master of a word-count job: hands out tasks over RPC and serves a dashboard.

The RPC protocol is one JSON object per line over TCP: a request
``{"method": ..., "params": {...}}`` gets ``{"result": {...}}`` or ``{"error": "..."}``.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import re
import signal
import socketserver
import threading
import time
from collections import Counter
from enum import Enum
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import urlsplit

from .common import Task, TaskType

log = logging.getLogger(__name__)

JOB_NAME = "wordcount"
TASK_TIMEOUT = 10.0
GET_TASK = "Master.GetTask"
REPORT_TASK_DONE = "Master.ReportTaskDone"
RPC_PORT = 1234
HTTP_PORT = 8080
WEB_DIR = Path("web")
FINAL_OUTPUT = "mr-final.txt"

_COUNT = re.compile(r"[+-]?[0-9]+")


class TaskState(str, Enum):
    """Progress of a single task."""

    IDLE = "idle"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


class _RPCHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        for line in self.rfile:
            if line.strip():
                reply = self.server.master._dispatch(line)  # type: ignore[attr-defined]
                self.wfile.write((json.dumps(reply) + "\n").encode("utf-8"))
                self.wfile.flush()


class _DashboardHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        path = urlsplit(self.path).path
        if path == "/data":
            data = self.server.master.snapshot()  # type: ignore[attr-defined]
            log.info(
                "Serving /data: %d tasks, %d workers, %.2f%% progress",
                len(data["tasks"]), len(data["workers"]), data["progress"],
            )
            self._send(200, (json.dumps(data) + "\n").encode(), "application/json", True)
        elif path in ("/", "/script.js"):
            file = WEB_DIR / ("index.html" if path == "/" else "script.js")
            log.info("Serving %s", file.name)
            try:
                body = file.read_bytes()
            except OSError:
                self._send(404, b"404 page not found\n", "text/plain; charset=utf-8")
                return
            self._send(200, body, mimetypes.guess_type(file.name)[0] or "application/octet-stream")
        else:
            log.info("404: Path %s not found", path)
            self._send(404, b"Not Found\n", "text/plain; charset=utf-8")

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        log.debug(format, *args)

    def _send(self, status: int, body: bytes, content_type: str, no_cache: bool = False) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        if no_cache:
            self.send_header("Cache-Control", "no-cache")
        self.end_headers()
        self.wfile.write(body)


class _RPCServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class _DashboardServer(ThreadingHTTPServer):
    allow_reuse_address = True


class Master:
    """Keeps track of the tasks of one job and assigns them to workers."""

    def __init__(self, input_files: Sequence[str], n_reduce: int) -> None:
        self._lock = threading.Lock()
        n_map = len(input_files)
        self._tasks: list[Task] = [
            Task(TaskType.MAP, id=i, job_name=JOB_NAME, file=file, n_reduce=n_reduce, n_map=n_map)
            for i, file in enumerate(input_files)
        ] + [
            Task(TaskType.REDUCE, id=n_map + r, job_name=JOB_NAME, n_reduce=n_reduce,
                 n_map=n_map, reduce_task_number=r)
            for r in range(n_reduce)
        ]
        self._states = {t.id: TaskState.IDLE for t in self._tasks}
        self._started: dict[int, float] = {}
        self._workers: Counter[str] = Counter()
        self._worker_count = 0
        self._done = False
        self._servers: list[tuple[socketserver.BaseServer, threading.Thread]] = []

    def __enter__(self) -> "Master":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def get_task(self) -> Task:
        """Hand out the next task, a wait instruction, or the done signal.

        Reduce tasks wait until every map task is done; a task in progress
        for longer than ``TASK_TIMEOUT`` seconds is handed out again.
        """
        with self._lock:
            if self._done:
                return Task(TaskType.DONE)
            worker_id = f"worker-{self._worker_count}"
            self._workers[worker_id] += 1
            maps_done = all(
                self._states[t.id] is TaskState.DONE for t in self._tasks if t.type is TaskType.MAP
            )
            now = time.monotonic()
            for task in self._tasks:
                if task.type is TaskType.REDUCE and not maps_done:
                    continue
                state = self._states[task.id]
                if state is TaskState.IDLE:
                    self._states[task.id] = TaskState.IN_PROGRESS
                    action = "Assigned"
                elif state is TaskState.IN_PROGRESS and now - self._started[task.id] > TASK_TIMEOUT:
                    action = "Reassigning"
                else:
                    continue
                self._started[task.id] = now
                log.info("%s task %d (%s) to %s", action, task.id, task.type, worker_id)
                return task
            if all(state is TaskState.DONE for state in self._states.values()):
                self._done = True
                return Task(TaskType.DONE)
            return Task(TaskType.WAIT)

    def report_task_done(self, task_id: int, task_type: TaskType | str) -> bool:
        """Mark an in-progress task as done; return whether it was accepted."""
        task_type = TaskType(task_type)
        with self._lock:
            if (
                self._states.get(task_id) is TaskState.IN_PROGRESS
                and self._tasks[task_id].type is task_type
            ):
                self._states[task_id] = TaskState.DONE
                log.info("Task %d (%s) completed", task_id, task_type)
                return True
            return False

    def snapshot(self) -> dict[str, Any]:
        """Return the dashboard view of workers, tasks and progress in percent."""
        with self._lock:
            workers = [{"id": w, "tasks_assigned": n} for w, n in self._workers.items()]
            tasks = [
                {"id": t.id, "type": t.type.value, "status": self._states[t.id].value}
                for t in self._tasks
            ]
            done = sum(state is TaskState.DONE for state in self._states.values())
        progress = done / len(tasks) * 100 if tasks else 0.0
        return {"workers": workers, "tasks": tasks, "progress": progress}

    def is_done(self) -> bool:
        """Whether the job has finished."""
        with self._lock:
            return self._done

    def start_rpc(self, host: str = "", port: int = RPC_PORT) -> tuple[str, int]:
        """Start the task RPC server in the background; return its bound address."""
        return self._serve(_RPCServer((host, port), _RPCHandler))

    def start_http(self, host: str = "", port: int = HTTP_PORT) -> tuple[str, int]:
        """Start the dashboard HTTP server in the background; return its bound address."""
        address = self._serve(_DashboardServer((host, port), _DashboardHandler))
        log.info("Starting HTTP server on %s:%d", host, address[1])
        return address

    def shutdown(self) -> None:
        """Stop any servers started by this master."""
        servers, self._servers = self._servers, []
        for server, thread in servers:
            server.shutdown()
            server.server_close()
            thread.join()

    def _serve(self, server: Any) -> tuple[str, int]:
        server.master = self
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        self._servers.append((server, thread))
        return server.server_address[0], server.server_address[1]

    def _dispatch(self, raw: bytes | str) -> dict[str, Any]:
        try:
            request = json.loads(raw)
            if not isinstance(request, dict):
                raise ValueError("request must be a JSON object")
            method = request.get("method")
            params = request.get("params") or {}
            if method == GET_TASK:
                return {"result": {"task": self.get_task().to_dict()}}
            if method == REPORT_TASK_DONE:
                accepted = self.report_task_done(int(params["task_id"]), params["type"])
                return {"result": {"success": accepted}}
            raise LookupError(f"unknown method {method!r}")
        except (ValueError, LookupError, TypeError) as exc:
            return {"error": str(exc)}


def merge_outputs(job_name: str, n_reduce: int, k: int) -> list[tuple[str, int]]:
    """Merge the ``mr-out-<n>`` files, write the top *k* words to ``mr-final.txt``
    and return them, ranked by descending count then word.

    Unreadable files and malformed lines are logged and skipped.
    """
    counts: Counter[str] = Counter()
    for reduce_task in range(n_reduce):
        file_name = f"mr-out-{reduce_task}"
        try:
            content = Path(file_name).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.error("merge_outputs: failed to read %s: %s", file_name, exc)
            continue
        for line in filter(None, content.split("\n")):
            parts = line.split()
            if len(parts) != 2:
                log.error("merge_outputs: invalid line in %s: %s", file_name, line)
            elif not _COUNT.fullmatch(parts[1]):
                log.error("merge_outputs: invalid count in %s: %s", file_name, parts[1])
            else:
                counts[parts[0]] += int(parts[1])

    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[: max(k, 0)]
    with open(FINAL_OUTPUT, "w", encoding="utf-8") as out:
        for rank, (word, count) in enumerate(ranked, start=1):
            out.write(f"{word}: {count}\n")
            print(f"Top {rank}: {word}: {count}")
    return ranked


def _wait_for_signal() -> None:
    stop = threading.Event()
    previous = {
        sig: signal.signal(sig, lambda *_: stop.set()) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        while not stop.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_distributed(input_files: Sequence[str], n_reduce: int, k: int) -> None:
    """Serve tasks until the job is done, merge the results, then serve the
    dashboard until interrupted."""
    with Master(input_files, n_reduce) as master:
        master.start_rpc("", RPC_PORT)
        master.start_http("", HTTP_PORT)
        while not master.is_done():
            time.sleep(1)
        merge_outputs(JOB_NAME, n_reduce, k)
        log.info("Job completed. HTTP server running on :%d. Press Ctrl+C to exit.", HTTP_PORT)
        _wait_for_signal()
        log.info("Shutting down")