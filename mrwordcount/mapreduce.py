"""Word-count map and reduce functions and the file-based task runners.

Intermediate and output files hold one JSON object per line of the form
``{"Key":...,"Value":...}``.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

log = logging.getLogger(__name__)

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_TRIM_CHARS = ".,!?:;\"'"
_LEADING_INT = re.compile(r"[ \t\r]*([+-]?[0-9]+)")


@dataclass(frozen=True)
class KeyValue:
    """A key-value pair produced by a map or reduce step."""

    key: str
    value: str


MapFunc = Callable[[str, str], Sequence[KeyValue]]
ReduceFunc = Callable[[str, Sequence[str]], str]


def ihash(s: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of *s*."""
    h = _FNV32_OFFSET
    for byte in s.encode("utf-8"):
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


def map_f(document: str, content: str) -> list[KeyValue]:
    """Count words in *content*, case-folded and stripped of punctuation."""
    counts = Counter(
        word
        for word in (raw.strip(_TRIM_CHARS).lower() for raw in content.split())
        if word
    )
    return [KeyValue(word, str(count)) for word, count in counts.items()]


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def reduce_f(key: str, values: Iterable[str]) -> str:
    """Sum the integer counts in *values*; unparsable values count as zero."""
    return str(sum(_leading_int(v) for v in values))


def reduce_name(job_name: str, map_task: int, reduce_task: int) -> str:
    """Name of the intermediate file from a map task for a reduce partition."""
    return f"mr-{job_name}-{map_task}-{reduce_task}"


def merge_name(job_name: str, reduce_task: int) -> str:
    """Name of the output file of a reduce task."""
    return f"mr-out-{job_name}-{reduce_task}"


def _encode(kv: KeyValue) -> str:
    record = {"Key": kv.key, "Value": kv.value}
    return json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"


def _to_key_value(obj: object) -> KeyValue | None:
    if not isinstance(obj, dict):
        return None
    fields = {str(name).lower(): value for name, value in obj.items()}
    key = fields.get("key", "")
    value = fields.get("value", "")
    if not isinstance(key, str) or not isinstance(value, str):
        return None
    return KeyValue(key, value)


def _decode_stream(text: str) -> Iterator[KeyValue]:
    """Yield records from a stream of JSON objects, stopping at the first bad one."""
    decoder = json.JSONDecoder()
    pos = 0
    end = len(text)
    while True:
        while pos < end and text[pos] in " \t\r\n":
            pos += 1
        if pos >= end:
            return
        try:
            obj, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            return
        kv = _to_key_value(obj)
        if kv is None:
            return
        yield kv


def do_map(
    job_name: str,
    map_task_number: int,
    in_file: str,
    n_reduce: int,
    map_f: MapFunc,
) -> None:
    """Run *map_f* over *in_file* and partition its output into intermediate files.

    One file per reduce partition is written, even when it is empty. An
    unreadable input file is logged and leaves no files behind.
    """
    if n_reduce < 1:
        raise ValueError(f"n_reduce must be positive, got {n_reduce}")
    try:
        content = Path(in_file).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        log.error("do_map: failed to read %s: %s", in_file, exc)
        return

    buckets: list[list[KeyValue]] = [[] for _ in range(n_reduce)]
    for kv in map_f(str(in_file), content):
        buckets[ihash(kv.key) % n_reduce].append(kv)

    for reduce_task, bucket in enumerate(buckets):
        file_name = reduce_name(job_name, map_task_number, reduce_task)
        log.info("do_map: creating file %s", file_name)
        try:
            with open(file_name, "w", encoding="utf-8") as out:
                out.writelines(_encode(kv) for kv in bucket)
        except OSError as exc:
            log.error("do_map: failed to create %s: %s", file_name, exc)


def do_reduce(
    job_name: str,
    reduce_task_number: int,
    n_map: int,
    reduce_f: ReduceFunc,
) -> None:
    """Gather one partition from every map task, reduce it, and write the output file.

    Missing intermediate files are logged and skipped.
    """
    grouped: defaultdict[str, list[str]] = defaultdict(list)
    for map_task in range(n_map):
        file_name = reduce_name(job_name, map_task, reduce_task_number)
        log.info("do_reduce: reading file %s", file_name)
        try:
            text = Path(file_name).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.error("do_reduce: failed to open %s: %s", file_name, exc)
            continue
        for kv in _decode_stream(text):
            grouped[kv.key].append(kv.value)

    output_file = merge_name(job_name, reduce_task_number)
    log.info("do_reduce: writing to %s", output_file)
    try:
        with open(output_file, "w", encoding="utf-8") as out:
            for key, values in grouped.items():
                out.write(_encode(KeyValue(key, reduce_f(key, values))))
    except OSError as exc:
        log.error("do_reduce: failed to create %s: %s", output_file, exc)


def sequential(
    job_name: str,
    inputs: Sequence[str],
    n_reduce: int,
    map_f: MapFunc,
    reduce_f: ReduceFunc,
) -> None:
    """Run every map task and then every reduce task, one after another."""
    for map_task, file_name in enumerate(inputs):
        log.info("sequential: running map task %d on %s", map_task, file_name)
        do_map(job_name, map_task, file_name, n_reduce, map_f)
    for reduce_task in range(n_reduce):
        log.info("sequential: running reduce task %d", reduce_task)
        do_reduce(job_name, reduce_task, len(inputs), reduce_f)


def clean_intermediary(job_name: str, n_map: int, n_reduce: int) -> None:
    """Delete the intermediate files of a job; files that cannot be removed are logged."""
    for map_task in range(n_map):
        for reduce_task in range(n_reduce):
            file_name = reduce_name(job_name, map_task, reduce_task)
            try:
                Path(file_name).unlink()
            except OSError as exc:
                log.warning("clean_intermediary: failed to remove %s: %s", file_name, exc)
            else:
                log.info("clean_intermediary: removed %s", file_name)