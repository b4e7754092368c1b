import json
from pathlib import Path

import pytest

from mrwordcount.mapreduce import (
    KeyValue,
    clean_intermediary,
    do_map,
    do_reduce,
    ihash,
    map_f,
    merge_name,
    reduce_f,
    reduce_name,
    sequential,
)


@pytest.fixture(autouse=True)
def _workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def decode_map_from_file(file_name):
    result = {}
    for line in Path(file_name).read_text(encoding="utf-8").splitlines():
        if line.strip():
            record = json.loads(line)
            result[record["Key"]] = record["Value"]
    return result


def encode_records(file_name, records):
    with open(file_name, "w", encoding="utf-8") as out:
        for key, value in records:
            out.write(json.dumps({"Key": key, "Value": value}) + "\n")


def as_dict(kvs):
    return {kv.key: kv.value for kv in kvs}


# Carried over from the source's word count tests.


def test_map_f_case():
    res = map_f("testDoc", "ORANGE Banana bananA ApplE orange baNana")
    assert as_dict(res) == {"banana": "3", "orange": "2", "apple": "1"}


def test_map_f():
    res = map_f("testDoc", "orange banana banana apple orange banana")
    assert as_dict(res) == {"banana": "3", "orange": "2", "apple": "1"}


def test_reduce_f():
    assert reduce_f("dummy", ["1", "2", "1"]) == "4"


# Carried over from the source's do_map / do_reduce tests.


def test_do_map():
    input_file = "test_input.txt"
    Path(input_file).write_text("orange banana banana apple orange banana")
    job_name = "jobwcount"
    map_task_number = 555
    n_reduce = 10

    do_map(job_name, map_task_number, input_file, n_reduce, map_f)

    got = {}
    for r in range(n_reduce):
        got.update(decode_map_from_file(reduce_name(job_name, map_task_number, r)))
    assert got == {"banana": "3", "orange": "2", "apple": "1"}


def test_do_reduce():
    job_name = "job1"
    reduce_task_number = 0
    inputs = [
        [("apple", "1"), ("banana", "2")],
        [("apple", "1"), ("orange", "2")],
    ]
    for map_task, records in enumerate(inputs):
        encode_records(reduce_name(job_name, map_task, reduce_task_number), records)

    do_reduce(job_name, reduce_task_number, len(inputs), reduce_f)

    got = decode_map_from_file(merge_name(job_name, reduce_task_number))
    assert got == {"banana": "2", "orange": "2", "apple": "2"}


# Carried over from the source's sequential test.


def test_map_reduce_sequential(_workdir):
    input_file = "input_test.txt"
    Path(input_file).write_text("foo bar foo baz foo bar")
    n_reduce = 2

    sequential("testjob", [input_file], n_reduce, map_f, reduce_f)

    got = {}
    for r in range(n_reduce):
        got.update(decode_map_from_file(merge_name("testjob", r)))
    assert got == {"foo": "3", "bar": "2", "baz": "1"}

    clean_intermediary("testjob", 1, n_reduce)
    assert not any((_workdir / reduce_name("testjob", 0, r)).exists() for r in range(n_reduce))
    assert all((_workdir / merge_name("testjob", r)).exists() for r in range(n_reduce))


# Further checks.


def test_file_names_follow_format():
    assert reduce_name("jobwcount", 555, 3) == "mr-jobwcount-555-3"
    assert merge_name("testjob", 1) == "mr-out-testjob-1"


def test_ihash_fnv1a_vectors():
    assert ihash("") == 0x811C9DC5
    assert ihash("a") == 0xE40C292C


def test_map_f_strips_punctuation_and_drops_empty_words():
    res = map_f("doc", 'Hello, "hello"! ... world? world;')
    assert as_dict(res) == {"hello": "2", "world": "2"}


def test_map_f_empty_content():
    assert map_f("doc", "   \n\t ") == []


def test_reduce_f_ignores_unparsable_values():
    assert reduce_f("k", ["3", "abc", "", " 2"]) == "5"


def test_reduce_f_empty_values():
    assert reduce_f("k", []) == "0"


def test_do_map_partitions_by_hash():
    Path("in.txt").write_text("alpha beta gamma delta epsilon zeta eta theta")
    n_reduce = 3
    do_map("part", 0, "in.txt", n_reduce, map_f)
    seen = set()
    for r in range(n_reduce):
        keys = decode_map_from_file(reduce_name("part", 0, r))
        assert all(ihash(key) % n_reduce == r for key in keys)
        seen.update(keys)
    assert seen == {"alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta"}


def test_do_map_writes_compact_json_lines():
    Path("in.txt").write_text("apple")
    do_map("fmt", 0, "in.txt", 1, map_f)
    assert Path(reduce_name("fmt", 0, 0)).read_text() == '{"Key":"apple","Value":"1"}\n'


def test_do_map_missing_input_writes_nothing(_workdir):
    do_map("missing", 0, "no_such_file.txt", 2, map_f)
    expected_outputs = [_workdir / reduce_name("missing", 0, r) for r in range(2)]
    assert [path.exists() for path in expected_outputs] == [False, False]
    assert list(_workdir.iterdir()) == []


def test_do_map_rejects_non_positive_n_reduce():
    Path("in.txt").write_text("apple")
    with pytest.raises(ValueError):
        do_map("bad", 0, "in.txt", 0, map_f)


def test_do_reduce_skips_missing_intermediate_files():
    encode_records(reduce_name("gap", 1, 0), [("apple", "4")])
    do_reduce("gap", 0, 2, reduce_f)
    assert decode_map_from_file(merge_name("gap", 0)) == {"apple": "4"}


def test_do_reduce_stops_at_corrupt_record():
    Path(reduce_name("bad", 0, 0)).write_text(
        '{"Key":"apple","Value":"1"}\nnot json\n{"Key":"pear","Value":"1"}\n'
    )
    do_reduce("bad", 0, 1, reduce_f)
    assert decode_map_from_file(merge_name("bad", 0)) == {"apple": "1"}


def test_do_reduce_uses_custom_reduce_function():
    encode_records(reduce_name("join", 0, 0), [("k", "a"), ("k", "b")])
    do_reduce("join", 0, 1, lambda key, values: "+".join(values))
    assert decode_map_from_file(merge_name("join", 0)) == {"k": "a+b"}


def test_map_then_reduce_round_trip_preserves_counts():
    Path("in.txt").write_text("x y x z x y")
    do_map("rt", 0, "in.txt", 2, map_f)
    got = {}
    for r in range(2):
        do_reduce("rt", r, 1, reduce_f)
        got.update(decode_map_from_file(merge_name("rt", r)))
    assert got == as_dict(map_f("in.txt", "x y x z x y"))


def test_clean_intermediary_tolerates_missing_files(_workdir):
    existing = _workdir / reduce_name("cl", 0, 0)
    encode_records(existing, [("a", "1")])
    assert existing.exists()
    clean_intermediary("cl", 2, 2)
    assert existing.exists() is False
    assert list(_workdir.iterdir()) == []


def test_key_value_equality():
    assert KeyValue("a", "1") == KeyValue("a", "1")
    assert KeyValue("a", "1") != KeyValue("a", "2")