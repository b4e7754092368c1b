# mrwordcount

A small MapReduce word counter. A master process hands out map and reduce
tasks over TCP. Worker processes fetch the tasks, run them and report back.
A task that stays in progress for more than ten seconds is handed out
again, so the job still finishes when a worker dies.

## Install

```
pip install .
```

## Running a job

Start the master with the input files:

```
mrwordcount master book1.txt book2.txt
```

The master takes task requests on port 1234 and runs an HTTP server on
port 8080. The job uses 2 reduce tasks. Once every task is done, the master
merges results into `mr-final.txt` (see below) and keeps running until it
gets Ctrl+C or SIGTERM.

Start one or more workers in other terminals and point them at the master
as `host:port` (an empty host means `localhost`):

```
mrwordcount worker localhost:1234
```

To exercise fault tolerance, a worker crashes on purpose before about 5% of
its requests. It prints `Worker crashed` and exits with status 1. Before
about 10% of its requests it pauses for 0 to 4 seconds. The master hands an
unfinished task to another worker after the timeout.

The command exits with status 1 on a usage error, an unknown mode, a failed
connection to the master, or a simulated crash.

## Protocol

Requests and replies are one JSON object per line over TCP. A request has
the form `{"method": ..., "params": {...}}` with method `Master.GetTask` or
`Master.ReportTaskDone` (params `task_id` and `type`). The reply is
`{"result": {...}}` or `{"error": "..."}`.

## HTTP endpoints

- `/data`: JSON with `workers` (`id`, `tasks_assigned`), `tasks` (`id`,
  `type`, `status`) and `progress` in percent.
- `/` and `/script.js`: serve `web/index.html` and `web/script.js` from the
  master's working directory. Any other path returns 404.

## Files

- `mr-<job>-<map>-<reduce>`: intermediate output of a map task, one JSON
  object `{"Key": ..., "Value": ...}` per line. The job name is `wordcount`.
- `mr-out-<job>-<reduce>`: output of a reduce task, in the same format.
- `mr-final.txt`: the 5 most frequent words, one `word: count` per line,
  ranked by count and then by word. The master also prints them.

## Using it as a library

`mrwordcount.mapreduce` runs a job in a single process:

```python
from mrwordcount.mapreduce import sequential, map_f, reduce_f, merge_name

sequential("wordcount", ["book1.txt", "book2.txt"], 2, map_f, reduce_f)
print(open(merge_name("wordcount", 0)).read())
```

`do_map` and `do_reduce` each run one map or one reduce task.
`clean_intermediary` removes the intermediate files. `map_f` lower-cases
words and strips surrounding punctuation. `reduce_f` sums the counts.

`mrwordcount.master.Master` tracks tasks (`get_task`, `report_task_done`,
`snapshot`, `is_done`) and starts its servers with `start_rpc` and
`start_http`. It can be used as a context manager that shuts the servers
down on exit. `mrwordcount.master.merge_outputs(job_name, n_reduce, k)`
writes and returns the top `k` words. `mrwordcount.worker.Worker(address)`
connects to a master, and its `run()` serves tasks until the job is done.
`run()` raises `WorkerCrashed` on a simulated crash. Set `crash_rate` and
`delay_rate` on a worker to change how often this happens. Progress
messages go through the `logging` module.

## What it does not do

- The dashboard page is not included. `web/index.html` and `web/script.js`
  must be provided in the master's working directory. Without them, `/` and
  `/script.js` return 404, and only `/data` works.
- `merge_outputs` reads files named `mr-out-<n>` that hold whitespace-separated
  `word count` lines. It does not read the JSON `mr-out-<job>-<n>` files that
  reduce tasks write. After a distributed run, `mr-final.txt` is therefore
  empty unless such `mr-out-<n>` files are present.
- The job size is fixed on the command line: 2 reduce tasks and the top 5
  words. Ports 1234 and 8080 are also fixed.

## Tests

```
pip install .[test]
pytest
```