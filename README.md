# labkit

Tools for two systems exercises:

* **A malloc trace driver.** It replays allocator traces against a
  simulated heap. It checks that every request is handled correctly,
  then measures space utilisation and throughput and combines them into
  a performance index.
* **Network building blocks.** Buffered robust I/O on file descriptors,
  helpers that open client and listening TCP sockets, and a sample CGI
  program that adds two numbers.

## Installation

```
pip install .
```

Install with tests:

```
pip install ".[test]"
pytest
```

## The malloc driver

```
labkit-mdriver [-hvVgal] [-f <file>] [-t <dir>]
```

| Option      | Meaning                                              |
|-------------|------------------------------------------------------|
| `-a`        | Don't check the team structure.                      |
| `-f <file>` | Use `<file>` as the only trace file.                 |
| `-g`        | Print summary lines for an autograder.               |
| `-h`        | Print the usage message.                             |
| `-l`        | Also run the reference heap.                         |
| `-t <dir>`  | Directory that holds the default traces.             |
| `-v`        | Print per-trace performance breakdowns.              |
| `-V`        | Print additional debug information.                  |

Without `-f`, the driver runs the default set of traces
(`labkit.memlib.DEFAULT_TRACEFILES`) from the trace directory, so pass
`-t` to point it at the directory where your traces are kept.

A trace file opens with four header numbers: the suggested heap size,
the number of block ids, the number of operations and a weight. After
the header comes one request per line:

```
a <id> <size>    allocate
r <id> <size>    reallocate
f <id>           free
```

The performance index is made of two parts. Utilisation contributes 60%,
averaged over the traces. Throughput contributes 40%, and it counts in
full once it exceeds 600 Kops/s.

### Building blocks

* `labkit.memlib.SimulatedMemory` is a byte-addressed heap that grows
  only through `sbrk`. It raises `OutOfMemoryError` when the heap is
  exhausted.
* `labkit.mm.NaiveAllocator` is the baseline allocator. It bumps the
  break pointer, never reuses blocks, and implements `realloc` as
  `malloc` followed by a copy. `labkit.mm.Team` holds the team details
  that the driver checks.
* `labkit.trace` reads traces (`parse_trace`, `read_trace`) and tracks
  the extents of live payloads with `RangeList`. `RangeList` raises
  `PayloadError` for misaligned, out-of-heap or overlapping blocks.
* `labkit.driver.MallocDriver` runs the validity, utilisation and speed
  passes. `format_results` builds the per-trace table.
  `performance_index` computes the final score.
* `labkit.timers.FunctionTimer` and `labkit.cycles.fcyc` time a
  callable, either as an average over several runs or with the K-best
  sampling scheme (`KBestSampler`).

```python
from labkit.memlib import SimulatedMemory
from labkit.mm import NaiveAllocator

memory = SimulatedMemory(20 * (1 << 20))
allocator = NaiveAllocator(memory)
allocator.init()
p = allocator.malloc(100)
memory.fill(p, 0xAB, 100)
q = allocator.realloc(p, 200)
assert memory.read(q, 100) == bytes([0xAB]) * 100
```

## The CGI adder

`labkit-adder` reads two numbers from the `QUERY_STRING` environment
variable, in the form `<n1>&<n2>`, and writes a CGI response with their
sum to standard output:

```
QUERY_STRING="15000&213" labkit-adder
```

Without `QUERY_STRING` both numbers are taken as 0. A query without `&`
raises `ValueError`. `labkit.adder.render` returns the same response as
a string.

## Socket helpers

* `labkit.rio.RioReader` does buffered reads of whole lines
  (`readlineb`) or byte counts (`readnb`) on a descriptor.
* `readn` and `writen` are the unbuffered counterparts. `ltoa` formats
  an integer in any base from 2 to 36.
* `labkit.net.open_clientfd` and `labkit.net.open_listenfd` try every
  resolved address in turn and return a connected or listening socket.
  They raise `AddressLookupError` when a name cannot be resolved.

## What is not included

labkit has no web server and no proxy. The socket helpers and the CGI
adder are pieces you can build one from, but no command accepts HTTP
connections, serves files or runs CGI programs on a client's behalf.