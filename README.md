# simplecov

Edge coverage for C and C++ programs built with clang.

The package has two commands:

- **`simplecov-cc`** stands in for `clang`. Each source file is lowered to
  textual LLVM IR, a call `call void @__mycov_hit(i32 <id>)` is inserted at
  the start of every basic block of every defined function whose name does not
  mark it as an intrinsic (`llvm.`, `__asan_`, `asan.`, `__sanitizer_`,
  `__inst_`, `__cxx_`, `__cxa_`), and the IR is compiled to an object file.
  Block ids are unique and drawn from a shuffled pool of `[0, 65536 * 8)`.
  Executables are linked together with a coverage runtime object.
- **`simplecov-monitor`** runs a program, passes its standard output and
  standard error through, and prints how many branch edges are set in a
  memory-mapped coverage file.

Coverage is a 65536-byte bitmap (`MAP_SIZE * 8` edge bits). An edge index is
`((previous_block * 16777619) mod 2**32) ^ current_block`, taken modulo the
bit count.

## Installation

```
pip install .
```

`simplecov-cc` needs `clang` on the `PATH`.

## Building an instrumented program

Use `simplecov-cc` the way you would use `clang`:

```
simplecov-cc -c foo.c -o foo.o
simplecov-cc main.c foo.o -o app
simplecov-cc -shared foo.o bar.o -o libfoo.so
```

- Arguments ending in `.c`, `.cpp`, `.cc` or `.cxx` are sources and must
  exist; `.o` and `.obj` are objects; anything else is passed on to `clang`.
- `-c` with exactly one source writes one instrumented object (`foo.o` by
  default, or the `-o` target). `-c` with several sources is an error.
- Without `-c`, each source is instrumented into an object next to it, and the
  given objects, the object of the first source and the coverage runtime are
  linked into `a.out` or the `-o` target.
- `-shared` links the object files into a shared library (`lib.so` by
  default). Source files cannot be combined with `-shared`.
- `-E` hands the whole command line to `clang` unchanged.
- With no sources and no objects, the remaining arguments go to `clang`
  unchanged.
- `-fsanitize=address` is dropped when the instrumented IR is compiled to an
  object.

The intermediate `.ll` files are left next to the sources. The command prints
its arguments first; errors are printed as `Error: ...` with exit status 1.

The runtime object linked into executables is `mycov_runtime.o` in the
current directory unless the `SIMPLECOV_RUNTIME` environment variable names
another file.

## Measuring coverage

```
simplecov-monitor ./app arg1 arg2
```

The monitor maps the coverage file `mycov_shm` (or the file named by
`SIMPLECOV_SHM`), creating it if needed, clears it, and reports:

```
[Periodic] Branches covered: 0
...program output...
[Periodic] Branches covered: 17
```

It reports at start-up, 10 seconds later, every 5 minutes after that, and
once more when the program exits or the monitor is interrupted with Ctrl-C.
The coverage file is removed afterwards.

## Using it from Python

```python
from simplecov.coverage import CoverageMap, count_covered, open_coverage_file

cov = CoverageMap(bytearray(65536))
cov.hit(12)
cov.hit(99)
print(cov.covered_count())   # 2
cov.reset()

with open_coverage_file("mycov_shm") as shared:
    print(shared.covered_count())
```

- `simplecov.instrument.instrument_module(ir, rng)` returns IR text with the
  coverage calls inserted (after any `phi`, `landingpad`, `catchpad` or
  `cleanuppad` that opens a block) and a `declare void @__mycov_hit(i32)`
  added when the module has none.
- `simplecov.instrument.instrument_file(path, rng)` does the same to a `.ll`
  file in place. Pass a `random.Random` to get a repeatable choice of block
  ids; without one the current time seeds the shuffle.
- `simplecov.instrument.make_id_pool(seed)` returns the shuffled id pool.
- Problems with the IR or the file raise `InstrumentError`.
- `simplecov.driver.parse_args`, `run`, `Invocation` and `Toolchain` expose
  the compiler driver; `simplecov.monitor.Monitor` exposes the monitor.

## What it does not do

The package does not include or build the coverage runtime object that
instrumented executables are linked against. You supply it yourself: it must
define `__mycov_hit(i32)` and set edge bits in the coverage file that
`simplecov-monitor` maps. `CoverageMap.hit` shows the recording it is expected
to do.