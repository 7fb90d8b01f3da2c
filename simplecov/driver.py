"""Compiler driver that builds C/C++ programs with block-coverage instrumentation.

Sources are lowered to textual IR, instrumented, compiled to objects and linked
together with the coverage runtime object.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from simplecov.instrument import InstrumentError, instrument_file

SOURCE_EXTENSIONS = frozenset({".c", ".cpp", ".cc", ".cxx"})
OBJECT_EXTENSIONS = frozenset({".o", ".obj"})
DEFAULT_RUNTIME = "mycov_runtime.o"
DEFAULT_EXECUTABLE = "a.out"
DEFAULT_SHARED_LIBRARY = "lib.so"
_DROPPED_AT_OBJECT_STAGE = frozenset({"-fsanitize=address"})


class DriverError(Exception):
    """Raised when the command line cannot be handled."""


def get_file_ext(filename: str) -> str:
    """Return everything from the last dot of ``filename`` on, or ''."""
    pos = filename.rfind(".")
    return filename[pos:] if pos != -1 else ""


def get_file_basename(filename: str) -> str:
    """Return ``filename`` without the part from its last dot on."""
    pos = filename.rfind(".")
    return filename[:pos] if pos != -1 else filename


def is_src_file(filename: str) -> bool:
    """Return True for C and C++ source file names."""
    return get_file_ext(filename) in SOURCE_EXTENSIONS


def is_obj_file(filename: str) -> bool:
    """Return True for object file names."""
    return get_file_ext(filename) in OBJECT_EXTENSIONS


def filename_to_ll(src: str) -> str:
    """Return the IR file name that belongs to the source ``src``."""
    return get_file_basename(src) + ".ll"


def file_name_to_obj(src: str) -> str:
    """Return the object file name that belongs to the source ``src``."""
    return get_file_basename(src) + ".o"


@dataclass
class Invocation:
    """A parsed compiler command line."""

    src_files: list[str] = field(default_factory=list)
    obj_files: list[str] = field(default_factory=list)
    other_args: list[str] = field(default_factory=list)
    output_file: str | None = None
    link: bool = True
    shared: bool = False
    preprocess: bool = False
    raw_args: list[str] = field(default_factory=list)


def parse_args(argv: Sequence[str]) -> Invocation:
    """Sort compiler arguments into sources, objects, flags and the rest.

    Every source file named must exist; otherwise DriverError is raised.
    """
    argv = list(argv)
    inv = Invocation(raw_args=list(argv))
    args = iter(argv)
    for arg in args:
        if arg == "-o":
            target = next(args, None)
            if target is None:
                inv.other_args.append(arg)
            else:
                inv.output_file = target
        elif arg == "-c":
            inv.link = False
        elif arg == "-E":
            inv.preprocess = True
        elif is_src_file(arg):
            if not Path(arg).exists():
                raise DriverError(f"Source file '{arg}' not found")
            inv.src_files.append(arg)
        elif is_obj_file(arg):
            inv.obj_files.append(arg)
        elif arg == "-shared":
            inv.shared = True
        else:
            inv.other_args.append(arg)
    return inv


def _execute(command: Sequence[str]) -> int:
    try:
        return subprocess.run(list(command), check=False).returncode
    except OSError as exc:
        raise DriverError(f"failed to execute {command[0]}: {exc}") from exc


def _default_runtime() -> str:
    return os.environ.get("SIMPLECOV_RUNTIME", DEFAULT_RUNTIME)


@dataclass
class Toolchain:
    """The compiler, coverage runtime and instrumenter used to build programs."""

    clang: str = "clang"
    runtime: str = field(default_factory=_default_runtime)
    runner: Callable[[Sequence[str]], int] = _execute
    instrumenter: Callable[[str], None] = instrument_file
    stream: TextIO | None = None

    def run_clang(self, args: Sequence[str]) -> int:
        """Run the compiler on ``args`` unchanged, echoing the command."""
        command = [self.clang, *args]
        print(" ".join(command), file=self.stream or sys.stdout)
        return self.runner(command)

    def create_ll_file(self, src_file: str, ll_file: str, args: Sequence[str]) -> int:
        """Lower ``src_file`` to textual IR in ``ll_file``."""
        return self.runner(
            [self.clang, "-S", "-emit-llvm", src_file, "-o", ll_file, *args]
        )

    def create_obj_file(self, ll_file: str, out_file: str, args: Sequence[str]) -> int:
        """Compile the IR file ``ll_file`` to the object ``out_file``."""
        kept = [arg for arg in args if arg not in _DROPPED_AT_OBJECT_STAGE]
        return self.runner([self.clang, "-c", ll_file, "-o", out_file, *kept])

    def compile_src_to_obj(self, src: str, args: Sequence[str]) -> int:
        """Build the instrumented object for ``src`` next to it."""
        ll_file = filename_to_ll(src)
        self.create_ll_file(src, ll_file, args)
        self.instrumenter(ll_file)
        return self.create_obj_file(ll_file, file_name_to_obj(src), args)

    def link_final_executable(
        self, objs: Sequence[str], output: str, args: Sequence[str]
    ) -> int:
        """Link ``objs`` and the coverage runtime into ``output``."""
        return self.runner([self.clang, *objs, self.runtime, "-o", output, *args])

    def link_shared_library(
        self, objs: Sequence[str], output: str, args: Sequence[str]
    ) -> int:
        """Link ``objs`` into the shared library ``output``."""
        return self.runner([self.clang, "-shared", *objs, "-o", output, *args])


def run(invocation: Invocation, toolchain: Toolchain | None = None) -> int:
    """Carry out ``invocation`` and return the exit status."""
    if toolchain is None:
        toolchain = Toolchain()
    inv = invocation

    if inv.preprocess:
        return toolchain.run_clang(inv.raw_args)

    if inv.shared:
        output = inv.output_file or DEFAULT_SHARED_LIBRARY
        if inv.src_files:
            raise DriverError("Cannot mix source files with -shared option")
        return toolchain.link_shared_library(inv.obj_files, output, inv.other_args)

    if not inv.src_files and not inv.obj_files:
        return toolchain.run_clang(inv.other_args)

    for src in inv.src_files:
        toolchain.compile_src_to_obj(src, inv.other_args)

    if inv.link:
        output = inv.output_file or DEFAULT_EXECUTABLE
        objs = list(inv.obj_files)
        if inv.src_files:
            objs.append(file_name_to_obj(inv.src_files[0]))
        return toolchain.link_final_executable(objs, output, inv.other_args)

    if len(inv.src_files) != 1:
        raise DriverError("Unsupported combination of arguments for -c")
    src = inv.src_files[0]
    out = inv.output_file or file_name_to_obj(src)
    ll_file = filename_to_ll(src)
    toolchain.create_ll_file(src, ll_file, inv.other_args)
    toolchain.instrumenter(ll_file)
    toolchain.create_obj_file(ll_file, out, inv.other_args)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point: behaves like the compiler, adding coverage."""
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)
    for i, arg in enumerate([sys.argv[0], *argv]):
        print(f"args[{i}] = {arg}")
    try:
        return run(parse_args(argv))
    except (DriverError, InstrumentError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())