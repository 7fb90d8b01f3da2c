"""Insert coverage callbacks at the entry of every basic block of textual IR."""

from __future__ import annotations

import os
import random
import re
import time
from pathlib import Path
from typing import Iterator

from simplecov.coverage import MAP_SIZE

HIT_FUNCTION = "__mycov_hit"
HIT_DECLARATION = f"declare void @{HIT_FUNCTION}(i32)"

_INTRINSIC_PREFIXES = (
    "__asan_",
    "asan.",
    "__sanitizer_",
    "__inst_",
    "__cxx_",
    "__cxa_",
    "llvm.",
)

_DEFINE = re.compile(r"^define\b")
_FUNC_NAME = re.compile(r'@("(?:[^"\\]|\\.)*"|[-\w.$]+)\s*\(')
_HAS_HIT = re.compile(
    r"^(?:declare|define)\b[^@\n]*@" + re.escape(HIT_FUNCTION) + r"\s*\(", re.MULTILINE
)
_LABEL = re.compile(r'^(?:[-\w.$]+|"(?:[^"\\]|\\.)*"):')
_VALUE = r'^%[-\w.$"]+\s*=\s*'
_PHI = re.compile(_VALUE + r"phi\b")
_LANDINGPAD = re.compile(_VALUE + r"landingpad\b")
_EH_PAD = re.compile(_VALUE + r"(?:catchpad|cleanuppad)\b")
_CLAUSE = re.compile(r"^(?:catch|filter|cleanup)\b")


class InstrumentError(Exception):
    """Raised when IR cannot be read, instrumented or written back."""


def is_intrinsic_name(name: str) -> bool:
    """Return True for names of runtime or compiler intrinsics left untouched."""
    return name.startswith(_INTRINSIC_PREFIXES)


def _shuffled_ids(rng: random.Random) -> list[int]:
    ids = list(range(MAP_SIZE * 8))
    rng.shuffle(ids)
    return ids


def make_id_pool(seed: object = None) -> list[int]:
    """Return every block id in [0, MAP_SIZE*8) in an order fixed by ``seed``.

    Without a seed the current time is used, so each run differs.
    """
    if seed is None:
        seed = int(time.time())
    return _shuffled_ids(random.Random(seed))


def _function_name(line: str) -> str:
    match = _FUNC_NAME.search(line)
    if not match:
        raise InstrumentError(f"cannot find function name in: {line.strip()}")
    name = match.group(1)
    if name.startswith('"'):
        name = name[1:-1]
    return name


def _take_body(lines: Iterator[str], name: str) -> list[str]:
    body = []
    for line in lines:
        if line.strip() == "}":
            return body
        body.append(line)
    raise InstrumentError(f"unterminated body of function @{name}")


def _instrument_body(body: list[str], ids: Iterator[int]) -> list[str]:
    result: list[str] = []
    pending = True
    in_landingpad = False
    for line in body:
        stripped = line.strip()
        if not stripped or stripped.startswith(";"):
            result.append(line)
            continue
        if _LABEL.match(line):
            pending = True
            in_landingpad = False
            result.append(line)
            continue
        if pending:
            if in_landingpad and _CLAUSE.match(stripped):
                result.append(line)
                continue
            in_landingpad = bool(_LANDINGPAD.match(stripped))
            if in_landingpad or _PHI.match(stripped) or _EH_PAD.match(stripped):
                result.append(line)
                continue
            try:
                block_id = next(ids)
            except StopIteration:
                raise InstrumentError("Not enough unique branch IDs available.") from None
            result.append(f"  call void @{HIT_FUNCTION}(i32 {block_id})")
            pending = False
        result.append(line)
    return result


def instrument_module(ir: str, rng: random.Random | None = None) -> str:
    """Return ``ir`` with a coverage call at the start of every basic block.

    Block ids are drawn without repetition from a pool shuffled by ``rng``.
    Functions whose names mark them as intrinsics are skipped, and a
    declaration of the callback is added when the module lacks one.
    """
    if rng is None:
        rng = random.Random(int(time.time()))
    ids = iter(_shuffled_ids(rng))
    out: list[str] = []
    lines = iter(ir.splitlines())
    for line in lines:
        out.append(line)
        if _DEFINE.match(line) and line.rstrip().endswith("{"):
            name = _function_name(line)
            body = _take_body(lines, name)
            if not is_intrinsic_name(name):
                body = _instrument_body(body, ids)
            out.extend(body)
            out.append("}")
    if not _HAS_HIT.search(ir):
        out.extend(["", HIT_DECLARATION])
    return "\n".join(out) + "\n"


def instrument_file(
    filename: str | os.PathLike[str], rng: random.Random | None = None
) -> None:
    """Instrument the IR file ``filename`` in place."""
    path = Path(filename)
    try:
        ir = path.read_text()
    except OSError as exc:
        raise InstrumentError(f"Error reading IR file: {filename}") from exc
    result = instrument_module(ir, rng)
    try:
        path.write_text(result)
    except OSError as exc:
        raise InstrumentError(f"Could not open file for writing: {filename}") from exc