import random
import re

import pytest

from simplecov.coverage import MAP_SIZE
from simplecov.instrument import (
    HIT_DECLARATION,
    InstrumentError,
    instrument_file,
    instrument_module,
    is_intrinsic_name,
    make_id_pool,
)

SAMPLE_IR = """\
; ModuleID = 'test.c'
source_filename = "test.c"

define dso_local i32 @main() #0 {
  %1 = alloca i32, align 4
  %c = icmp sgt i32 100, 50
  br i1 %c, label %2, label %3

2:                                                ; preds = %0
  br label %4

3:                                                ; preds = %0
  br label %4

4:                                                ; preds = %3, %2
  %5 = phi i32 [ 1, %2 ], [ 2, %3 ]
  ret i32 %5
}

declare i32 @printf(i8*, ...)

define internal void @__asan_init_module() {
  ret void
}

define void @helper() {
entry:
  ret void
}
"""

CALL = re.compile(r"call void @__mycov_hit\(i32 (\d+)\)")


def _ids(ir):
    return [int(x) for x in CALL.findall(ir)]


@pytest.mark.parametrize(
    "name",
    ["__asan_report", "asan.module_ctor", "__sanitizer_cov", "__inst_x",
     "__cxx_global_var_init", "__cxa_atexit", "llvm.memcpy.p0i8"],
)
def test_intrinsic_names(name):
    assert is_intrinsic_name(name) is True


@pytest.mark.parametrize("name", ["main", "helper", "my_llvm.thing", "asan"])
def test_ordinary_names(name):
    assert is_intrinsic_name(name) is False


def test_id_pool_is_a_permutation():
    pool = make_id_pool(1)
    assert len(pool) == MAP_SIZE * 8
    assert sorted(pool) == list(range(MAP_SIZE * 8))


def test_id_pool_depends_on_seed():
    assert make_id_pool(7)[:50] == make_id_pool(7)[:50]
    assert make_id_pool(7)[:50] != make_id_pool(8)[:50]


def test_every_block_of_defined_functions_is_instrumented():
    result = instrument_module(SAMPLE_IR, random.Random(3))
    assert len(_ids(result)) == 5


def test_ids_come_from_the_pool_in_order():
    result = instrument_module(SAMPLE_IR, random.Random(11))
    assert _ids(result) == make_id_pool(11)[:5]


def test_ids_are_unique_and_in_range():
    ids = _ids(instrument_module(SAMPLE_IR, random.Random(5)))
    assert len(set(ids)) == len(ids)
    assert all(0 <= i < MAP_SIZE * 8 for i in ids)


def test_intrinsic_function_is_left_alone():
    result = instrument_module(SAMPLE_IR, random.Random(2))
    body = result.split("@__asan_init_module()", 1)[1].split("}", 1)[0]
    assert CALL.search(body) is None
    assert "ret void" in body


def test_call_is_placed_after_phi():
    pool = make_id_pool(4)
    lines = instrument_module(SAMPLE_IR, random.Random(4)).splitlines()
    phi = next(i for i, line in enumerate(lines) if "= phi " in line)
    # The phi block is the fourth block of the module.
    assert _ids(lines[phi + 1]) == [pool[3]]
    assert _ids(lines[phi - 1]) == []
    assert lines[phi - 1].startswith("4:")


def test_call_is_first_instruction_of_entry_block():
    lines = instrument_module(SAMPLE_IR, random.Random(4)).splitlines()
    define = next(i for i, line in enumerate(lines) if "@main()" in line)
    assert CALL.search(lines[define + 1])
    assert "alloca" in lines[define + 2]


def test_call_follows_labels():
    pool = make_id_pool(4)
    expected = {"2:": pool[1], "3:": pool[2], "entry:": pool[4]}
    lines = instrument_module(SAMPLE_IR, random.Random(4)).splitlines()
    found = {}
    for index, line in enumerate(lines):
        for label in expected:
            if line.startswith(label):
                found[label] = _ids(lines[index + 1])
    assert found == {label: [ident] for label, ident in expected.items()}


def test_declaration_added_once():
    once = instrument_module(SAMPLE_IR, random.Random(1))
    twice = instrument_module(once, random.Random(1))
    assert once.count(HIT_DECLARATION) == 1
    assert twice.count(HIT_DECLARATION) == 1
    assert len(_ids(twice)) == 2 * len(_ids(once))


def test_declaration_added_without_functions():
    result = instrument_module("; empty module\n", random.Random(1))
    assert HIT_DECLARATION in result
    assert _ids(result) == []


def test_landingpad_clauses_are_skipped():
    ir = (
        "define void @f() personality i8* null {\n"
        "entry:\n"
        "  ret void\n"
        "lpad:\n"
        "  %0 = landingpad { i8*, i32 }\n"
        "          cleanup\n"
        "  resume { i8*, i32 } %0\n"
        "}\n"
    )
    lines = instrument_module(ir, random.Random(9)).splitlines()
    cleanup = next(i for i, line in enumerate(lines) if line.strip() == "cleanup")
    assert CALL.search(lines[cleanup + 1])
    assert "landingpad" in lines[cleanup - 1]


def test_unterminated_function_is_an_error():
    with pytest.raises(InstrumentError):
        instrument_module("define void @f() {\nentry:\n  ret void\n", random.Random(1))


def test_instrument_file_rewrites_in_place(tmp_path):
    path = tmp_path / "test.ll"
    path.write_text(SAMPLE_IR)
    instrument_file(path, random.Random(6))
    text = path.read_text()
    assert _ids(text) == make_id_pool(6)[:5]
    assert HIT_DECLARATION in text


def test_instrument_file_missing_file(tmp_path):
    with pytest.raises(InstrumentError, match="Error reading IR file"):
        instrument_file(tmp_path / "missing.ll", random.Random(1))