from __future__ import annotations

from lunals.lua import check, parse


def _messages(source: str, **options: bool) -> list[tuple[int, int, str]]:
    return [
        (message.line, message.column, message.tag)
        for message in check(parse(source), **options)
    ]


def test_clean_program_has_no_messages() -> None:
    source = "local t = {}\nfor i = 1, 3 do t[i] = i * 2 end\nprint(#t)"
    assert _messages(source) == []


def test_unused_local() -> None:
    messages = check(parse("local x = 1"))
    assert [(m.line, m.column, m.tag, m.message) for m in messages] == [
        (1, 7, "unused", "unused local 'x'")
    ]


def test_unused_ignores_underscore_names_and_params() -> None:
    assert _messages("local _x = 1\nlocal function f(a) end\nf()") == []


def test_unused_can_be_disabled() -> None:
    assert _messages("local x = 1", unused=False) == []


def test_unused_local_function() -> None:
    messages = check(parse("local function helper() end"))
    assert [(m.tag, m.message) for m in messages] == [("unused", "unused function 'helper'")]


def test_shadowing_is_reported_as_mask() -> None:
    source = "local x = 1\ndo local x = 2 print(x) end\nprint(x)"
    messages = check(parse(source))
    assert [(m.line, m.column, m.tag) for m in messages] == [(2, 10, "mask")]
    assert "line 1" in messages[0].message


def test_arithmetic_on_string_is_a_type_error() -> None:
    messages = check(parse('local s = "a"\nlocal n = s + 1\nprint(n)'))
    assert [(m.line, m.column, m.tag, m.message) for m in messages] == [
        (2, 11, "type", "attempt to perform arithmetic on a string value (local 's')")
    ]
    assert messages[0].length == 1


def test_calling_a_number() -> None:
    messages = check(parse("local n = 1\nn()"))
    assert [(m.tag, m.message) for m in messages] == [
        ("type", "attempt to call an integer value (local 'n')")
    ]


def test_concatenating_nil() -> None:
    assert _messages('print(nil .. "x")') == [(1, 7, "type")]


def test_negating_a_table() -> None:
    assert _messages("local t = {}\nprint(-t)") == [(2, 8, "type")]


def test_globals_are_not_undefined_outside_strict_mode() -> None:
    assert _messages("print(foo)") == []


def test_strict_mode_reports_undefined_globals() -> None:
    assert _messages("print(foo)", strict=True) == [(1, 7, "undefined")]


def test_strict_mode_accepts_assigned_globals_and_builtins() -> None:
    assert _messages("foo = 1\nprint(foo, math, string)", strict=True) == []


def test_strict_mode_reports_declarations_without_value() -> None:
    assert _messages("local x\nprint(x)", strict=True) == [(1, 7, "any")]


def test_integer_mode_rejects_floats_and_division() -> None:
    source = "local x = 1.5\nlocal y = 4 / 2\nprint(x, y)"
    assert _messages(source, integer=True) == [(1, 11, "integer"), (2, 13, "integer")]
    assert _messages(source) == []


def test_function_statement_types_its_target() -> None:
    source = "function f(a, b) return a end\nprint(f + 1)"
    messages = check(parse(source))
    assert [(m.tag, m.message) for m in messages] == [
        ("type", "attempt to perform arithmetic on a function value (global 'f')")
    ]


def test_messages_are_sorted_by_position() -> None:
    source = 'local a = 1\nlocal b = "s" + 1'
    assert _messages(source) == [(1, 7, "unused"), (2, 7, "unused"), (2, 11, "type")]


def test_reassigned_local_with_another_type_is_not_a_type_error() -> None:
    source = 'local n = "10"\nn = tonumber(n)\nprint(n + 1)'
    assert _messages(source) == []


def test_nil_initialized_local_assigned_later_can_be_called() -> None:
    source = "local cb = nil\nlocal function run() cb() end\ncb = function() end\nrun()"
    assert _messages(source) == []


def test_declared_without_value_then_assigned_is_not_nil() -> None:
    assert _messages("local x\nx = 1\nprint(x + 1)") == []


def test_reassignment_with_the_same_type_keeps_checking() -> None:
    messages = check(parse('local s = "a"\ns = "b"\nprint(s + 1)'))
    assert [(m.tag, m.message) for m in messages] == [
        ("type", "attempt to perform arithmetic on a string value (local 's')")
    ]
