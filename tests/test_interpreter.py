import sys

import pytest

from environment import DuplicateDeclarationError, UndeclaredVariableError
from interpreter import (
    MAIN_MISSING_MESSAGE,
    Interpreter,
    OBPIRuntimeError,
    TracebackFormatter,
    format_value,
    interpret,
)
from lexer import tokenize
from parser import parse


def _run(source):
    lines = []
    interpret(parse(tokenize(source)), lines.append)
    return lines


def _run_main(body):
    return _run("func main() {\n" + body + "\n}")


def test_print_forwards_each_call_to_sink():
    assert _run_main('print("hello", "world"); print(1, 2.5, true, null);') == [
        "hello world",
        "1 2.5 true null",
    ]


def test_block_scoping_and_shadowing():
    assert _run_main("let x = 1; { let x = 2; print(x); } print(x);") == ["2", "1"]


def test_duplicate_declaration_fails():
    with pytest.raises(DuplicateDeclarationError):
        _run_main("let x = 1; let x = 2;")


def test_undeclared_identifier_fails():
    with pytest.raises(UndeclaredVariableError):
        _run_main("print(nope);")


def test_block_binding_is_not_visible_after_block():
    with pytest.raises(UndeclaredVariableError):
        _run_main("{ let inner = 1; } print(inner);")


def test_closure_keeps_outer_locals_alive():
    source = """
    func makeCounter(start) {
        let count = start;
        func next() {
            count = count + 1;
            return count;
        }
        return next;
    }
    func main() {
        let counter = makeCounter(10);
        print(counter());
        print(counter());
        let other = makeCounter(0);
        print(other());
    }
    """
    assert _run(source) == ["11", "12", "1"]


def test_closures_are_lexically_scoped():
    source = """
    let ignored = 0;
    func reader() { return who; }
    func main() {
        let who = "caller";
        print(reader());
    }
    """
    with pytest.raises(UndeclaredVariableError, match='"who"'):
        _run(source)


def test_plus_with_string_concatenates():
    assert _run_main('print(1 + "a"); print("n=" + null); print(true + 1);') == ["1a", "n=null", "true1"]


def test_minus_with_string_is_a_type_mismatch():
    with pytest.raises(OBPIRuntimeError, match="Operands must be numbers"):
        _run_main('print(1 - "a");')


def test_arithmetic_results():
    assert _run_main("print(7 - 2 * 3); print(7 / 2); print(6 / 3); print(0.1 + 0.2);") == [
        "1",
        "3.5",
        "2",
        "0.30000000000000004",
    ]


def test_division_by_zero_fails():
    with pytest.raises(OBPIRuntimeError, match="Division by zero"):
        _run_main("print(1 / 0);")


def test_comparisons_do_not_coerce():
    assert _run_main(
        'print(1 == 1, 1 == 1.0, "1" == 1, true == 1, null == null, 2 != 3, "a" < "b", 3 >= 3);'
    ) == ["true true false false true true true true"]


def test_ordering_mixed_kinds_fails():
    with pytest.raises(OBPIRuntimeError, match="Cannot compare"):
        _run_main('print(1 < "2");')


def test_if_else_picks_one_branch():
    assert _run_main(
        'if (1 > 2) { print("then"); } else { print("else"); } if (0) { print("never"); }'
    ) == ["else"]


def test_while_loop_with_reassignment():
    assert _run_main("let i = 0; while (i < 3) { print(i); i = i + 1; }") == ["0", "1", "2"]


def test_assignment_to_undeclared_name_fails():
    with pytest.raises(UndeclaredVariableError, match="Cannot assign"):
        _run_main("y = 3;")


def test_assignment_yields_assigned_value():
    assert _run_main("let a = 0; let b = 0; a = b = 5; print(a, b);") == ["5 5"]


def test_return_unwinds_through_loops_and_blocks():
    source = """
    func find(limit) {
        let i = 0;
        while (true) {
            {
                if (i == limit) { return i * 10; }
            }
            i = i + 1;
        }
        print("unreachable");
    }
    func main() { print(find(4)); }
    """
    assert _run(source) == ["40"]


def test_implicit_and_bare_returns_yield_null():
    source = """
    func nothing() { }
    func bare() { return; print("skipped"); }
    func main() { print(nothing(), bare()); }
    """
    assert _run(source) == ["null null"]


def test_missing_arguments_bind_null_and_extra_are_ignored():
    source = """
    func pair(a, b) { print(a, b); }
    func main() { pair(1); pair(1, 2, 3); }
    """
    assert _run(source) == ["1 null", "1 2"]


def test_hoisting_allows_mutual_recursion_in_any_order():
    source = """
    func main() { print(isEven(10), isOdd(7)); }
    func isEven(n) { if (n == 0) { return true; } return isOdd(n - 1); }
    func isOdd(n) { if (n == 0) { return false; } return isEven(n - 1); }
    """
    assert _run(source) == ["true true"]


def test_recursive_factorial():
    source = """
    func fact(n) { if (n <= 1) { return 1; } return n * fact(n - 1); }
    func main() { print(fact(10)); }
    """
    assert _run(source) == ["3628800"]


def test_bounded_recursion_runs_thousands_of_calls_deep():
    source = """
    func sum(n) { if (n == 0) { return 0; } return n + sum(n - 1); }
    func main() { print(sum(3000)); }
    """
    assert _run(source) == ["4501500"]


def test_recursion_limit_is_restored_after_run():
    before = sys.getrecursionlimit()
    _run("func main() { print(1); }")
    assert sys.getrecursionlimit() == before


def test_step_log_does_not_grow_with_step_count():
    source = """
    func tick(n) { return n + 1; }
    func main() { let i = 0; while (i < 2000) { i = tick(i); } print(i); }
    """
    lines = []
    interpreter = Interpreter(output_sink=lines.append)
    interpreter.interpret(parse(tokenize(source)))
    assert lines == ["2000"]
    assert interpreter.logger.next_state_index > 4000
    assert len(interpreter.logger.frame_last_entry) <= 1
    assert not hasattr(interpreter.logger, "entries")


def test_call_detail_is_only_kept_in_verbose_mode():
    source = """
    func fail(x) { return x - "y"; }
    func main() { fail(2); }
    """
    quiet = Interpreter(output_sink=lambda text: None)
    with pytest.raises(OBPIRuntimeError):
        quiet.interpret(parse(tokenize(source)))
    main_frame = quiet.call_stack[1]
    assert quiet.logger.last_entry_for_frame(main_frame.frame_id).detail is None

    loud = Interpreter(verbose=True, output_sink=lambda text: None)
    with pytest.raises(OBPIRuntimeError):
        loud.interpret(parse(tokenize(source)))
    main_frame = loud.call_stack[1]
    assert loud.logger.last_entry_for_frame(main_frame.frame_id).detail == {"function": "fail", "args": ["2"]}


def test_missing_main_fails():
    with pytest.raises(OBPIRuntimeError, match=MAIN_MISSING_MESSAGE):
        _run("func helper() { }")


def test_non_function_main_fails():
    with pytest.raises(OBPIRuntimeError, match=MAIN_MISSING_MESSAGE):
        _run("let main = 5;")


def test_top_level_statements_other_than_functions_do_not_run():
    assert _run('print("top"); func main() { print("main"); }') == ["main"]


def test_calling_a_non_function_fails():
    with pytest.raises(OBPIRuntimeError, match='"x" is not a function'):
        _run_main("let x = 3; x();")


def test_print_can_be_shadowed_locally():
    with pytest.raises(OBPIRuntimeError, match='"print" is not a function'):
        _run_main("let print = 1; print(2);")


def test_builtin_print_cannot_be_redeclared_globally():
    with pytest.raises(DuplicateDeclarationError):
        _run("func print() { } func main() { }")


def test_print_dumps_functions_as_structured_text():
    source = """
    func add(a, b) { return a + b; }
    func main() { print(add); print(print); }
    """
    assert _run(source) == [
        '{"type":"user-defined-function","name":"add","params":["a","b"]}',
        '{"type":"builtin-function","name":"print"}',
    ]


def test_unlinked_import_inside_block_fails():
    with pytest.raises(OBPIRuntimeError, match="Unlinked import"):
        _run_main('{ import "x.obpi"; }')


def test_deep_recursion_surfaces_as_runtime_error():
    source = """
    func forever(n) { return forever(n + 1); }
    func main() { forever(0); }
    """
    with pytest.raises(OBPIRuntimeError, match="Internal interpreter error"):
        _run(source)


def test_main_return_value_is_returned():
    program = parse(tokenize("func main() { return 7; }"))
    assert Interpreter(output_sink=lambda text: None).interpret(program) == 7


def test_format_value():
    assert format_value(None) == "null"
    assert format_value(False) == "false"
    assert format_value(3.0) == "3"
    assert format_value(float("inf")) == "Infinity"
    assert format_value("text") == "text"


def test_traceback_formatter_reports_call_stack():
    source = """
    func inner() { return 1 - "x"; }
    func main() { let a = 1; inner(); }
    """
    interpreter = Interpreter(verbose=True, output_sink=lambda text: None, filename="demo.obpi")
    with pytest.raises(OBPIRuntimeError) as info:
        interpreter.interpret(parse(tokenize(source)))
    error = info.value
    assert error.step_index is not None
    formatter = TracebackFormatter(interpreter)
    names = [frame.name for frame in formatter.build_frames()]
    assert names == ["<top-level>", "main", "inner"]
    text = formatter.format_text(error, verbose=True)
    assert text.startswith("Traceback (most recent call last):")
    assert 'File "demo.obpi", in inner' in text
    assert "Env snapshot: a=1" in text
    assert text.splitlines()[-1].startswith("OBPIRuntimeError: Operands must be numbers")
    assert '"failing_step_index"' in formatter.to_json(error)


def test_print_accepts_any_number_of_arguments():
    assert _run_main('print(); print("a", "b", "c", "d", "e");') == ["", "a b c d e"]
    print_builtin = Interpreter(output_sink=lambda text: None).global_env.lookup("print")
    assert not hasattr(print_builtin, "validate")
