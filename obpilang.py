"""OBPI-Lang command line entry point: run scripts or artifacts, or compile them."""

from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional

from compiler import Compiler, OBPIArtifactError, OBPICompileError, decode_artifact, is_artifact
from filestore import LocalFileStore
from interpreter import Interpreter, OBPIRuntimeError, TracebackFormatter
from lexer import OBPILexError, OBPIParseError, Lexer
from nodes import Program
from parser import Parser


def _virtual_path(host_path: str, root: str) -> str:
    relative = os.path.relpath(os.path.abspath(host_path), os.path.abspath(root))
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise OBPICompileError(f"{host_path} is outside of the source root {root}")
    return "/" + relative.replace(os.sep, "/")


def _parse_source(text: str, filename: str) -> Program:
    tokens = Lexer(text, filename).tokenize()
    return Parser(tokens, filename).parse()


def _default_root(*paths: str) -> str:
    directories = [os.path.dirname(os.path.abspath(path)) for path in paths]
    return os.path.commonpath(directories)


def _load_program(path: str, root: str) -> Program:
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        raise OBPICompileError(f"Failed to read {path}: {exc}")
    if is_artifact(raw):
        return decode_artifact(raw)
    program, _files = Compiler(LocalFileStore(root)).link(_virtual_path(path, root))
    return program


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="OBPI-Lang interpreter and compiler")
    parser.add_argument("program", help="Source file, OEXEC artifact, or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-o", "--output", dest="output", help="Compile program and its imports into an OEXEC artifact at this path")
    parser.add_argument("--root", default=None, help="Directory that import paths are resolved in (default: the program's directory)")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.output is not None:
        if args.source_mode:
            print("-source cannot be combined with --output", file=sys.stderr)
            return 1
        root = args.root or _default_root(args.program, args.output)
        try:
            entry = _virtual_path(args.program, root)
            output = _virtual_path(args.output, root)
        except OBPICompileError as error:
            print(f"CompileError: {error}", file=sys.stderr)
            return 1
        result = Compiler(LocalFileStore(root)).compile(entry, output)
        print(result.message, file=sys.stdout if result.success else sys.stderr)
        return 0 if result.success else 1

    filename = "<string>" if args.source_mode else args.program
    try:
        if args.source_mode:
            program = _parse_source(args.program, filename)
        else:
            program = _load_program(args.program, args.root or _default_root(args.program))
    except OBPILexError as error:
        print(f"LexError: {error}", file=sys.stderr)
        return 1
    except OBPIParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    except (OBPICompileError, OBPIArtifactError) as error:
        print(f"LoadError: {error}", file=sys.stderr)
        return 1

    interpreter = Interpreter(verbose=args.verbose, output_sink=print, filename=filename)
    try:
        interpreter.interpret(program)
    except OBPIRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
