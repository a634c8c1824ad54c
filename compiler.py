from __future__ import annotations
import gzip
import json
import zlib
from dataclasses import dataclass, field
from typing import List, Set, Tuple

from filestore import FileStore, dirname, resolve_path
from lexer import OBPIError, Lexer
from nodes import ImportStatement, NodeFormatError, Program, Statement, node_from_dict
from parser import Parser

OEXEC_MAGIC = b"OEXEC"


class OBPICompileError(OBPIError):
    """Raised inside the compiler when a source file cannot be linked."""


class OBPIArtifactError(OBPIError):
    """Raised when bytes are not a decodable OEXEC artifact."""


@dataclass
class CompileResult:
    success: bool
    message: str
    files: List[str] = field(default_factory=list)


def encode_artifact(program: Program) -> bytes:
    payload = json.dumps(program.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    # mtime=0 keeps the gzip header, and so the artifact, reproducible.
    return OEXEC_MAGIC + gzip.compress(payload, mtime=0)


def is_artifact(data: bytes) -> bool:
    return data[: len(OEXEC_MAGIC)] == OEXEC_MAGIC


def decode_artifact(data: bytes) -> Program:
    if not is_artifact(data):
        raise OBPIArtifactError("Missing OEXEC tag")
    try:
        payload = gzip.decompress(data[len(OEXEC_MAGIC):])
        document = json.loads(payload.decode("utf-8"))
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as exc:
        raise OBPIArtifactError(f"Corrupt artifact payload: {exc}") from exc
    try:
        program = node_from_dict(document)
    except NodeFormatError as exc:
        raise OBPIArtifactError(f"Artifact does not describe a program: {exc}") from exc
    if not isinstance(program, Program):
        raise OBPIArtifactError("Artifact does not describe a program")
    return program


class Compiler:
    def __init__(self, file_store: FileStore) -> None:
        self.file_store = file_store

    def _parse_file(self, path: str) -> Program:
        source = self.file_store.read_file(path)
        if not isinstance(source, str):
            raise OBPICompileError(f"Could not read source file at {path}")
        tokens = Lexer(source, path).tokenize()
        return Parser(tokens, path).parse()

    def _resolve_imports(self, program: Program, path: str, visited: Set[str], files: List[str]) -> List[Statement]:
        body: List[Statement] = []
        base_dir = dirname(path)
        for statement in program.statements:
            if not isinstance(statement, ImportStatement):
                continue
            import_path = resolve_path(statement.path, base_dir)
            if import_path in visited:
                # Already linked: diamond or cyclic import.
                continue
            visited.add(import_path)
            imported = self._parse_file(import_path)
            body.extend(self._resolve_imports(imported, import_path, visited, files))
            body.extend(stmt for stmt in imported.statements if not isinstance(stmt, ImportStatement))
            files.append(import_path)
        return body

    def link(self, entry_path: str) -> Tuple[Program, List[str]]:
        """Merge the entry file and everything it imports into one program.

        Imported statements come first, depth-first, each file after its own
        imports; the entry file's statements come last. Import statements do
        not survive linking. Returns the program and the linked paths in
        link order.
        """
        entry = resolve_path(entry_path)
        visited: Set[str] = {entry}
        files: List[str] = []
        main_program = self._parse_file(entry)
        statements = self._resolve_imports(main_program, entry, visited, files)
        statements.extend(stmt for stmt in main_program.statements if not isinstance(stmt, ImportStatement))
        files.append(entry)
        return Program(statements=statements), files

    def compile(self, entry_path: str, output_path: str) -> CompileResult:
        try:
            program, files = self.link(entry_path)
            executable = encode_artifact(program)
            written = self.file_store.write_file(output_path, executable)
        except OBPIError as exc:
            return CompileResult(success=False, message=str(exc))
        except Exception as exc:
            return CompileResult(success=False, message=f"An unknown compilation error occurred: {exc}")
        if not written:
            return CompileResult(success=False, message=f"Compilation failed. Could not write to {output_path}.", files=files)
        return CompileResult(
            success=True,
            message=f"Compilation successful! Executable created at {output_path}",
            files=files,
        )
