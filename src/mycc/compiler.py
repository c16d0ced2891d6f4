"""Compiler pipeline for the MyLang language."""

import logging
from pathlib import Path
from dataclasses import field, dataclass

from .ast import Function
from .borrow import borrow_check
from .errors import CompileError
from .lexer import Lexer
from .parser import Parser
from .checker import check
from .codegen import Abi, generate

logger = logging.getLogger(__name__)

# Source files are read as bytes. Invalid UTF-8 survives as lone surrogates,
# which codegen turns back into the original bytes.
SOURCE_ENCODING = "utf-8"
SOURCE_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class CompilerOptions:
  """Settings that change what the pipeline accepts or emits."""

  abi: Abi = field(default_factory=Abi.host)
  # Trace borrow checking and annotate declarations in the assembly
  debug_borrow: bool = False
  release_borrows_on_scope_exit: bool = True
  # Forbid moving a variable declared outside a loop from inside it
  reject_moves_in_loops: bool = True


@dataclass
class CompileResult:
  """Result of a compilation."""

  success: bool
  error: CompileError | None = None
  assembly: str | None = None
  # `<file>:<line>:<col>: <category>: <message>`
  diagnostic: str | None = None
  function: Function | None = None


class Compiler:
  """Orchestrates the compilation pipeline."""

  def __init__(self, options: CompilerOptions | None = None) -> None:
    self.options = options or CompilerOptions()

  def compile_to_asm(self, source: str, filename: str = "<input>") -> CompileResult:
    """Compile source code to NASM assembly, stopping at the first error."""
    func: Function | None = None
    try:
      # Lexing and parsing run together, one token at a time
      func = Parser(Lexer(source)).parse()

      # Semantic analysis records a type for every expression
      types = check(func)

      borrow_check(func, self.options.release_borrows_on_scope_exit, self.options.reject_moves_in_loops)

      assembly = generate(func, types, self.options.abi, self.options.debug_borrow)
    except CompileError as e:
      logger.debug("compilation of %s failed: %s", filename, e)
      return CompileResult(success=False, error=e, diagnostic=e.format(filename), function=func)

    return CompileResult(success=True, assembly=assembly, function=func)

  def compile_file(self, source_path: Path, output_base: Path) -> CompileResult:
    """Compile a source file, writing `<output_base>.asm` on success."""
    source = read_source(source_path)
    result = self.compile_to_asm(source, str(source_path))
    if result.success and result.assembly is not None:
      asm_path = asm_output_path(output_base)
      asm_path.write_text(result.assembly)
      logger.debug("wrote %s", asm_path)
    return result


def read_source(source_path: Path) -> str:
  """Decode a source file independently of the host locale."""
  return source_path.read_bytes().decode(SOURCE_ENCODING, SOURCE_ERRORS)


def asm_output_path(output_base: Path) -> Path:
  return output_base.with_name(output_base.name + ".asm")


def compile_source(source: str, options: CompilerOptions | None = None) -> CompileResult:
  """Convenience function to compile source to assembly."""
  return Compiler(options).compile_to_asm(source)


def compile_file(source_path: Path, output_base: Path, options: CompilerOptions | None = None) -> CompileResult:
  """Compile a source file to `<output_base>.asm`."""
  return Compiler(options).compile_file(source_path, output_base)
