"""Compiler error taxonomy and diagnostic rendering for MyLang."""

from enum import Enum

from .tokens import Token


class CompileError(Exception):
  """Base class for every fatal compilation error."""

  category = "error"

  def __init__(self, message: str, line: int, column: int) -> None:
    super().__init__(f"{message} at line {line}, column {column}")
    self.message = message
    self.line, self.column = line, column

  def format(self, filename: str = "<input>") -> str:
    """Render as `<file>:<line>:<col>: <category>: <message>`."""
    return f"{filename}:{self.line}:{self.column}: {self.category}: {self.message}"


class LexerError(CompileError):
  """Raised when the lexer encounters invalid input."""

  category = "lexical error"


class ParseError(CompileError):
  """Raised when the parser encounters a syntax error."""

  category = "parse error"

  def __init__(self, message: str, token: Token) -> None:
    super().__init__(message, token.line, token.column)
    self.token = token


class SemanticErrorKind(Enum):
  UNDECLARED_VARIABLE = "undeclared variable"
  UNKNOWN_FUNCTION = "unknown function"
  ARGUMENT_COUNT = "wrong argument count"
  ARGUMENT_TYPE = "wrong argument type"
  TYPE_MISMATCH = "type mismatch"
  AMBIGUOUS_TYPE = "ambiguous type"
  REDECLARATION = "redeclaration"
  NOT_INDEXABLE = "not indexable"
  NOT_ITERABLE = "not iterable"
  BREAK_OUTSIDE_LOOP = "break outside loop"


class SemanticError(CompileError):
  """Raised when name resolution or type checking fails."""

  category = "semantic error"

  def __init__(self, kind: SemanticErrorKind, message: str, line: int, column: int) -> None:
    super().__init__(message, line, column)
    self.kind = kind


class BorrowErrorKind(Enum):
  USE_AFTER_MOVE = "use after move"
  MOVE_WHILE_BORROWED = "move while borrowed"
  SHARED_BORROW_CONFLICT = "shared borrow conflict"
  EXCLUSIVE_BORROW_CONFLICT = "exclusive borrow conflict"
  UNDECLARED_VARIABLE = "undeclared variable"
  BORROW_NON_IDENTIFIER = "borrow of non-identifier"
  MOVE_IN_LOOP = "move in loop"


class BorrowError(CompileError):
  """Raised when an ownership or borrowing rule is violated."""

  category = "borrow error"

  def __init__(self, kind: BorrowErrorKind, message: str, line: int, column: int) -> None:
    super().__init__(message, line, column)
    self.kind = kind
