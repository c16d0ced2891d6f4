"""AST node definitions for the MyLang language.

Nodes are immutable. Source positions do not take part in equality, so two
trees parsed from differently formatted but equivalent source compare equal.
Resolved types live in a separate `TypeMap` (see checker.py), never on nodes.
"""

from dataclasses import field, dataclass

from .types import INT, Type, UNKNOWN


def _pos() -> int:
  return field(default=0, compare=False)


# === Expressions ===


@dataclass(frozen=True, slots=True)
class IntLiteral:
  """Integer literal like 42."""

  value: int
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class StringLiteral:
  """String literal like "hello"."""

  value: str
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class VarExpr:
  """Variable reference, resolved by the checker."""

  name: str
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class BinaryExpr:
  """Binary expression like a + b. The surface grammar does not produce it."""

  left: "Expr"
  op: str
  right: "Expr"
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class CallExpr:
  """Built-in call like print(x) or clone(s)."""

  name: str
  args: tuple["Expr", ...]
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class RefExpr:
  """Create reference: &x or &mut x."""

  target: "Expr"
  mutable: bool
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class RangeExpr:
  """Half-open range: start..end."""

  start: "Expr"
  end: "Expr"
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class ArrayLiteral:
  """Array literal like [1, 2, 3]."""

  elements: tuple["Expr", ...]
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class IndexExpr:
  """Index expression like arr[0]."""

  target: "Expr"
  index: "Expr"
  line: int = _pos()
  column: int = _pos()


Expr = IntLiteral | StringLiteral | VarExpr | BinaryExpr | CallExpr | RefExpr | RangeExpr | ArrayLiteral | IndexExpr


# === Statements ===


@dataclass(frozen=True, slots=True)
class LetStmt:
  """Variable declaration: let x: int = 42; (type and value both optional)"""

  name: str
  type_ann: Type
  value: Expr | None
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class ExprStmt:
  """Expression statement (expression used as statement)."""

  expr: Expr
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class BlockStmt:
  """Braced statement list; introduces a lexical scope."""

  stmts: tuple["Stmt", ...]
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class IfStmt:
  """If statement with optional else branch."""

  condition: Expr
  then_body: "Stmt"
  else_body: "Stmt | None"
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class WhileStmt:
  """While loop."""

  condition: Expr
  body: "Stmt"
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class ForStmt:
  """For loop: for i in 0..10 { ... } or for x in arr { ... }"""

  var: str
  iterable: Expr
  body: BlockStmt
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class ReturnStmt:
  """Return statement with optional value."""

  value: Expr | None
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class BreakStmt:
  line: int = _pos()
  column: int = _pos()


@dataclass(frozen=True, slots=True)
class ContinueStmt:
  line: int = _pos()
  column: int = _pos()


Stmt = LetStmt | ExprStmt | BlockStmt | IfStmt | WhileStmt | ForStmt | ReturnStmt | BreakStmt | ContinueStmt


# === Top-level Definitions ===


@dataclass(frozen=True, slots=True)
class Function:
  """Function definition. The parser only ever builds the implicit main."""

  name: str
  return_type: Type
  body: BlockStmt


def make_main(stmts: tuple[Stmt, ...]) -> Function:
  """Wrap top-level statements into the implicit `main` returning int."""
  return Function("main", INT, BlockStmt(stmts, 0, 0))


def is_unannotated(stmt: LetStmt) -> bool:
  return stmt.type_ann == UNKNOWN
