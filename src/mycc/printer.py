"""AST printing utilities: an indented tree dump and a source re-serializer."""

from .ast import (
  Expr,
  Stmt,
  IfStmt,
  ForStmt,
  LetStmt,
  RefExpr,
  VarExpr,
  CallExpr,
  ExprStmt,
  Function,
  BlockStmt,
  BreakStmt,
  IndexExpr,
  RangeExpr,
  WhileStmt,
  BinaryExpr,
  IntLiteral,
  ReturnStmt,
  ArrayLiteral,
  ContinueStmt,
  StringLiteral,
  is_unannotated,
)
from .types import type_to_str

INDENT = "  "
# Negative literals print as their unsigned 64-bit form, which lexes back the same
_UINT64_MASK = (1 << 64) - 1


def escape_string(s: str) -> str:
  """Escape a string so the lexer reads it back unchanged."""
  return s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")


# === Tree dump ===


def dump_function(func: Function) -> str:
  """Hierarchical text view of a function, one node per line."""
  lines = [f"Function {func.name}:"]
  _dump_stmt(func.body, 1, lines)
  return "\n".join(lines) + "\n"


def _dump_stmt(stmt: Stmt, depth: int, lines: list[str]) -> None:
  pad = INDENT * depth
  match stmt:
    case LetStmt(name, type_ann, value):
      suffix = "" if is_unannotated(stmt) else f": {type_to_str(type_ann)}"
      lines.append(f"{pad}DECL {name}{suffix}")
      if value is not None:
        _dump_expr(value, depth + 1, lines)
    case ExprStmt(expr):
      lines.append(f"{pad}EXPR")
      _dump_expr(expr, depth + 1, lines)
    case BlockStmt(stmts):
      lines.append(f"{pad}BLOCK ({len(stmts)} stmts)")
      for child in stmts:
        _dump_stmt(child, depth + 1, lines)
    case IfStmt(condition, then_body, else_body):
      lines.append(f"{pad}IF")
      _dump_expr(condition, depth + 1, lines)
      _dump_stmt(then_body, depth + 1, lines)
      if else_body is not None:
        _dump_stmt(else_body, depth + 1, lines)
    case WhileStmt(condition, body):
      lines.append(f"{pad}WHILE")
      _dump_expr(condition, depth + 1, lines)
      _dump_stmt(body, depth + 1, lines)
    case ForStmt(var, iterable, body):
      lines.append(f"{pad}FOR {var}")
      _dump_expr(iterable, depth + 1, lines)
      _dump_stmt(body, depth + 1, lines)
    case ReturnStmt(value):
      lines.append(f"{pad}RETURN")
      if value is not None:
        _dump_expr(value, depth + 1, lines)
    case BreakStmt():
      lines.append(f"{pad}BREAK")
    case ContinueStmt():
      lines.append(f"{pad}CONTINUE")


def _dump_expr(expr: Expr, depth: int, lines: list[str]) -> None:
  pad = INDENT * depth
  match expr:
    case IntLiteral(value):
      lines.append(f"{pad}INT {value}")
    case StringLiteral(value):
      lines.append(f'{pad}STRING "{escape_string(value)}"')
    case VarExpr(name):
      lines.append(f"{pad}IDENT {name}")
    case RefExpr(target, mutable):
      lines.append(f"{pad}{'&mut' if mutable else '&'}")
      _dump_expr(target, depth + 1, lines)
    case RangeExpr(start, end):
      lines.append(f"{pad}RANGE")
      _dump_expr(start, depth + 1, lines)
      _dump_expr(end, depth + 1, lines)
    case ArrayLiteral(elements):
      lines.append(f"{pad}ARRAY ({len(elements)} items)")
      for element in elements:
        _dump_expr(element, depth + 1, lines)
    case IndexExpr(target, index):
      lines.append(f"{pad}INDEX")
      _dump_expr(target, depth + 1, lines)
      _dump_expr(index, depth + 1, lines)
    case CallExpr(name, args):
      lines.append(f"{pad}CALL {name}")
      for arg in args:
        _dump_expr(arg, depth + 1, lines)
    case BinaryExpr(left, op, right):
      lines.append(f"{pad}BINOP {op}")
      _dump_expr(left, depth + 1, lines)
      _dump_expr(right, depth + 1, lines)


# === Source re-serialization ===


def format_expr(expr: Expr) -> str:
  """Render an expression as MyLang source."""
  match expr:
    case IntLiteral(value):
      return str(value & _UINT64_MASK)
    case StringLiteral(value):
      return f'"{escape_string(value)}"'
    case VarExpr(name):
      return name
    case RefExpr(target, mutable):
      inner = format_expr(target)
      if mutable:
        return f"&mut {inner}"
      # `&mutx` would lex as `&mut x`
      return f"& {inner}" if inner.startswith("mut") else f"&{inner}"
    case RangeExpr(start, end):
      return f"{format_expr(start)}..{format_expr(end)}"
    case ArrayLiteral(elements):
      return f"[{', '.join(format_expr(e) for e in elements)}]"
    case IndexExpr(target, index):
      return f"{format_expr(target)}[{format_expr(index)}]"
    case CallExpr(name, args):
      return f"{name}({', '.join(format_expr(a) for a in args)})"
    case BinaryExpr(left, op, right):
      return f"{format_expr(left)} {op} {format_expr(right)}"
  raise ValueError(f"Cannot format expression: {expr!r}")


def _format_stmt(stmt: Stmt, depth: int, lines: list[str]) -> None:
  pad = INDENT * depth
  match stmt:
    case LetStmt(name, type_ann, value):
      text = f"let {name}"
      if not is_unannotated(stmt):
        text += f": {type_to_str(type_ann)}"
      if value is not None:
        text += f" = {format_expr(value)}"
      lines.append(f"{pad}{text};")
    case ExprStmt(expr):
      lines.append(f"{pad}{format_expr(expr)};")
    case BlockStmt(stmts):
      lines.append(f"{pad}{{")
      for child in stmts:
        _format_stmt(child, depth + 1, lines)
      lines.append(f"{pad}}}")
    case ForStmt(var, iterable, body):
      lines.append(f"{pad}for {var} in {format_expr(iterable)} {{")
      for child in body.stmts:
        _format_stmt(child, depth + 1, lines)
      lines.append(f"{pad}}}")
    case _:
      # if/while/return/break/continue have no surface syntax yet
      raise ValueError(f"Statement has no source form: {type(stmt).__name__}")


def format_function(func: Function) -> str:
  """Re-serialize the implicit main's body as a top-level program."""
  lines: list[str] = []
  for stmt in func.body.stmts:
    _format_stmt(stmt, 0, lines)
  return "\n".join(lines) + "\n"
