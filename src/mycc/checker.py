"""Type checker for the MyLang language.

Resolves every identifier against a stack of scope frames and records the
resolved type of every expression in a `TypeMap`. The AST itself is never
modified; later passes read types from the map.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass

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
)
from .types import (
  INT,
  RANGE,
  STRING,
  Type,
  IntType,
  RefType,
  ArrayType,
  RangeType,
  MutRefType,
  is_unknown,
  same_kind,
  type_to_str,
  array_element_type,
)
from .errors import SemanticError, SemanticErrorKind

logger = logging.getLogger(__name__)

BINARY_OPS = frozenset({"+", "-", "*", "/", "%", "<", ">", "<=", ">=", "==", "!="})


@dataclass(frozen=True)
class Builtin:
  """Signature of a built-in function. `param_type` None accepts any type."""

  arity: int
  param_type: Type | None
  return_type: Type


BUILTINS: dict[str, Builtin] = {
  "clone": Builtin(1, STRING, STRING),
  "print": Builtin(1, None, INT),  # print returns 0
  "println": Builtin(1, None, INT),
}


class TypeMap:
  """Resolved type of every expression node, keyed by node identity."""

  def __init__(self) -> None:
    # id(expr) -> (expr, type); holding the node keeps its id stable
    self._entries: dict[int, tuple[Expr, Type]] = {}

  def _record(self, expr: Expr, t: Type) -> None:
    self._entries[id(expr)] = (expr, t)

  def __getitem__(self, expr: Expr) -> Type:
    entry = self._entries.get(id(expr))
    if entry is None or entry[0] is not expr:
      raise KeyError(f"No type recorded for {expr!r}")
    return entry[1]

  def __contains__(self, expr: object) -> bool:
    entry = self._entries.get(id(expr))
    return entry is not None and entry[0] is expr

  def __len__(self) -> int:
    return len(self._entries)

  def items(self) -> Iterator[tuple[Expr, Type]]:
    return iter(self._entries.values())


@dataclass(frozen=True)
class Symbol:
  """A declared variable."""

  type: Type
  line: int


class TypeChecker:
  """Single-pass type checker with scoped symbol tables."""

  def __init__(self) -> None:
    self.scopes: list[dict[str, Symbol]] = []
    self.types = TypeMap()
    # Loop depth (for validating break/continue)
    self.loop_depth = 0

  def _enter_scope(self) -> None:
    self.scopes.append({})
    logger.debug("enter scope depth=%d", len(self.scopes))

  def _exit_scope(self) -> None:
    frame = self.scopes.pop()
    logger.debug("exit scope depth=%d dropping %s", len(self.scopes) + 1, sorted(frame))

  def _define_var(self, name: str, t: Type, line: int, column: int) -> None:
    previous = self.scopes[-1].get(name)
    if previous is not None:
      raise SemanticError(
        SemanticErrorKind.REDECLARATION,
        f"Variable '{name}' already declared in this scope (line {previous.line})",
        line,
        column,
      )
    self.scopes[-1][name] = Symbol(t, line)

  def _lookup_var(self, name: str) -> Symbol | None:
    for scope in reversed(self.scopes):
      if name in scope:
        return scope[name]
    return None

  def check(self, func: Function) -> TypeMap:
    """Type check a function body and return the expression types."""
    self._check_stmt(func.body)
    logger.debug("typed %d expressions in '%s'", len(self.types), func.name)
    return self.types

  # === Statements ===

  def _check_stmt(self, stmt: Stmt) -> None:
    """Type check a statement."""
    match stmt:
      case LetStmt(name, declared, value):
        if value is None:
          if is_unknown(declared):
            raise SemanticError(
              SemanticErrorKind.AMBIGUOUS_TYPE,
              f"Cannot infer type of '{name}': no type annotation or initializer",
              stmt.line,
              stmt.column,
            )
        else:
          inferred = self._check_expr(value)
          if is_unknown(declared):
            declared = inferred
          elif not same_kind(declared, inferred):
            raise SemanticError(
              SemanticErrorKind.TYPE_MISMATCH,
              f"Type mismatch in declaration of '{name}': expected {type_to_str(declared)}, got {type_to_str(inferred)}",
              stmt.line,
              stmt.column,
            )
        self._define_var(name, declared, stmt.line, stmt.column)

      case ExprStmt(expr):
        self._check_expr(expr)

      case BlockStmt(stmts):
        self._enter_scope()
        for child in stmts:
          self._check_stmt(child)
        self._exit_scope()

      case IfStmt(condition, then_body, else_body):
        # No boolean type: any condition is compared against zero
        self._check_expr(condition)
        self._check_branch(then_body)
        if else_body is not None:
          self._check_branch(else_body)

      case WhileStmt(condition, body):
        self._check_expr(condition)
        self.loop_depth += 1
        self._check_branch(body)
        self.loop_depth -= 1

      case ForStmt(var, iterable, body):
        var_type = self._iteration_type(iterable)
        self._enter_scope()
        self._define_var(var, var_type, stmt.line, stmt.column)
        self.loop_depth += 1
        self._check_stmt(body)
        self.loop_depth -= 1
        self._exit_scope()

      case ReturnStmt(value):
        if value is not None:
          value_type = self._check_expr(value)
          if not isinstance(value_type, IntType):
            raise SemanticError(
              SemanticErrorKind.TYPE_MISMATCH,
              f"main must return int, got {type_to_str(value_type)}",
              stmt.line,
              stmt.column,
            )

      case BreakStmt() | ContinueStmt():
        if self.loop_depth == 0:
          keyword = "break" if isinstance(stmt, BreakStmt) else "continue"
          raise SemanticError(SemanticErrorKind.BREAK_OUTSIDE_LOOP, f"'{keyword}' outside of a loop", stmt.line, stmt.column)

  def _check_branch(self, stmt: Stmt) -> None:
    # A lone statement body still gets its own scope
    if isinstance(stmt, BlockStmt):
      self._check_stmt(stmt)
      return
    self._enter_scope()
    self._check_stmt(stmt)
    self._exit_scope()

  def _iteration_type(self, iterable: Expr) -> Type:
    """Type of the loop variable when iterating over `iterable`."""
    iter_type = self._check_expr(iterable)
    if isinstance(iter_type, RangeType):
      return INT
    element = array_element_type(iter_type)
    if element is None:
      raise SemanticError(
        SemanticErrorKind.NOT_ITERABLE,
        f"Cannot iterate over {type_to_str(iter_type)}",
        iterable.line,
        iterable.column,
      )
    return element

  # === Expressions ===

  def _check_expr(self, expr: Expr) -> Type:
    """Infer the type of an expression and record it."""
    result = self._infer(expr)
    self.types._record(expr, result)
    return result

  def _infer(self, expr: Expr) -> Type:
    match expr:
      case IntLiteral():
        return INT

      case StringLiteral():
        return STRING

      case VarExpr(name):
        symbol = self._lookup_var(name)
        if symbol is None:
          raise SemanticError(
            SemanticErrorKind.UNDECLARED_VARIABLE,
            f"Use of undeclared variable '{name}'",
            expr.line,
            expr.column,
          )
        return symbol.type

      case RefExpr(target, mutable):
        inner = self._check_expr(target)
        return MutRefType(inner) if mutable else RefType(inner)

      case CallExpr(name, args):
        return self._check_call(expr, name, args)

      case RangeExpr(start, end):
        for bound in (start, end):
          bound_type = self._check_expr(bound)
          if not isinstance(bound_type, IntType):
            raise SemanticError(
              SemanticErrorKind.TYPE_MISMATCH,
              f"Range bounds must be int, got {type_to_str(bound_type)}",
              bound.line,
              bound.column,
            )
        return RANGE

      case ArrayLiteral(elements):
        if not elements:
          raise SemanticError(
            SemanticErrorKind.AMBIGUOUS_TYPE,
            "Cannot infer element type of empty array literal",
            expr.line,
            expr.column,
          )
        element_type = self._check_expr(elements[0])
        for element in elements[1:]:
          other = self._check_expr(element)
          if other != element_type:
            raise SemanticError(
              SemanticErrorKind.TYPE_MISMATCH,
              f"Array elements must share one type: expected {type_to_str(element_type)}, got {type_to_str(other)}",
              element.line,
              element.column,
            )
        return ArrayType(element_type)

      case IndexExpr(target, index):
        target_type = self._check_expr(target)
        element = array_element_type(target_type)
        if element is None:
          raise SemanticError(
            SemanticErrorKind.NOT_INDEXABLE,
            f"Cannot index into {type_to_str(target_type)}",
            expr.line,
            expr.column,
          )
        index_type = self._check_expr(index)
        if not isinstance(index_type, IntType):
          raise SemanticError(
            SemanticErrorKind.TYPE_MISMATCH,
            f"Array index must be int, got {type_to_str(index_type)}",
            index.line,
            index.column,
          )
        return element

      case BinaryExpr(left, op, right):
        if op not in BINARY_OPS:
          raise SemanticError(SemanticErrorKind.TYPE_MISMATCH, f"Unknown operator '{op}'", expr.line, expr.column)
        for operand in (left, right):
          operand_type = self._check_expr(operand)
          if not isinstance(operand_type, IntType):
            raise SemanticError(
              SemanticErrorKind.TYPE_MISMATCH,
              f"Operator '{op}' expects int operands, got {type_to_str(operand_type)}",
              operand.line,
              operand.column,
            )
        return INT

    raise SemanticError(SemanticErrorKind.TYPE_MISMATCH, f"Unsupported expression {type(expr).__name__}", expr.line, expr.column)

  def _check_call(self, expr: CallExpr, name: str, args: tuple[Expr, ...]) -> Type:
    builtin = BUILTINS.get(name)
    if builtin is None:
      raise SemanticError(SemanticErrorKind.UNKNOWN_FUNCTION, f"Unknown function '{name}'", expr.line, expr.column)

    if len(args) != builtin.arity:
      plural = "" if builtin.arity == 1 else "s"
      raise SemanticError(
        SemanticErrorKind.ARGUMENT_COUNT,
        f"{name}() expects exactly {builtin.arity} argument{plural}, got {len(args)}",
        expr.line,
        expr.column,
      )

    for arg in args:
      arg_type = self._check_expr(arg)
      if builtin.param_type is not None and arg_type != builtin.param_type:
        raise SemanticError(
          SemanticErrorKind.ARGUMENT_TYPE,
          f"{name}() expects an argument of type {type_to_str(builtin.param_type)}, got {type_to_str(arg_type)}",
          arg.line,
          arg.column,
        )
    return builtin.return_type


def check(func: Function) -> TypeMap:
  """Type check a function and return the resolved expression types."""
  return TypeChecker().check(func)
