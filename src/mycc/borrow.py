"""Ownership and borrow checker for the MyLang language.

Runs after type checking. Tracks, per live variable, whether it still owns its
value and how it is currently borrowed:

- `let b = a;` moves `a`; `a` must be valid and not borrowed at all.
- `let r = &a;` takes a shared borrow; `a` must be valid and not exclusively
  borrowed. Any number of shared borrows may coexist.
- `let m = &mut a;` takes an exclusive borrow; `a` must be valid and not
  borrowed in any way.
- Every other use of an identifier requires it to be valid.

Variable state is kept in a stack of frames, one per lexical block, and is
discarded when the block exits. A borrow is released when the block that
declared the borrowing variable exits, unless `release_borrows_on_scope_exit`
is off, in which case a borrow lasts as long as the borrowed variable.

With `reject_moves_in_loops` on, moving a variable declared outside the
innermost loop from inside that loop is an error, since a second iteration
would move it again.
"""

import copy
import logging
from collections import Counter
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
from .errors import BorrowError, BorrowErrorKind

logger = logging.getLogger(__name__)


@dataclass
class VarState:
  """Tracks the ownership state of a variable."""

  valid: bool = True  # False once moved
  shared_count: int = 0  # Live shared borrows
  exclusive_borrowed: bool = False  # A live &mut exists
  loop_depth: int = 0  # Loop nesting level at declaration


@dataclass(frozen=True)
class Borrow:
  """An active borrow of a variable."""

  target_depth: int  # Scope level of the borrowed variable
  target_name: str  # The variable being borrowed
  mutable: bool
  scope_depth: int  # Scope level of the borrowing variable


@dataclass
class _Snapshot:
  scopes: list[dict[str, VarState]]
  borrows: list[Borrow]


class BorrowChecker:
  """Walks a type-checked function and enforces move and borrow rules."""

  def __init__(self, release_borrows_on_scope_exit: bool = True, reject_moves_in_loops: bool = True) -> None:
    self.release_borrows_on_scope_exit = release_borrows_on_scope_exit
    self.reject_moves_in_loops = reject_moves_in_loops
    # Variable scopes: list of (name -> VarState) dicts, index + 1 is the depth
    self.scopes: list[dict[str, VarState]] = []
    self.active_borrows: list[Borrow] = []
    self.loop_depth = 0

  @property
  def scope_depth(self) -> int:
    return len(self.scopes)

  def check(self, func: Function) -> None:
    """Borrow check a function body; raises BorrowError on the first violation."""
    self._check_stmt(func.body)

  # === Scope and state management ===

  def _enter_scope(self) -> None:
    self.scopes.append({})

  def _exit_scope(self) -> None:
    depth = self.scope_depth
    if self.release_borrows_on_scope_exit:
      # End all borrows whose borrowing variable was declared in this scope
      ending = [b for b in self.active_borrows if b.scope_depth == depth]
      self.active_borrows = [b for b in self.active_borrows if b.scope_depth != depth]
      for borrow in ending:
        self._release(borrow)
    # Borrows of variables dropped here die with them
    self.active_borrows = [b for b in self.active_borrows if b.target_depth != depth]
    dropped = self.scopes.pop()
    if dropped:
      logger.debug("scope %d exit: drop %s", depth, ", ".join(dropped))

  def _release(self, borrow: Borrow) -> None:
    if borrow.target_depth >= borrow.scope_depth:
      return  # borrowed variable is dropped in the same scope
    state = self.scopes[borrow.target_depth - 1].get(borrow.target_name)
    if state is None:
      return
    if borrow.mutable:
      state.exclusive_borrowed = False
    else:
      state.shared_count = max(0, state.shared_count - 1)
    logger.debug(
      "release %s borrow of '%s': shared=%d exclusive=%s",
      "exclusive" if borrow.mutable else "shared",
      borrow.target_name,
      state.shared_count,
      state.exclusive_borrowed,
    )

  def _define_var(self, name: str) -> None:
    self.scopes[-1][name] = VarState(loop_depth=self.loop_depth)
    logger.debug("declare '%s' at scope %d", name, self.scope_depth)

  def _lookup(self, name: str) -> tuple[int, VarState] | None:
    """Find the innermost live variable; returns (depth, state)."""
    for index in range(len(self.scopes) - 1, -1, -1):
      state = self.scopes[index].get(name)
      if state is not None:
        return index + 1, state
    return None

  def _snapshot(self) -> _Snapshot:
    return _Snapshot(copy.deepcopy(self.scopes), list(self.active_borrows))

  def _restore(self, snapshot: _Snapshot) -> None:
    self.scopes = copy.deepcopy(snapshot.scopes)
    self.active_borrows = list(snapshot.borrows)

  def _merge(self, other: _Snapshot) -> None:
    """Join the current state with another branch's, keeping the worst case."""
    for scope, other_scope in zip(self.scopes, other.scopes):
      for name, state in scope.items():
        alt = other_scope.get(name)
        if alt is None:
          continue
        state.valid = state.valid and alt.valid
        state.shared_count = max(state.shared_count, alt.shared_count)
        state.exclusive_borrowed = state.exclusive_borrowed or alt.exclusive_borrowed
    merged = Counter(self.active_borrows) | Counter(other.borrows)
    self.active_borrows = list(merged.elements())

  # === Statements ===

  def _check_stmt(self, stmt: Stmt) -> None:
    match stmt:
      case LetStmt(name, _, value):
        if value is not None:
          self._check_initializer(stmt, value)
        # Declare the variable only after its initializer is analysed
        self._define_var(name)

      case ExprStmt(expr):
        self._check_expr(expr)

      case BlockStmt(stmts):
        self._enter_scope()
        for child in stmts:
          self._check_stmt(child)
        self._exit_scope()

      case IfStmt(condition, then_body, else_body):
        self._check_expr(condition)
        entry = self._snapshot()
        self._check_branch(then_body)
        after_then = self._snapshot()
        self._restore(entry)
        if else_body is not None:
          self._check_branch(else_body)
        self._merge(after_then)

      case WhileStmt(condition, body):
        self._check_expr(condition)
        self.loop_depth += 1
        self._check_branch(body)
        self.loop_depth -= 1

      case ForStmt(var, iterable, body):
        self._check_expr(iterable)
        self._enter_scope()
        self.loop_depth += 1
        self._define_var(var)
        self._check_stmt(body)
        self.loop_depth -= 1
        self._exit_scope()

      case ReturnStmt(value):
        if value is not None:
          self._check_expr(value)

      case BreakStmt() | ContinueStmt():
        pass

  def _check_branch(self, stmt: Stmt) -> None:
    """Check an if/while body; a lone statement still gets its own scope."""
    if isinstance(stmt, BlockStmt):
      self._check_stmt(stmt)
      return
    self._enter_scope()
    self._check_stmt(stmt)
    self._exit_scope()

  def _check_initializer(self, stmt: LetStmt, value: Expr) -> None:
    """Apply move/borrow effects of `let name = value;`."""
    match value:
      case VarExpr(src):
        self._move(stmt, src)
      case RefExpr(VarExpr(target), mutable):
        self._borrow(stmt, target, mutable)
      case RefExpr():
        raise BorrowError(
          BorrowErrorKind.BORROW_NON_IDENTIFIER,
          f"cannot {'mutably ' if value.mutable else ''}borrow from non-identifier",
          stmt.line,
          stmt.column,
        )
      case _:
        self._check_expr(value)

  def _move(self, stmt: LetStmt, src: str) -> None:
    found = self._lookup(src)
    if found is None:
      raise BorrowError(BorrowErrorKind.UNDECLARED_VARIABLE, f"use of undeclared variable '{src}'", stmt.line, stmt.column)
    _, state = found
    if not state.valid:
      raise BorrowError(BorrowErrorKind.USE_AFTER_MOVE, f"use of moved value '{src}'", stmt.line, stmt.column)
    if state.shared_count > 0 or state.exclusive_borrowed:
      raise BorrowError(
        BorrowErrorKind.MOVE_WHILE_BORROWED,
        f"cannot move '{src}' because it is borrowed",
        stmt.line,
        stmt.column,
      )
    if self.reject_moves_in_loops and self.loop_depth > state.loop_depth:
      raise BorrowError(
        BorrowErrorKind.MOVE_IN_LOOP,
        f"cannot move '{src}' inside a loop: it is declared outside the loop",
        stmt.line,
        stmt.column,
      )
    state.valid = False
    logger.debug("move '%s' into '%s' (line %d)", src, stmt.name, stmt.line)

  def _borrow(self, stmt: LetStmt, name: str, mutable: bool) -> None:
    kind = "mut borrow" if mutable else "borrow"
    found = self._lookup(name)
    if found is None:
      raise BorrowError(BorrowErrorKind.UNDECLARED_VARIABLE, f"{kind} of undeclared variable '{name}'", stmt.line, stmt.column)
    depth, state = found
    if not state.valid:
      raise BorrowError(BorrowErrorKind.USE_AFTER_MOVE, f"{kind} of moved value '{name}'", stmt.line, stmt.column)

    if mutable:
      # Exclusive borrow requires no existing borrows
      if state.shared_count > 0 or state.exclusive_borrowed:
        raise BorrowError(
          BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT,
          f"cannot mutably borrow '{name}' because it is already borrowed",
          stmt.line,
          stmt.column,
        )
      state.exclusive_borrowed = True
    else:
      if state.exclusive_borrowed:
        raise BorrowError(
          BorrowErrorKind.SHARED_BORROW_CONFLICT,
          f"cannot immutably borrow '{name}' because it is mutably borrowed",
          stmt.line,
          stmt.column,
        )
      state.shared_count += 1

    self.active_borrows.append(Borrow(depth, name, mutable, self.scope_depth))
    logger.debug(
      "%s '%s' by '%s': shared=%d exclusive=%s",
      kind,
      name,
      stmt.name,
      state.shared_count,
      state.exclusive_borrowed,
    )

  # === Expressions ===

  def _check_expr(self, expr: Expr) -> None:
    """Visit an expression; every identifier reached must still be valid."""
    match expr:
      case VarExpr(name):
        found = self._lookup(name)
        if found is None:
          raise BorrowError(BorrowErrorKind.UNDECLARED_VARIABLE, f"use of undeclared variable '{name}'", expr.line, expr.column)
        if not found[1].valid:
          raise BorrowError(BorrowErrorKind.USE_AFTER_MOVE, f"use of moved value '{name}'", expr.line, expr.column)
      case RefExpr(target):
        if not isinstance(target, VarExpr):
          raise BorrowError(BorrowErrorKind.BORROW_NON_IDENTIFIER, "cannot borrow from non-identifier", expr.line, expr.column)
        self._check_expr(target)
      case CallExpr(_, args):
        for arg in args:
          self._check_expr(arg)
      case RangeExpr(start, end):
        self._check_expr(start)
        self._check_expr(end)
      case ArrayLiteral(elements):
        for element in elements:
          self._check_expr(element)
      case IndexExpr(target, index):
        self._check_expr(target)
        self._check_expr(index)
      case BinaryExpr(left, _, right):
        self._check_expr(left)
        self._check_expr(right)
      case IntLiteral() | StringLiteral():
        pass


def borrow_check(
  func: Function,
  release_borrows_on_scope_exit: bool = True,
  reject_moves_in_loops: bool = True,
) -> None:
  """Borrow check a function; raises BorrowError on the first violation."""
  BorrowChecker(release_borrows_on_scope_exit, reject_moves_in_loops).check(func)
