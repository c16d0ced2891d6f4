"""Tests for the MyLang ownership and borrow checker."""

import logging

import pytest

from mycc.ast import (
  IfStmt,
  LetStmt,
  RefExpr,
  VarExpr,
  CallExpr,
  ExprStmt,
  BlockStmt,
  WhileStmt,
  IntLiteral,
  make_main,
)
from mycc.types import INT
from mycc.borrow import BorrowChecker, borrow_check
from mycc.errors import BorrowError, BorrowErrorKind
from mycc.parser import parse_source
from mycc.checker import check


def check_source(source: str, release_borrows_on_scope_exit: bool = True) -> None:
  func = parse_source(source)
  check(func)
  borrow_check(func, release_borrows_on_scope_exit)


def borrow_error(source: str, release_borrows_on_scope_exit: bool = True) -> BorrowError:
  with pytest.raises(BorrowError) as exc_info:
    check_source(source, release_borrows_on_scope_exit)
  return exc_info.value


def print_stmt(name: str) -> ExprStmt:
  return ExprStmt(CallExpr("print", (VarExpr(name),)))


class TestMoves:
  def test_use_after_move(self):
    error = borrow_error("let a = 10;\nlet b = a;\nprint(a);")
    assert error.kind == BorrowErrorKind.USE_AFTER_MOVE
    assert error.message == "use of moved value 'a'"
    assert (error.line, error.column) == (3, 7)

  def test_moved_value_usable_at_new_owner(self):
    check_source("let a = 10; let b = a; print(b);")

  def test_move_of_moved_value(self):
    error = borrow_error("let a = 1;\nlet b = a;\nlet c = a;")
    assert error.kind == BorrowErrorKind.USE_AFTER_MOVE
    # Reported at the declaration that performs the move
    assert (error.line, error.column) == (3, 1)

  def test_strings_move_too(self):
    error = borrow_error('let s = "x"; let t = s; print(s);')
    assert error.kind == BorrowErrorKind.USE_AFTER_MOVE

  def test_clone_does_not_move(self):
    check_source('let s = "x"; let t = clone(s); print(s); print(t);')

  def test_borrow_of_moved_value(self):
    error = borrow_error("let a = 1; let b = a; let r = &a;")
    assert error.kind == BorrowErrorKind.USE_AFTER_MOVE
    assert error.message == "borrow of moved value 'a'"

  def test_move_while_borrowed(self):
    error = borrow_error("let a = 1; let r = &a; let b = a;")
    assert error.kind == BorrowErrorKind.MOVE_WHILE_BORROWED
    assert error.message == "cannot move 'a' because it is borrowed"

  def test_move_while_mutably_borrowed(self):
    error = borrow_error("let a = 1; let m = &mut a; let b = a;")
    assert error.kind == BorrowErrorKind.MOVE_WHILE_BORROWED

  def test_reference_can_be_moved(self):
    check_source("let a = 1; let r = &a; let r2 = r; print(r2);")

  def test_move_in_for_loop(self):
    error = borrow_error('let s = "x"; for i in 0..3 { let t = s; }')
    assert error.kind == BorrowErrorKind.MOVE_IN_LOOP

  def test_move_of_loop_local_allowed(self):
    check_source('for i in 0..3 { let s = "x"; let t = s; print(t); }')

  def test_move_of_loop_variable_allowed(self):
    check_source("for i in 0..3 { let j = i; print(j); }")

  def test_move_in_while_loop(self):
    func = make_main(
      (
        LetStmt("a", INT, IntLiteral(1)),
        WhileStmt(IntLiteral(1), BlockStmt((LetStmt("b", INT, VarExpr("a")),))),
      )
    )
    with pytest.raises(BorrowError) as exc_info:
      borrow_check(func)
    assert exc_info.value.kind == BorrowErrorKind.MOVE_IN_LOOP

  def test_move_in_loop_allowed_when_not_rejected(self):
    func = parse_source('let s = "x"; for i in 0..3 { let t = s; }')
    check(func)
    borrow_check(func, reject_moves_in_loops=False)

  def test_use_after_move_in_loop_still_caught(self):
    func = parse_source('let s = "x"; for i in 0..3 { let t = s; } print(s);')
    check(func)
    with pytest.raises(BorrowError) as exc_info:
      BorrowChecker(reject_moves_in_loops=False).check(func)
    assert exc_info.value.kind == BorrowErrorKind.USE_AFTER_MOVE


class TestBorrows:
  def test_multiple_shared_borrows(self):
    check_source("let a = 1; let r1 = &a; let r2 = &a; print(r1); print(r2); print(a);")

  def test_exclusive_after_shared(self):
    error = borrow_error("let a = 1;\nlet r = &a;\nlet m = &mut a;")
    assert error.kind == BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT
    assert error.message == "cannot mutably borrow 'a' because it is already borrowed"
    assert (error.line, error.column) == (3, 1)

  def test_exclusive_after_exclusive(self):
    error = borrow_error("let a = 1; let m1 = &mut a; let m2 = &mut a;")
    assert error.kind == BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT

  def test_shared_after_exclusive(self):
    error = borrow_error("let a = 1; let m = &mut a; let r = &a;")
    assert error.kind == BorrowErrorKind.SHARED_BORROW_CONFLICT
    assert error.message == "cannot immutably borrow 'a' because it is mutably borrowed"

  def test_borrowed_value_still_readable(self):
    check_source("let a = 1; let r = &a; print(a); print(r);")

  def test_borrow_of_non_identifier(self):
    error = borrow_error("let r = &5;")
    assert error.kind == BorrowErrorKind.BORROW_NON_IDENTIFIER
    assert error.message == "cannot borrow from non-identifier"

  def test_mutable_borrow_of_non_identifier(self):
    error = borrow_error('let r = &mut "s";')
    assert error.kind == BorrowErrorKind.BORROW_NON_IDENTIFIER
    assert error.message == "cannot mutably borrow from non-identifier"

  def test_borrow_of_non_identifier_in_call(self):
    error = borrow_error("print(&5);")
    assert error.kind == BorrowErrorKind.BORROW_NON_IDENTIFIER

  def test_undeclared_variable(self):
    # The borrow checker can run on unchecked trees
    func = make_main((LetStmt("r", INT, RefExpr(VarExpr("ghost"), False), 4, 2),))
    with pytest.raises(BorrowError) as exc_info:
      borrow_check(func)
    assert exc_info.value.kind == BorrowErrorKind.UNDECLARED_VARIABLE
    assert exc_info.value.message == "borrow of undeclared variable 'ghost'"
    assert (exc_info.value.line, exc_info.value.column) == (4, 2)

  def test_format(self):
    error = borrow_error("let a = 1;\nlet b = a;\nprint(a);")
    assert error.format("main.my") == "main.my:3:7: borrow error: use of moved value 'a'"


class TestScopes:
  def test_borrow_released_at_scope_exit(self):
    check_source("let a = 1; { let r = &mut a; } let m = &mut a; print(m);")

  def test_shared_borrows_released_at_scope_exit(self):
    check_source("let a = 1; { let r1 = &a; let r2 = &a; } let b = a; print(b);")

  def test_borrow_persists_without_release(self):
    error = borrow_error(
      "let a = 1; { let r = &mut a; } let m = &mut a;",
      release_borrows_on_scope_exit=False,
    )
    assert error.kind == BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT

  def test_outer_borrow_survives_inner_scope(self):
    error = borrow_error("let a = 1; let r = &a; { let x = 2; } let m = &mut a;")
    assert error.kind == BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT

  def test_borrow_in_for_body_released_each_iteration(self):
    check_source("let a = 1; for i in 0..3 { let m = &mut a; } let n = &mut a;")

  def test_sibling_block_redeclaration_starts_fresh(self):
    check_source("{ let a = 1; let b = a; } { let a = 2; print(a); let r = &mut a; }")

  def test_inner_variable_dropped(self):
    with pytest.raises(BorrowError) as exc_info:
      borrow_check(make_main((BlockStmt((LetStmt("x", INT, IntLiteral(1)),)), print_stmt("x"))))
    assert exc_info.value.kind == BorrowErrorKind.UNDECLARED_VARIABLE

  def test_shadowed_variable_borrow_released_on_outer(self):
    # The inner `a` shadows the outer one; releasing `r` must not touch the inner
    check_source("let a = 1; { let r = &mut a; let a = 2; let m = &mut a; } let n = &mut a;")

  def test_move_in_if_branch_invalidates_after(self):
    func = make_main(
      (
        LetStmt("a", INT, IntLiteral(1)),
        IfStmt(IntLiteral(1), BlockStmt((LetStmt("b", INT, VarExpr("a")),)), None),
        print_stmt("a"),
      )
    )
    with pytest.raises(BorrowError) as exc_info:
      borrow_check(func)
    assert exc_info.value.kind == BorrowErrorKind.USE_AFTER_MOVE

  def test_moves_in_both_branches_are_independent(self):
    func = make_main(
      (
        LetStmt("a", INT, IntLiteral(1)),
        IfStmt(
          IntLiteral(1),
          BlockStmt((LetStmt("b", INT, VarExpr("a")),)),
          BlockStmt((LetStmt("c", INT, VarExpr("a")),)),
        ),
      )
    )
    borrow_check(func)

  def test_branch_borrow_released(self):
    func = make_main(
      (
        LetStmt("a", INT, IntLiteral(1)),
        IfStmt(IntLiteral(1), BlockStmt((LetStmt("m", INT, RefExpr(VarExpr("a"), True)),)), None),
        LetStmt("n", INT, RefExpr(VarExpr("a"), True)),
      )
    )
    borrow_check(func)

  def test_branch_borrow_kept_without_release(self):
    func = make_main(
      (
        LetStmt("a", INT, IntLiteral(1)),
        IfStmt(IntLiteral(1), BlockStmt((LetStmt("m", INT, RefExpr(VarExpr("a"), True)),)), None),
        LetStmt("n", INT, RefExpr(VarExpr("a"), True)),
      )
    )
    with pytest.raises(BorrowError) as exc_info:
      BorrowChecker(release_borrows_on_scope_exit=False).check(func)
    assert exc_info.value.kind == BorrowErrorKind.EXCLUSIVE_BORROW_CONFLICT


class TestLogging:
  def test_transitions_are_logged(self, caplog):
    with caplog.at_level(logging.DEBUG, logger="mycc.borrow"):
      check_source("let a = 1; let r = &a; let b = 2; let c = b;")
    messages = [record.getMessage() for record in caplog.records if record.name == "mycc.borrow"]
    assert "declare 'a' at scope 1" in messages
    assert "borrow 'a' by 'r': shared=1 exclusive=False" in messages
    assert "move 'b' into 'c' (line 1)" in messages
