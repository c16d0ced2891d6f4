"""Tests for the MyLang parser and AST printer."""

import pytest

from mycc.ast import (
  ForStmt,
  LetStmt,
  RefExpr,
  VarExpr,
  CallExpr,
  ExprStmt,
  BlockStmt,
  IndexExpr,
  RangeExpr,
  IntLiteral,
  ArrayLiteral,
  StringLiteral,
)
from mycc.types import INT, STRING, UNKNOWN
from mycc.lexer import tokenize
from mycc.errors import ParseError
from mycc.parser import parse, parse_source
from mycc.printer import dump_function, format_function

ROUND_TRIP_PROGRAM = """
let a: int = 10;
let s: string = "line\\n\\t\\"quoted\\"";
let b;
let r = &a;
let m = &mut a;
let t = clone(s);
print(a);
println("done");
{
  let inner = [1, 2, 3];
  print(inner[0]);
}
for i in 0..10 {
  print(i);
}
let rr = &mutx;
"""


class TestParser:
  def test_program_is_implicit_main(self):
    func = parse_source("let a = 1;")
    assert func.name == "main"
    assert func.return_type == INT
    assert func.body == BlockStmt((LetStmt("a", UNKNOWN, IntLiteral(1)),))

  def test_let_with_annotation(self):
    stmt = parse_source("let x: string = clone(y);").body.stmts[0]
    assert stmt == LetStmt("x", STRING, CallExpr("clone", (VarExpr("y"),)))

  def test_let_without_initializer(self):
    stmt = parse_source("let x: int;").body.stmts[0]
    assert stmt == LetStmt("x", INT, None)

  def test_references(self):
    stmts = parse_source("let r = &a; let m = &mut a;").body.stmts
    assert stmts[0].value == RefExpr(VarExpr("a"), False)
    assert stmts[1].value == RefExpr(VarExpr("a"), True)

  def test_print_is_callable(self):
    stmt = parse_source('print("hi");').body.stmts[0]
    assert stmt == ExprStmt(CallExpr("print", (StringLiteral("hi"),)))

  def test_call_arguments(self):
    stmt = parse_source("print(a, 1, \"s\");").body.stmts[0]
    assert stmt.expr.args == (VarExpr("a"), IntLiteral(1), StringLiteral("s"))

  def test_empty_call(self):
    stmt = parse_source("clone();").body.stmts[0]
    assert stmt.expr == CallExpr("clone", ())

  def test_block(self):
    stmt = parse_source("{ let a = 1; { print(a); } }").body.stmts[0]
    assert isinstance(stmt, BlockStmt)
    assert isinstance(stmt.stmts[1], BlockStmt)

  def test_for_range(self):
    stmt = parse_source("for i in 0..3 { print(i); }").body.stmts[0]
    assert stmt == ForStmt(
      "i",
      RangeExpr(IntLiteral(0), IntLiteral(3)),
      BlockStmt((ExprStmt(CallExpr("print", (VarExpr("i"),))),)),
    )

  def test_array_and_index(self):
    stmts = parse_source("let a = [1, 2]; print(a[1]);").body.stmts
    assert stmts[0].value == ArrayLiteral((IntLiteral(1), IntLiteral(2)))
    assert stmts[1].expr.args[0] == IndexExpr(VarExpr("a"), IntLiteral(1))

  def test_nested_index(self):
    expr = parse_source("m[0][1];").body.stmts[0].expr
    assert expr == IndexExpr(IndexExpr(VarExpr("m"), IntLiteral(0)), IntLiteral(1))

  def test_positions(self):
    stmts = parse_source("let a = 1;\n  print(a);").body.stmts
    assert (stmts[0].line, stmts[0].column) == (1, 1)
    call = stmts[1].expr
    assert (call.line, call.column) == (2, 3)
    assert (call.args[0].line, call.args[0].column) == (2, 9)

  def test_positions_do_not_affect_equality(self):
    assert parse_source("let a=1;") == parse_source("\n\n   let   a =\n 1 ;")

  def test_accepts_token_list(self):
    assert parse(tokenize("print(1);")) == parse_source("print(1);")

  def test_missing_semicolon(self):
    with pytest.raises(ParseError, match="expected ';'") as exc_info:
      parse_source("let a = 1\nlet b = 2;")
    assert exc_info.value.token.type.name == "LET"
    assert exc_info.value.line == 2

  def test_missing_identifier(self):
    with pytest.raises(ParseError, match="expected identifier after 'let'"):
      parse_source("let = 5;")

  def test_unknown_type(self):
    with pytest.raises(ParseError, match="Unknown type 'float'"):
      parse_source("let a: float = 1;")

  def test_unexpected_token(self):
    with pytest.raises(ParseError, match="Unexpected token ';'"):
      parse_source("let a = ;")

  def test_unclosed_block(self):
    with pytest.raises(ParseError, match="Unexpected end of file inside block"):
      parse_source("{ let a = 1;")

  def test_unclosed_call(self):
    with pytest.raises(ParseError, match=r"expected '\)' \(got end of file\)"):
      parse_source("print(1")

  def test_for_requires_block(self):
    with pytest.raises(ParseError, match="expected '{'"):
      parse_source("for i in 0..3 print(i);")

  def test_empty_program(self):
    assert parse_source("").body.stmts == ()
    assert parse_source("// nothing\n").body.stmts == ()


class TestPrinter:
  def test_round_trip(self):
    func = parse_source(ROUND_TRIP_PROGRAM)
    assert parse_source(format_function(func)) == func

  def test_round_trip_is_stable(self):
    text = format_function(parse_source(ROUND_TRIP_PROGRAM))
    assert format_function(parse_source(text)) == text

  def test_round_trip_wrapped_literals(self):
    func = parse_source("let x = 9223372036854775808; let y = 18446744073709551615; let z = 18446744073709551616;")
    text = format_function(func)
    assert text == "let x = 9223372036854775808;\nlet y = 18446744073709551615;\nlet z = 0;\n"
    assert parse_source(text) == func

  def test_format_glued_mut_reference(self):
    func = parse_source("let r = & mutable;")
    assert format_function(func) == "let r = & mutable;\n"
    assert parse_source(format_function(func)) == func

  def test_dump(self):
    func = parse_source('let a: int = 1;\nprint(&a);\nfor i in 0..2 { print("x"); }')
    assert dump_function(func) == (
      "Function main:\n"
      "  BLOCK (3 stmts)\n"
      "    DECL a: int\n"
      "      INT 1\n"
      "    EXPR\n"
      "      CALL print\n"
      "        &\n"
      "          IDENT a\n"
      "    FOR i\n"
      "      RANGE\n"
      "        INT 0\n"
      "        INT 2\n"
      "      BLOCK (1 stmts)\n"
      "        EXPR\n"
      "          CALL print\n"
      '            STRING "x"\n'
    )
