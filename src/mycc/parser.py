"""Recursive descent parser for the MyLang language."""

import logging
from collections.abc import Iterable

from .ast import (
  Expr,
  Stmt,
  ForStmt,
  LetStmt,
  RefExpr,
  VarExpr,
  CallExpr,
  ExprStmt,
  Function,
  BlockStmt,
  IndexExpr,
  RangeExpr,
  IntLiteral,
  ArrayLiteral,
  StringLiteral,
  make_main,
)
from .lexer import Lexer
from .types import INT, STRING, Type, UNKNOWN
from .errors import ParseError
from .tokens import Token, TokenType

logger = logging.getLogger(__name__)

TYPE_NAMES: dict[TokenType, Type] = {
  TokenType.INT_TYPE: INT,
  TokenType.STRING_TYPE: STRING,
}

# Tokens that may name a callee or variable
CALLEE_TOKENS = (TokenType.IDENT, TokenType.PRINT, TokenType.PRINTLN)


def _describe(token: Token) -> str:
  return "end of file" if token.type == TokenType.EOF else f"'{token.value}'"


class Parser:
  """Parses a token stream into an AST with one token of lookahead."""

  def __init__(self, tokens: Iterable[Token]) -> None:
    self.tokens = iter(tokens)
    self.current = Token(TokenType.EOF, "", 1, 1)
    self.current = self._next()

  def _next(self) -> Token:
    # Keep returning the last token once the stream is exhausted
    token = next(self.tokens, None)
    if token is None:
      return self.current
    return token

  def _at_end(self) -> bool:
    return self.current.type == TokenType.EOF

  def _check(self, *types: TokenType) -> bool:
    return self.current.type in types

  def _advance(self) -> Token:
    token = self.current
    if not self._at_end():
      self.current = self._next()
    return token

  def _expect(self, type: TokenType, what: str) -> Token:
    if not self._check(type):
      raise ParseError(f"expected {what} (got {_describe(self.current)})", self.current)
    return self._advance()

  # === Statements ===

  def parse(self) -> Function:
    """Parse the entire program into the implicit main function."""
    stmts: list[Stmt] = []
    while not self._at_end():
      stmts.append(self._parse_statement())
    logger.debug("parsed %d top-level statements", len(stmts))
    return make_main(tuple(stmts))

  def _parse_statement(self) -> Stmt:
    """Parse a single statement."""
    if self._check(TokenType.LET):
      return self._parse_let()
    elif self._check(TokenType.FOR):
      return self._parse_for()
    elif self._check(TokenType.LBRACE):
      return self._parse_block()
    else:
      return self._parse_expr_stmt()

  def _parse_block(self) -> BlockStmt:
    """Parse: '{' stmt* '}'"""
    start = self._expect(TokenType.LBRACE, "'{'")
    stmts: list[Stmt] = []
    while not self._check(TokenType.RBRACE):
      if self._at_end():
        raise ParseError("Unexpected end of file inside block", self.current)
      stmts.append(self._parse_statement())
    self._expect(TokenType.RBRACE, "'}'")
    return BlockStmt(tuple(stmts), start.line, start.column)

  def _parse_let(self) -> LetStmt:
    """Parse: let name [: type] [= expr];"""
    start = self._advance()  # consume 'let'
    name_token = self._expect(TokenType.IDENT, "identifier after 'let'")

    type_ann = UNKNOWN
    if self._check(TokenType.COLON):
      self._advance()
      type_ann = self._parse_type()

    value: Expr | None = None
    if self._check(TokenType.ASSIGN):
      self._advance()
      value = self._parse_expression()

    self._expect(TokenType.SEMICOLON, "';'")
    return LetStmt(name_token.value, type_ann, value, start.line, start.column)

  def _parse_type(self) -> Type:
    """Parse a type annotation: int or string."""
    token = self.current
    if token.type not in TYPE_NAMES:
      raise ParseError(f"Unknown type {_describe(token)}", token)
    self._advance()
    return TYPE_NAMES[token.type]

  def _parse_for(self) -> ForStmt:
    """Parse: for var in expr { body }"""
    start = self._advance()  # consume 'for'
    var_token = self._expect(TokenType.IDENT, "identifier after 'for'")
    self._expect(TokenType.IN, "'in'")
    iterable = self._parse_expression()
    body = self._parse_block()
    return ForStmt(var_token.value, iterable, body, start.line, start.column)

  def _parse_expr_stmt(self) -> ExprStmt:
    """Parse an expression statement."""
    start = self.current
    expr = self._parse_expression()
    self._expect(TokenType.SEMICOLON, "';'")
    return ExprStmt(expr, start.line, start.column)

  # === Expressions ===

  def _parse_expression(self) -> Expr:
    """Parse: primary ['..' primary]"""
    left = self._parse_primary()
    if self._check(TokenType.DOTDOT):
      op = self._advance()
      right = self._parse_primary()
      return RangeExpr(left, right, op.line, op.column)
    return left

  def _parse_arguments(self, closer: TokenType) -> tuple[Expr, ...]:
    """Parse a comma-separated expression list up to (not including) closer."""
    items: list[Expr] = []
    if self._check(closer):
      return ()
    items.append(self._parse_expression())
    while self._check(TokenType.COMMA):
      self._advance()
      items.append(self._parse_expression())
    return tuple(items)

  def _parse_primary(self) -> Expr:
    """Parse primary expression (literals, references, arrays, names)."""
    token = self.current

    if token.type == TokenType.INT:
      self._advance()
      return IntLiteral(token.int_value, token.line, token.column)

    elif token.type == TokenType.STRING:
      self._advance()
      return StringLiteral(token.value, token.line, token.column)

    elif token.type in (TokenType.AMP, TokenType.AMP_MUT):
      self._advance()
      target = self._parse_primary()
      return RefExpr(target, token.type == TokenType.AMP_MUT, token.line, token.column)

    elif token.type == TokenType.LBRACKET:
      self._advance()
      elements = self._parse_arguments(TokenType.RBRACKET)
      self._expect(TokenType.RBRACKET, "']'")
      return ArrayLiteral(elements, token.line, token.column)

    elif token.type in CALLEE_TOKENS:
      self._advance()
      expr: Expr = VarExpr(token.value, token.line, token.column)
      if self._check(TokenType.LPAREN):
        self._advance()
        args = self._parse_arguments(TokenType.RPAREN)
        self._expect(TokenType.RPAREN, "')'")
        expr = CallExpr(token.value, args, token.line, token.column)
      return self._parse_postfix(expr, token)

    else:
      raise ParseError(f"Unexpected token {_describe(token)}", token)

  def _parse_postfix(self, expr: Expr, start: Token) -> Expr:
    """Parse trailing index operations: expr[i][j]..."""
    while self._check(TokenType.LBRACKET):
      self._advance()
      index = self._parse_expression()
      self._expect(TokenType.RBRACKET, "']'")
      expr = IndexExpr(expr, index, start.line, start.column)
    return expr


def parse(tokens: Iterable[Token]) -> Function:
  """Convenience function to parse a token stream."""
  return Parser(tokens).parse()


def parse_source(source: str) -> Function:
  """Scan and parse source text lazily, token by token."""
  return Parser(Lexer(source)).parse()
