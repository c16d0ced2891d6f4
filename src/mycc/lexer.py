"""Lexer for the MyLang language."""

import logging
from collections.abc import Iterator

from .errors import LexerError
from .tokens import KEYWORDS, MAX_TOKEN_LENGTH, Token, TokenType

logger = logging.getLogger(__name__)

SIMPLE_TOKENS: dict[str, TokenType] = {
  "{": TokenType.LBRACE,
  "}": TokenType.RBRACE,
  "(": TokenType.LPAREN,
  ")": TokenType.RPAREN,
  "[": TokenType.LBRACKET,
  "]": TokenType.RBRACKET,
  ",": TokenType.COMMA,
  ";": TokenType.SEMICOLON,
  ":": TokenType.COLON,
  "=": TokenType.ASSIGN,
}

# Integer literals wrap to a signed 64-bit value
_INT_BITS = 64


def wrap_int(value: int) -> int:
  """Wrap an arbitrary integer to signed 64-bit two's complement."""
  value &= (1 << _INT_BITS) - 1
  if value >= 1 << (_INT_BITS - 1):
    value -= 1 << _INT_BITS
  return value


def _is_ident_start(c: str) -> bool:
  return c.isascii() and (c.isalpha() or c == "_")


def _is_ident_char(c: str) -> bool:
  return c.isascii() and (c.isalnum() or c == "_")


def _is_digit(c: str) -> bool:
  return "0" <= c <= "9"


def _describe_char(c: str) -> str:
  """Render a character for a diagnostic; undecodable source bytes show as `\\xNN`."""
  if "\udc80" <= c <= "\udcff":
    return f"\\x{ord(c) - 0xDC00:02x}"
  if c.isprintable():
    return c
  return c.encode("unicode_escape").decode("ascii")


class Lexer:
  """Scans MyLang source into tokens, one token per call."""

  def __init__(self, source: str) -> None:
    self.source = source
    self.pos = 0
    self.line = 1
    self.column = 1

  def _current(self) -> str:
    return self.source[self.pos] if self.pos < len(self.source) else ""

  def _peek(self, offset: int = 1) -> str:
    pos = self.pos + offset
    return self.source[pos] if pos < len(self.source) else ""

  def _advance(self) -> str:
    ch = self._current()
    if not ch:
      return ch
    self.pos += 1
    self.line, self.column = (self.line + 1, 1) if ch == "\n" else (self.line, self.column + 1)
    return ch

  def _read_while(self, pred) -> str:
    start = self.pos
    while self._current() and pred(self._current()):
      self._advance()
    return self.source[start : self.pos]

  def _skip_trivia(self) -> None:
    """Skip whitespace and // comments."""
    while self._current():
      if self._current().isspace():
        self._advance()
      elif self._current() == "/" and self._peek() == "/":
        self._read_while(lambda c: c != "\n")
      else:
        break

  def _read_string(self, line: int, col: int) -> Token:
    """Read a string literal with escape sequences."""
    self._advance()  # consume opening quote
    chars: list[str] = []
    while self._current() and self._current() != '"':
      ch = self._advance()
      if ch == "\\" and self._current():
        match self._advance():
          case "n":
            ch = "\n"
          case "t":
            ch = "\t"
          case other:
            ch = other
      if len(chars) < MAX_TOKEN_LENGTH:
        chars.append(ch)
    if not self._current():
      raise LexerError("Unterminated string literal", line, col)
    self._advance()  # consume closing quote
    return Token(TokenType.STRING, "".join(chars), line, col)

  def _read_ampersand(self, line: int, col: int) -> Token:
    """Read `&` or `&mut`, backtracking if `mut` is incomplete."""
    self._advance()  # consume '&'
    saved = (self.pos, self.line, self.column)
    for expected in "mut":
      if self._current() != expected:
        self.pos, self.line, self.column = saved
        return Token(TokenType.AMP, "&", line, col)
      self._advance()
    return Token(TokenType.AMP_MUT, "&mut", line, col)

  def next_token(self) -> Token:
    """Scan and return the next token; returns EOF forever at end of input."""
    self._skip_trivia()
    ch = self._current()
    line, col = self.line, self.column

    match ch:
      case "":
        return Token(TokenType.EOF, "", line, col)
      case '"':
        return self._read_string(line, col)
      case c if _is_digit(c):
        digits = self._read_while(_is_digit)
        return Token(TokenType.INT, digits, line, col, wrap_int(int(digits)))
      case c if _is_ident_start(c):
        ident = self._read_while(_is_ident_char)[:MAX_TOKEN_LENGTH]
        return Token(KEYWORDS.get(ident, TokenType.IDENT), ident, line, col)
      case "&":
        return self._read_ampersand(line, col)
      case "." if self._peek() == ".":
        self._advance()
        self._advance()
        return Token(TokenType.DOTDOT, "..", line, col)
      case c if c in SIMPLE_TOKENS:
        self._advance()
        return Token(SIMPLE_TOKENS[c], c, line, col)
      case _:
        raise LexerError(f"Unexpected character '{_describe_char(ch)}'", line, col)

  def __iter__(self) -> Iterator[Token]:
    """Yield tokens lazily, ending with (and including) EOF."""
    while True:
      token = self.next_token()
      yield token
      if token.type == TokenType.EOF:
        return

  def tokenize(self) -> list[Token]:
    """Tokenize the entire source and return a list of tokens."""
    tokens = list(self)
    logger.debug("scanned %d tokens", len(tokens))
    return tokens


def tokenize(source: str) -> list[Token]:
  """Convenience function to tokenize source code."""
  return Lexer(source).tokenize()
