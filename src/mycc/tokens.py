"""Token definitions for the MyLang language."""

from enum import Enum, auto
from dataclasses import dataclass

# Longest lexeme kept for identifiers and string literals
MAX_TOKEN_LENGTH = 255


class TokenType(Enum):
  EOF = auto()
  EOL = auto()  # never emitted, newlines are plain whitespace

  # Literals
  INT = auto()
  STRING = auto()
  IDENT = auto()

  # Keywords
  PRINT = auto()
  PRINTLN = auto()
  LET = auto()
  FOR = auto()
  IN = auto()
  INT_TYPE = auto()
  STRING_TYPE = auto()

  # Punctuation
  LPAREN = auto()
  RPAREN = auto()
  LBRACE = auto()
  RBRACE = auto()
  LBRACKET = auto()
  RBRACKET = auto()
  COMMA = auto()
  SEMICOLON = auto()
  COLON = auto()
  ASSIGN = auto()

  # References
  AMP = auto()  # &
  AMP_MUT = auto()  # &mut

  # Range
  DOTDOT = auto()


KEYWORDS: dict[str, TokenType] = {
  "let": TokenType.LET,
  "for": TokenType.FOR,
  "in": TokenType.IN,
  "int": TokenType.INT_TYPE,
  "string": TokenType.STRING_TYPE,
  "print": TokenType.PRINT,
  "println": TokenType.PRINTLN,
}


@dataclass(frozen=True, slots=True)
class Token:
  type: TokenType
  value: str
  line: int
  column: int
  int_value: int = 0

  def __repr__(self) -> str:
    return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
