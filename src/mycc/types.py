"""Type values for MyLang."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IntType:
  """64-bit signed integer."""


@dataclass(frozen=True, slots=True)
class StringType:
  """Heap-backed owned string."""


@dataclass(frozen=True, slots=True)
class RefType:
  """Shared reference: &T."""

  inner: "Type"


@dataclass(frozen=True, slots=True)
class MutRefType:
  """Exclusive reference: &mut T."""

  inner: "Type"


@dataclass(frozen=True, slots=True)
class RcType:
  """Reference-counted pointer. Reserved, nothing produces it yet."""

  inner: "Type"


@dataclass(frozen=True, slots=True)
class ArrayType:
  """Array built from a literal: [T]."""

  inner: "Type"


@dataclass(frozen=True, slots=True)
class RangeType:
  """Half-open integer range produced by start..end."""


@dataclass(frozen=True, slots=True)
class UnknownType:
  """Placeholder for a type not yet inferred."""


Type = IntType | StringType | RefType | MutRefType | RcType | ArrayType | RangeType | UnknownType

INT = IntType()
STRING = StringType()
RANGE = RangeType()
UNKNOWN = UnknownType()


def type_to_str(t: Type) -> str:
  """Render a type the way it is written in source and diagnostics."""
  match t:
    case IntType():
      return "int"
    case StringType():
      return "string"
    case RefType(inner):
      return f"&{type_to_str(inner)}"
    case MutRefType(inner):
      return f"&mut {type_to_str(inner)}"
    case RcType(inner):
      return f"Rc<{type_to_str(inner)}>"
    case ArrayType(inner):
      return f"[{type_to_str(inner)}]"
    case RangeType():
      return "range"
  return "unknown"


def is_unknown(t: Type) -> bool:
  return isinstance(t, UnknownType)


def same_kind(a: Type, b: Type) -> bool:
  """Compare only the outermost kind, so &int and &string are compatible."""
  return type(a) is type(b)


def array_element_type(t: Type) -> Type | None:
  """Element type of an array, seeing through one level of reference."""
  match t:
    case ArrayType(inner):
      return inner
    case RefType(ArrayType(inner)) | MutRefType(ArrayType(inner)):
      return inner
  return None
