"""x86_64 NASM code generator.

The generator is a stack machine: every expression leaves exactly one 8-byte
value pushed on the machine stack. Locals live in rbp-relative slots reserved
by the prologue, so expression pushes never overlap them.

Frame layout (stack grows down):
  [rbp + 8]        -> return address
  [rbp]            -> saved rbp
  [rbp - 8]        -> first slot
  ...
  [rbp - N]        -> last slot (N rounded up to 16)
  below            -> expression temporaries

Arrays occupy one header slot holding the length followed by the elements at
ascending addresses. An array value is the address of its header.
"""

import sys
import logging
from enum import Enum

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
from .types import Type, RefType, StringType, MutRefType, type_to_str, array_element_type
from .checker import TypeMap

logger = logging.getLogger(__name__)

RUNTIME_FUNCTIONS = (
  "runtime_new_string",
  "runtime_print_int",
  "runtime_print_string",
  "runtime_clone_string",
)

# Comparison operator -> setcc suffix
COMPARISONS = {
  "<": "l",
  ">": "g",
  "<=": "le",
  ">=": "ge",
  "==": "e",
  "!=": "ne",
}

ARITHMETIC = {
  "+": "add rax, rcx",
  "-": "sub rax, rcx",
  "*": "imul rax, rcx",
}


class Abi(Enum):
  """Calling convention of the target platform."""

  SYSV = "sysv"
  WIN64 = "win64"

  @property
  def arg_register(self) -> str:
    return "rcx" if self is Abi.WIN64 else "rdi"

  @property
  def shadow_space(self) -> int:
    return 32 if self is Abi.WIN64 else 0

  @classmethod
  def host(cls) -> "Abi":
    return cls.WIN64 if sys.platform == "win32" else cls.SYSV


def _encode_bytes(value: str) -> str:
  # Lone surrogates are undecodable source bytes; they go back out unchanged
  return ",".join(str(b) for b in (*value.encode("utf-8", "surrogateescape"), 0))


def _is_reference(t: Type) -> bool:
  return isinstance(t, (RefType, MutRefType))


class CodeGenerator:
  """Generates NASM assembly for the implicit main function."""

  def __init__(self, types: TypeMap, abi: Abi = Abi.SYSV, debug: bool = False) -> None:
    self.types = types
    self.abi = abi
    self.debug = debug
    self.output: list[str] = []
    self.label_counter = 0
    # String literals: value -> label, in order of first use
    self.strings: dict[str, str] = {}
    # Variable scopes: name -> rbp offset of its slot
    self.scopes: list[dict[str, int]] = []
    self.slots = 0
    # Values currently pushed by expression evaluation
    self.depth = 0
    # (continue label, break label) for each enclosing loop
    self.loops: list[tuple[str, str]] = []

  def _emit(self, line: str) -> None:
    self.output.append(line)

  def _ins(self, instruction: str) -> None:
    self._emit(f"    {instruction}")

  def _new_label(self, prefix: str) -> str:
    label = f".{prefix}{self.label_counter}"
    self.label_counter += 1
    return label

  def _string_label(self, value: str) -> str:
    """Get or create the data label for a string literal."""
    if value not in self.strings:
      self.strings[value] = f"literal_{len(self.strings)}"
    return self.strings[value]

  # === Stack and frame bookkeeping ===

  def _push(self, operand: str = "rax") -> None:
    self._ins(f"push {operand}")
    self.depth += 1

  def _pop(self, register: str = "rax") -> None:
    self._ins(f"pop {register}")
    self.depth -= 1

  def _alloc(self, count: int = 1) -> int:
    """Reserve `count` consecutive slots; returns the offset of the lowest one."""
    self.slots += count
    return self.slots * 8

  @staticmethod
  def _slot(offset: int, index: int = 0) -> str:
    return f"[rbp - {offset - index * 8}]"

  def _lookup_var(self, name: str) -> int:
    for scope in reversed(self.scopes):
      if name in scope:
        return scope[name]
    raise KeyError(f"No slot for variable '{name}'")

  def _call(self, target: str) -> None:
    """Call a runtime function whose argument is already in place."""
    # rsp is 16-byte aligned when an even number of values are pushed
    pad = 8 if self.depth % 2 else 0
    reserve = pad + self.abi.shadow_space
    if reserve:
      self._ins(f"sub rsp, {reserve}")
    self._ins(f"call {target}")
    if reserve:
      self._ins(f"add rsp, {reserve}")

  # === Top level ===

  def generate(self, func: Function) -> str:
    """Generate the complete assembly file for a function."""
    self.scopes = [{}]
    self._gen_stmt(func.body)
    body = self.output

    self.output = []
    self._emit(f"; mycc output, abi={self.abi.value}")
    self._emit("bits 64")
    self._emit(f"global {func.name}")
    for name in RUNTIME_FUNCTIONS:
      self._emit(f"extern {name}")
    self._emit("")
    self._emit("section .text")
    self._emit(f"{func.name}:")
    self._ins("push rbp")
    self._ins("mov rbp, rsp")
    frame_size = (self.slots * 8 + 15) & ~15
    if frame_size:
      self._ins(f"sub rsp, {frame_size}")
    self.output.extend(body)

    # Falling off the end returns 0
    self._ins("mov eax, 0")
    self._emit(".Lreturn:")
    self._ins("mov rsp, rbp")
    self._ins("pop rbp")
    self._ins("ret")

    if self.strings:
      self._emit("")
      self._emit("section .data")
      for value, label in self.strings.items():
        self._emit(f"{label}: db {_encode_bytes(value)}")

    logger.debug(
      "generated %d lines for '%s': frame=%d bytes, %d string literals",
      len(self.output),
      func.name,
      frame_size,
      len(self.strings),
    )
    return "\n".join(self.output) + "\n"

  # === Statements ===

  def _gen_stmt(self, stmt: Stmt) -> None:
    match stmt:
      case LetStmt(name, _, value):
        offset = self._alloc()
        if self.debug:
          t = self.types[value] if value is not None else stmt.type_ann
          self._emit(f"    ; let {name}: {type_to_str(t)} at {self._slot(offset)}")
        if value is None:
          self._ins(f"mov qword {self._slot(offset)}, 0")
        else:
          self._gen_expr(value)
          self._pop()
          self._ins(f"mov {self._slot(offset)}, rax")
        # Bind after the initializer so `let a = a;` reads the outer `a`
        self.scopes[-1][name] = offset

      case ExprStmt(expr):
        self._gen_expr(expr)
        self._ins("add rsp, 8")
        self.depth -= 1

      case BlockStmt(stmts):
        self.scopes.append({})
        for child in stmts:
          self._gen_stmt(child)
        self.scopes.pop()

      case IfStmt(condition, then_body, else_body):
        else_label = self._new_label("Lelse")
        end_label = self._new_label("Lend")
        self._gen_condition(condition, else_label)
        self._gen_scoped(then_body)
        self._ins(f"jmp {end_label}")
        self._emit(f"{else_label}:")
        if else_body is not None:
          self._gen_scoped(else_body)
        self._emit(f"{end_label}:")

      case WhileStmt(condition, body):
        loop_label = self._new_label("Lwhile")
        end_label = self._new_label("Lendwhile")
        self._emit(f"{loop_label}:")
        self._gen_condition(condition, end_label)
        self.loops.append((loop_label, end_label))
        self._gen_scoped(body)
        self.loops.pop()
        self._ins(f"jmp {loop_label}")
        self._emit(f"{end_label}:")

      case ForStmt(var, iterable, body):
        if array_element_type(self.types[iterable]) is not None:
          self._gen_for_array(var, iterable, body)
        else:
          self._gen_for_range(var, iterable, body)

      case ReturnStmt(value):
        if value is None:
          self._ins("mov eax, 0")
        else:
          self._gen_expr(value)
          self._pop()
        self._ins("jmp .Lreturn")

      case BreakStmt():
        self._ins(f"jmp {self.loops[-1][1]}")

      case ContinueStmt():
        self._ins(f"jmp {self.loops[-1][0]}")

  def _gen_scoped(self, stmt: Stmt) -> None:
    self.scopes.append({})
    self._gen_stmt(stmt)
    self.scopes.pop()

  def _gen_condition(self, condition: Expr, false_label: str) -> None:
    """Evaluate a condition and jump to `false_label` when it is zero."""
    self._gen_expr(condition)
    self._pop()
    self._ins("cmp rax, 0")
    self._ins(f"je {false_label}")

  def _gen_for_range(self, var: str, iterable: Expr, body: BlockStmt) -> None:
    """for var in start..end: iterate start <= var < end."""
    loop_label = self._new_label("Lfor")
    next_label = self._new_label("Lnext")
    end_label = self._new_label("Lendfor")
    var_offset = self._alloc()
    end_offset = self._alloc()

    match iterable:
      case RangeExpr(start, end):
        self._gen_expr(start)
        self._gen_expr(end)
        self._pop("rcx")
        self._pop()
      case _:
        # Range value: address of a (start, end) pair
        self._gen_expr(iterable)
        self._pop("rcx")
        self._ins("mov rax, [rcx]")
        self._ins("mov rcx, [rcx + 8]")
    self._ins(f"mov {self._slot(var_offset)}, rax")
    self._ins(f"mov {self._slot(end_offset)}, rcx")

    self._emit(f"{loop_label}:")
    self._ins(f"mov rax, {self._slot(var_offset)}")
    self._ins(f"cmp rax, {self._slot(end_offset)}")
    self._ins(f"jge {end_label}")
    self._gen_loop_body(var, var_offset, body, next_label, end_label)
    self._emit(f"{next_label}:")
    self._ins(f"inc qword {self._slot(var_offset)}")
    self._ins(f"jmp {loop_label}")
    self._emit(f"{end_label}:")

  def _gen_for_array(self, var: str, iterable: Expr, body: BlockStmt) -> None:
    """for var in array: bind each element in order."""
    loop_label = self._new_label("Lfor")
    next_label = self._new_label("Lnext")
    end_label = self._new_label("Lendfor")
    base_offset = self._alloc()
    index_offset = self._alloc()
    var_offset = self._alloc()

    self._gen_array_base(iterable)
    self._pop()
    self._ins(f"mov {self._slot(base_offset)}, rax")
    self._ins(f"mov qword {self._slot(index_offset)}, 0")

    self._emit(f"{loop_label}:")
    self._ins(f"mov rax, {self._slot(index_offset)}")
    self._ins(f"mov rcx, {self._slot(base_offset)}")
    self._ins("cmp rax, [rcx]")
    self._ins(f"jge {end_label}")
    self._ins("mov rax, [rcx + rax*8 + 8]")
    self._ins(f"mov {self._slot(var_offset)}, rax")
    self._gen_loop_body(var, var_offset, body, next_label, end_label)
    self._emit(f"{next_label}:")
    self._ins(f"inc qword {self._slot(index_offset)}")
    self._ins(f"jmp {loop_label}")
    self._emit(f"{end_label}:")

  def _gen_loop_body(self, var: str, var_offset: int, body: BlockStmt, next_label: str, end_label: str) -> None:
    self.scopes.append({var: var_offset})
    self.loops.append((next_label, end_label))
    self._gen_stmt(body)
    self.loops.pop()
    self.scopes.pop()

  # === Expressions ===

  def _gen_expr(self, expr: Expr) -> None:
    """Generate code that pushes the value of `expr`."""
    match expr:
      case IntLiteral(value):
        self._ins(f"mov rax, {value}")
        self._push()

      case StringLiteral(value):
        label = self._string_label(value)
        self._ins(f"lea {self.abi.arg_register}, [rel {label}]")
        self._call("runtime_new_string")
        self._push()

      case VarExpr(name):
        self._push(f"qword {self._slot(self._lookup_var(name))}")

      case RefExpr(VarExpr(name)):
        self._ins(f"lea rax, {self._slot(self._lookup_var(name))}")
        self._push()

      case RefExpr(target):
        # Materialize the value in a fresh slot and take its address
        offset = self._alloc()
        self._gen_expr(target)
        self._pop()
        self._ins(f"mov {self._slot(offset)}, rax")
        self._ins(f"lea rax, {self._slot(offset)}")
        self._push()

      case CallExpr(name, args):
        self._gen_call(expr, name, args)

      case RangeExpr(start, end):
        offset = self._alloc(2)
        self._gen_expr(start)
        self._gen_expr(end)
        self._pop("rcx")
        self._pop()
        self._ins(f"mov {self._slot(offset)}, rax")
        self._ins(f"mov {self._slot(offset, 1)}, rcx")
        self._ins(f"lea rax, {self._slot(offset)}")
        self._push()

      case ArrayLiteral(elements):
        header = self._alloc(len(elements) + 1)
        for i, element in enumerate(elements):
          self._gen_expr(element)
          self._pop()
          self._ins(f"mov {self._slot(header, i + 1)}, rax")
        self._ins(f"mov qword {self._slot(header)}, {len(elements)}")
        self._ins(f"lea rax, {self._slot(header)}")
        self._push()

      case IndexExpr(target, index):
        self._gen_array_base(target)
        self._gen_expr(index)
        self._pop("rcx")
        self._pop()
        self._ins("mov rax, [rax + rcx*8 + 8]")
        self._push()

      case BinaryExpr(left, op, right):
        self._gen_expr(left)
        self._gen_expr(right)
        self._pop("rcx")
        self._pop()
        if op in ARITHMETIC:
          self._ins(ARITHMETIC[op])
        elif op in ("/", "%"):
          self._ins("cqo")
          self._ins("idiv rcx")
          if op == "%":
            self._ins("mov rax, rdx")
        else:
          self._ins("cmp rax, rcx")
          self._ins(f"set{COMPARISONS[op]} al")
          self._ins("movzx rax, al")
        self._push()

  def _gen_array_base(self, expr: Expr) -> None:
    """Push the header address of an array or of the array behind a reference."""
    self._gen_expr(expr)
    if _is_reference(self.types[expr]):
      self._pop()
      self._ins("mov rax, [rax]")
      self._push()

  def _gen_call(self, expr: CallExpr, name: str, args: tuple[Expr, ...]) -> None:
    # Arguments are evaluated right to left so the first ends up on top
    for arg in reversed(args):
      self._gen_expr(arg)
    self._pop(self.abi.arg_register)

    match name:
      case "print" | "println":
        if isinstance(self.types[args[0]], StringType):
          self._call("runtime_print_string")
        else:
          self._call("runtime_print_int")
        # print evaluates to 0
        self._push("0")
      case "clone":
        self._call("runtime_clone_string")
        self._push()
      case _:
        raise ValueError(f"No code generation for function '{name}'")


def generate(func: Function, types: TypeMap, abi: Abi = Abi.SYSV, debug: bool = False) -> str:
  """Convenience function to generate assembly for a type-checked function."""
  return CodeGenerator(types, abi, debug).generate(func)
