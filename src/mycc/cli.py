"""Command-line interface for the mycc compiler."""

import sys
import logging
import argparse
from pathlib import Path

from .codegen import Abi
from .printer import dump_function
from .compiler import Compiler, CompilerOptions, asm_output_path

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _link_hints(abi: Abi, asm_path: Path, output_base: Path) -> list[str]:
  if abi is Abi.WIN64:
    return [
      f">> nasm -f win64 {asm_path} -o {output_base}.obj",
      f">> gcc {output_base}.obj runtime.o -o {output_base}.exe",
    ]
  return [
    f">> nasm -f elf64 {asm_path} -o {output_base}.o",
    f">> gcc {output_base}.o runtime.o -o {output_base}",
  ]


def main(argv: list[str] | None = None) -> int:
  """Main entry point for the mycc compiler."""
  parser = argparse.ArgumentParser(
    prog="mycc",
    description="mycc - compiles MyLang source to x86_64 NASM assembly",
  )
  parser.add_argument("source", type=Path, help="Source file to compile (.my)")
  parser.add_argument("-o", "--output", type=Path, required=True, help="Output base name; writes <output>.asm")
  parser.add_argument(
    "--debug-borrow",
    action="store_true",
    help="Trace borrow checker decisions and annotate declarations in the assembly",
  )
  parser.add_argument(
    "--abi",
    choices=[abi.value for abi in Abi],
    default=Abi.host().value,
    help="Calling convention of the target (default: host)",
  )
  parser.add_argument("--dump-ast", action="store_true", help="Print the parsed syntax tree")
  parser.add_argument("-v", "--verbose", action="store_true", help="Log every compiler pass")

  args = parser.parse_args(argv)

  logging.basicConfig(
    level=logging.DEBUG if args.verbose else logging.WARNING,
    format=LOG_FORMAT,
    stream=sys.stderr,
  )
  if args.debug_borrow:
    logging.getLogger("mycc.borrow").setLevel(logging.DEBUG)

  # Validate source file
  if not args.source.is_file():
    print(f"Error: Source file '{args.source}' not found", file=sys.stderr)
    return 1

  options = CompilerOptions(abi=Abi(args.abi), debug_borrow=args.debug_borrow)
  result = Compiler(options).compile_file(args.source, args.output)

  if args.dump_ast and result.function is not None:
    print(dump_function(result.function), end="")

  if not result.success:
    print(result.diagnostic, file=sys.stderr)
    return 1

  asm_path = asm_output_path(args.output)
  print(f"Successfully generated assembly: {asm_path}")
  print("To link and run:")
  for hint in _link_hints(options.abi, asm_path, args.output):
    print(hint)
  return 0


if __name__ == "__main__":
  sys.exit(main())
