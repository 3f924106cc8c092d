import re
import argparse
import logging
import operator
import traceback
from sys import stdin
from collections import OrderedDict
from contextlib import contextmanager
from typing import Union, Optional, Callable, Iterable, Iterator, Sequence

OPEN_PAREN = '('
CLOSE_PAREN = ')'

logger = logging.getLogger('sputter')
parser_logger = logging.getLogger('sputter.parser')
evaluator_logger = logging.getLogger('sputter.evaluator')

class Integer:
  def __init__(self, value: int):
    self.value = value

  def __repr__(self) -> str:
    return f'Integer({self.value})'

  def __str__(self) -> str:
    return self.external()

  def __hash__(self) -> int:
    return hash((Integer, self.value))

  def __eq__(self, o: object) -> bool:
    if not isinstance(o, Integer):
      return False
    return o.value == self.value

  def external(self) -> str:
    return str(self.value)

class Identifier:
  def __init__(self, value: str):
    self.value = value

  def __repr__(self) -> str:
    return f'Identifier({self.value!r})'

  def __str__(self) -> str:
    return self.external()

  def __hash__(self) -> int:
    return hash((Identifier, self.value))

  def __eq__(self, o: object) -> bool:
    if not isinstance(o, Identifier):
      return False
    return o.value == self.value

  def external(self) -> str:
    return self.value

Atom = Union[Integer, Identifier]
Value = Union[Atom, 'Expression']

class Expression:
  def __init__(self, children: Iterable[Value]=()):
    self.children: tuple[Value, ...] = tuple(children)

  def __repr__(self) -> str:
    inner = ', '.join(repr(x) for x in self.children)
    return f'Expression([{inner}])'

  def __str__(self) -> str:
    return self.external()

  def __hash__(self) -> int:
    return hash((Expression, self.children))

  def __eq__(self, o: object) -> bool:
    if not isinstance(o, Expression):
      return False
    return o.children == self.children

  def __iter__(self) -> Iterator[Value]:
    return iter(self.children)

  def __len__(self) -> int:
    return len(self.children)

  def __getitem__(self, i: int) -> Value:
    return self.children[i]

  def external(self) -> str:
    inner = ' '.join(x.external() for x in self.children)
    return f'({inner})'

class ParseError(RuntimeError):
  def __init__(self, message: str, *, position: int):
    super().__init__(message)
    self.message = message
    self.position = position

class ExpectedOpenParenError(ParseError):
  pass

class UnclosedParenError(ParseError):
  def __init__(self, message: str, *, position: int, depth: int):
    super().__init__(message, position=position)
    self.depth = depth

class ExpectedEOFError(ParseError):
  pass

class EvalError(RuntimeError):
  def __init__(self, message: str, *, callstack: Optional[list[Value]]=None):
    super().__init__(message)
    self.message = message
    self.callstack = callstack

class BadArgumentError(EvalError):
  def __init__(self, message: str, *, index: int):
    super().__init__(message)
    self.index = index

class DivisionByZeroError(EvalError):
  def __init__(self, message: str, *, index: int):
    super().__init__(message)
    self.index = index

token_patterns: OrderedDict[str, str] = OrderedDict([
  # \s also matches the U+001C-U+001F separators, which are not Unicode White_Space
  ('whitespace', r'[^\S\x1c-\x1f]+'),
  ('open', re.escape(OPEN_PAREN)),
  ('close', re.escape(CLOSE_PAREN)),
  ('atom', r'(?:[^\s()]|[\x1c-\x1f])+'),
])
token_regex = re.compile('|'.join(f'(?P<{name}>{pattern})' for name, pattern in token_patterns.items()))
pattern_integer = re.compile(r'-?[0-9]+')

Token = tuple[str, str, int]

def tokenize(src: str) -> Iterator[Token]:
  for match in token_regex.finditer(src):
    if match.lastgroup != 'whitespace':
      yield (match.lastgroup, match[0], match.start())

def parse_atom(text: str) -> Atom:
  if pattern_integer.fullmatch(text):
    return Integer(int(text))
  return Identifier(text)

def parse_expression(tokens: Iterator[Token], *, position: int, depth: int) -> Expression:
  children: list[Value] = []
  for name, text, offset in tokens:
    if name == 'open':
      children.append(parse_expression(tokens, position=offset, depth=depth + 1))
    elif name == 'close':
      return Expression(children)
    else:
      children.append(parse_atom(text))
  raise UnclosedParenError(f'"{OPEN_PAREN}" at position {position} is never closed', position=position, depth=depth)

def parse(src: str) -> Value:
  tokens = tokenize(src)
  first = next(tokens, None)
  if first is None:
    return Expression()

  name, text, position = first
  if name != 'open':
    raise ExpectedOpenParenError(f'expected "{OPEN_PAREN}" at position {position}, found "{text}"', position=position)

  result = parse_expression(tokens, position=position, depth=1)

  trailing = next(tokens, None)
  if trailing is not None:
    _, text, position = trailing
    raise ExpectedEOFError(f'expected end of input at position {position}, found "{text}"', position=position)

  if parser_logger.isEnabledFor(logging.DEBUG):
    parser_logger.debug('parsed %r', result)
  return result

def numeric_value(x: Value, index: int) -> int:
  if not isinstance(x, Integer):
    raise BadArgumentError(f'argument {index} must be an Integer, was {x}', index=index)
  return x.value

def truncating_div(a: int, b: int) -> int:
  quotient = abs(a) // abs(b)
  return quotient if (a < 0) == (b < 0) else -quotient

operators: dict[str, Callable[[int, int], int]] = {
  '+': operator.add,
  '-': operator.sub,
  '*': operator.mul,
  '/': truncating_div,
}

def apply_operator(symbol: str, args: Sequence[Value]) -> Integer:
  fn = operators[symbol]
  accumulator = numeric_value(args[0], 0)
  for index, arg in enumerate(args[1:], start=1):
    operand = numeric_value(arg, index)
    try:
      accumulator = fn(accumulator, operand)
    except ZeroDivisionError as e:
      raise DivisionByZeroError(f'argument {index} of {symbol} is zero', index=index) from e
  evaluator_logger.debug('applied %s to %d arguments', symbol, len(args))
  return Integer(accumulator)

@contextmanager
def log_call(callstack: list[Value], value: Value):
  callstack.append(value)
  try:
    yield
  except EvalError as e:
    if e.callstack is None:
      e.callstack = callstack.copy()
    raise
  finally:
    callstack.pop()

def seval(value: Value, callstack: list[Value]) -> Value:
  if not isinstance(value, Expression):
    return value

  with log_call(callstack, value):
    terms = [seval(child, callstack) for child in value]

    if not terms:
      return Expression()
    if len(terms) == 1:
      return terms[0]

    first, *args = terms
    if isinstance(first, Identifier) and first.value in operators:
      return apply_operator(first.value, args)

    return Expression(terms)

def evaluate(value: Value) -> Value:
  return seval(value, [])

def run(src: str) -> Value:
  return evaluate(parse(src))

def stringify_callstack(callstack: list[Value]) -> str:
  base_indent = len(str(len(callstack)))
  return '\n'.join(f'{i: >{base_indent}}. {value.external()}' for i, value in enumerate(callstack))

def report_eval_error(e: EvalError):
  if e.callstack:
    print(stringify_callstack(e.callstack))
  print(f'Error: {e}')

def repl(prompt: str='> '):
  while True:
    print(prompt, end='', flush=True)
    line = stdin.readline()
    if not line or line.strip() == 'quit':
      break
    try:
      try:
        program = parse(line)
      except ParseError as e:
        print(f'Could not parse: {e}')
        continue
      print(f'Parsed: {program}')
      print(f'Evaluated Result: {evaluate(program)}')
    except EvalError as e:
      report_eval_error(e)
    except Exception:
      traceback.print_exc()

def run_lines(lines: Iterable[str]) -> int:
  status = 0
  for line in lines:
    if not line.strip():
      continue
    try:
      print(run(line))
    except ParseError as e:
      print(f'Could not parse: {e}')
      status = 1
    except EvalError as e:
      report_eval_error(e)
      status = 1
    except Exception:
      traceback.print_exc()
      status = 1
  return status

def main(argv: Optional[list[str]]=None) -> int:
  ap = argparse.ArgumentParser(prog='sputter', description='Evaluate parenthesized integer arithmetic, one expression per line.')
  ap.add_argument('--debug', action='store_true', help='Log parse trees and operator applications to stderr')
  ap.add_argument('--prompt', default='> ', help='Prompt shown in interactive mode')
  args = ap.parse_args(argv)

  logging.basicConfig()
  logger.setLevel(logging.DEBUG if args.debug else logging.WARNING)

  if stdin.isatty():
    logger.debug('stdin is a terminal, starting repl')
    repl(args.prompt)
    return 0
  logger.debug('reading expressions from stdin')
  return run_lines(stdin)

if __name__ == '__main__':
  raise SystemExit(main())
