import logging
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .alphabet import EPSILON
from .errors import InternalInvariantViolation, ParseError
from .nfa import NFA

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9]*$')
LITERAL_CHARS = set('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.@')
OPERATOR_CHARS = set('()*+|')


class RegexNode(ABC):
    """Base class for regex AST nodes."""

    @abstractmethod
    def to_string(self) -> str:
        """Convert node back to regex text."""
        pass

    @abstractmethod
    def match_ends(self, text: str, start: int) -> Set[int]:
        """
        Returns every position p such that text[start:p] is in the node's language.

        This is a direct interpretation of the expression, independent of the NFA
        construction, so the two can be checked against each other.
        """
        pass

    def children(self) -> List['RegexNode']:
        return []

    def symbols(self) -> Set[str]:
        found: Set[str] = set()
        for child in self.children():
            found |= child.symbols()
        return found

    def references(self) -> List[str]:
        names: List[str] = []
        for child in self.children():
            names.extend(child.references())
        return names


@dataclass(eq=False)
class SymbolNode(RegexNode):
    """A single literal symbol."""
    char: str

    def to_string(self) -> str:
        return self.char

    def match_ends(self, text: str, start: int) -> Set[int]:
        return {start + 1} if text[start:start + 1] == self.char else set()

    def symbols(self) -> Set[str]:
        return {self.char}


@dataclass(eq=False)
class EpsilonNode(RegexNode):
    """The empty string."""

    def to_string(self) -> str:
        return '()'

    def match_ends(self, text: str, start: int) -> Set[int]:
        return {start}


@dataclass(eq=False)
class ReferenceNode(RegexNode):
    """A use of a named binding, before resolution."""
    name: str
    offset: int = 0

    def to_string(self) -> str:
        return self.name

    def match_ends(self, text: str, start: int) -> Set[int]:
        raise InternalInvariantViolation("unresolved reference in regex", name=self.name)

    def references(self) -> List[str]:
        return [self.name]


@dataclass(eq=False)
class UnionNode(RegexNode):
    options: List[RegexNode] = field(default_factory=list)

    def to_string(self) -> str:
        return '|'.join(option.to_string() for option in self.options)

    def match_ends(self, text: str, start: int) -> Set[int]:
        ends: Set[int] = set()
        for option in self.options:
            ends |= option.match_ends(text, start)
        return ends

    def children(self) -> List[RegexNode]:
        return list(self.options)


@dataclass(eq=False)
class ConcatNode(RegexNode):
    parts: List[RegexNode] = field(default_factory=list)

    def to_string(self) -> str:
        return ''.join(_grouped(part, UnionNode) for part in self.parts)

    def match_ends(self, text: str, start: int) -> Set[int]:
        ends = {start}
        for part in self.parts:
            next_ends: Set[int] = set()
            for position in ends:
                next_ends |= part.match_ends(text, position)
            ends = next_ends
            if not ends:
                break
        return ends

    def children(self) -> List[RegexNode]:
        return list(self.parts)


@dataclass(eq=False)
class StarNode(RegexNode):
    """Zero or more repetitions."""
    inner: RegexNode

    def to_string(self) -> str:
        return _grouped(self.inner, (UnionNode, ConcatNode)) + '*'

    def match_ends(self, text: str, start: int) -> Set[int]:
        return _repeat(self.inner, text, {start})

    def children(self) -> List[RegexNode]:
        return [self.inner]


@dataclass(eq=False)
class PlusNode(RegexNode):
    """One or more repetitions."""
    inner: RegexNode

    def to_string(self) -> str:
        return _grouped(self.inner, (UnionNode, ConcatNode)) + '+'

    def match_ends(self, text: str, start: int) -> Set[int]:
        return _repeat(self.inner, text, self.inner.match_ends(text, start))

    def children(self) -> List[RegexNode]:
        return [self.inner]


def _grouped(node: RegexNode, needs_parens) -> str:
    text = node.to_string()
    if isinstance(node, needs_parens) and not (isinstance(node, ConcatNode) and len(node.parts) == 1):
        return f"({text})"
    return text


def _repeat(inner: RegexNode, text: str, seeds: Set[int]) -> Set[int]:
    reached = set(seeds)
    frontier = list(seeds)
    while frontier:
        position = frontier.pop()
        for end in inner.match_ends(text, position):
            if end not in reached:
                reached.add(end)
                frontier.append(end)
    return reached


class PatternParser:
    """
    Recursive descent parser for a single pattern.

    Works on (char, offset) tokens with whitespace already removed, so errors can point
    back into the original document.
    """

    def __init__(self, tokens: List[Tuple[str, int]], names: List[str], locate):
        self.tokens = tokens
        self.pos = 0
        self.names = sorted(names, key=len, reverse=True)
        self.locate = locate

    def peek(self) -> Optional[str]:
        """Look at current character without consuming."""
        return self.tokens[self.pos][0] if self.pos < len(self.tokens) else None

    def consume(self) -> Optional[str]:
        """Consume and return current character."""
        if self.pos < len(self.tokens):
            char = self.tokens[self.pos][0]
            self.pos += 1
            return char
        return None

    def offset(self) -> int:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos][1]
        return self.tokens[-1][1] + 1 if self.tokens else 0

    def error(self, message: str, offset: Optional[int] = None) -> ParseError:
        return self.locate(message, self.offset() if offset is None else offset)

    def parse(self) -> RegexNode:
        node = self.parse_union()
        if self.pos < len(self.tokens):
            raise self.error(f"unexpected '{self.peek()}'")
        return node

    def parse_union(self) -> RegexNode:
        """Parse union (|) - lowest precedence."""
        options = [self.parse_concat()]
        while self.peek() == '|':
            self.consume()
            options.append(self.parse_concat())
        return options[0] if len(options) == 1 else UnionNode(options)

    def parse_concat(self) -> RegexNode:
        """Parse juxtaposition. An empty sequence denotes the empty string."""
        parts: List[RegexNode] = []
        while self.peek() is not None and self.peek() not in ('|', ')'):
            parts.append(self.parse_postfix())
        if not parts:
            return EpsilonNode()
        return parts[0] if len(parts) == 1 else ConcatNode(parts)

    def parse_postfix(self) -> RegexNode:
        """Parse postfix operators (*, +) - highest precedence."""
        node = self.parse_atom()
        while self.peek() in ('*', '+'):
            node = StarNode(node) if self.consume() == '*' else PlusNode(node)
        return node

    def parse_atom(self) -> RegexNode:
        char = self.peek()
        if char == '(':
            opening = self.offset()
            self.consume()
            inner = self.parse_union()
            if self.peek() != ')':
                raise self.error("unbalanced '(': expected ')'", opening)
            self.consume()
            return inner

        if char in ('*', '+'):
            raise self.error(f"'{char}' must follow an expression")

        name = self._reference_at()
        if name is not None:
            offset = self.offset()
            self.pos += len(name)
            return ReferenceNode(name, offset)

        self.consume()
        return SymbolNode(char)

    def _reference_at(self) -> Optional[str]:
        for name in self.names:
            end = self.pos + len(name)
            if end <= len(self.tokens) and ''.join(char for char, _ in self.tokens[self.pos:end]) == name:
                return name
        return None


class NFABuilder:
    """Helper class to build NFAs."""

    def __init__(self):
        self.state_counter = 0
        self.states: List[str] = []
        self.alphabet: Set[str] = set()
        self.transitions = defaultdict(lambda: defaultdict(list))

    def new_state(self) -> str:
        """Generate a new unique state."""
        state = f"q{self.state_counter}"
        self.state_counter += 1
        self.states.append(state)
        return state

    def add_transition(self, from_state: str, symbol: str, to_state: str):
        self.transitions[from_state][symbol].append(to_state)
        if symbol != EPSILON:
            self.alphabet.add(symbol)

    def build(self, node: RegexNode) -> Tuple[str, str]:
        """Thompson construction. Returns the (start, accept) pair of the fragment for node."""
        if isinstance(node, SymbolNode):
            start, accept = self.new_state(), self.new_state()
            self.add_transition(start, node.char, accept)
            return start, accept

        if isinstance(node, EpsilonNode):
            start, accept = self.new_state(), self.new_state()
            self.add_transition(start, EPSILON, accept)
            return start, accept

        if isinstance(node, ConcatNode):
            start, accept = self.build(node.parts[0])
            for part in node.parts[1:]:
                part_start, part_accept = self.build(part)
                self.add_transition(accept, EPSILON, part_start)
                accept = part_accept
            return start, accept

        if isinstance(node, UnionNode):
            start = self.new_state()
            fragments = [self.build(option) for option in node.options]
            accept = self.new_state()
            for option_start, option_accept in fragments:
                self.add_transition(start, EPSILON, option_start)
                self.add_transition(option_accept, EPSILON, accept)
            return start, accept

        if isinstance(node, (StarNode, PlusNode)):
            start = self.new_state()
            inner_start, inner_accept = self.build(node.inner)
            accept = self.new_state()
            self.add_transition(start, EPSILON, inner_start)  # enter
            self.add_transition(inner_accept, EPSILON, accept)  # exit
            self.add_transition(inner_accept, EPSILON, inner_start)  # loop
            if isinstance(node, StarNode):
                self.add_transition(start, EPSILON, accept)  # bypass
            return start, accept

        raise InternalInvariantViolation("cannot compile regex node", node=type(node).__name__)

    def to_nfa(self, start_state: str, accept_state: str) -> NFA:
        return NFA(
            self.states,
            sorted(self.alphabet),
            start_state,
            [accept_state],
            {state: dict(row) for state, row in self.transitions.items()},
        )


@dataclass
class Binding:
    name: str
    node: RegexNode
    offset: int


def _strip_comments(text: str) -> str:
    # Comments become spaces so offsets into the text stay valid.
    lines = []
    for line in text.split('\n'):
        marker = line.find('#')
        if marker != -1:
            line = line[:marker] + ' ' * (len(line) - marker)
        lines.append(line)
    return '\n'.join(lines)


def _line_column(text: str, offset: int) -> Tuple[int, int]:
    line = text.count('\n', 0, offset) + 1
    column = offset - (text.rfind('\n', 0, offset) + 1) + 1
    return line, column


def _tokens(text: str, start: int, end: int) -> List[Tuple[str, int]]:
    return [(text[i], i) for i in range(start, end) if not text[i].isspace()]


def parse_regex_document(source: str) -> 'Regex':
    """
    Parses a regex document: ``NAME = pattern;`` bindings followed by a final pattern.

    Args:
        source (str): The document text.

    Returns:
        Regex: The resolved expression.

    Raises:
        ParseError: On syntax errors, unknown characters, bad binding names,
            circular or forward references.
    """
    text = _strip_comments(source)

    def locate(message: str, offset: int) -> ParseError:
        line, column = _line_column(text, offset)
        excerpt = source.split('\n')[line - 1] if source else ''
        return ParseError(message, line=line, column=column, excerpt=excerpt)

    # Split into statements on ';', keeping offsets.
    statements: List[Tuple[int, int]] = []
    begin = 0
    for index, char in enumerate(text):
        if char == ';':
            statements.append((begin, index))
            begin = index + 1
    statements.append((begin, len(text)))

    *definitions, final = statements
    if definitions and not text[final[0]:final[1]].strip():
        raise locate("must end with a final expression after the last ';'", final[0])

    names: List[str] = []
    raw_bindings: List[Tuple[str, int, int, int]] = []
    for start, end in definitions:
        statement = text[start:end]
        equals = statement.find('=')
        if equals == -1:
            raise locate(f"invalid subexpression definition \"{statement.strip()}\" (missing =)", start)
        name = statement[:equals].strip()
        name_offset = start + len(statement[:equals]) - len(statement[:equals].lstrip())
        if not name:
            raise locate(f"invalid variable name in \"{statement.strip()}\"", start)
        if not NAME_PATTERN.match(name):
            raise locate(
                f"invalid variable name \"{name}\": must start with a letter and contain only "
                f"letters and digits", name_offset)
        if name in names:
            raise locate(f"subexpression '{name}' is defined more than once", name_offset)
        if not statement[equals + 1:].strip():
            raise locate(f"invalid variable value in \"{statement.strip()}\"", start + equals)
        names.append(name)
        raw_bindings.append((name, name_offset, start + equals + 1, end))

    def parse_pattern(start: int, end: int) -> RegexNode:
        tokens = _tokens(text, start, end)
        for char, offset in tokens:
            if char == '=':
                raise locate("unexpected '='; definitions must end with ';'", offset)
            if char not in LITERAL_CHARS and char not in OPERATOR_CHARS:
                raise locate(
                    f"regex contains illegal character '{char}'; must contain only letters, numbers, "
                    f"and these symbols: @ . ( ) * + |", offset)
        return PatternParser(tokens, names, locate).parse()

    bindings = [Binding(name, parse_pattern(value_start, value_end), offset)
                for name, offset, value_start, value_end in raw_bindings]
    final_node = parse_pattern(*final)

    resolved = _resolve(bindings, locate)
    final_resolved = _substitute(final_node, resolved)
    logger.debug("Parsed regex with %d bindings", len(bindings))
    return Regex(final_resolved, source=source, bindings=bindings, final=final_node)


def _resolve(bindings: List[Binding], locate) -> Dict[str, RegexNode]:
    """Resolves bindings in definition order, rejecting cycles and forward references."""
    order = {binding.name: index for index, binding in enumerate(bindings)}
    by_name = {binding.name: binding for binding in bindings}

    # Cycles first, so "A = B; B = A; A" reports the cycle rather than the forward reference.
    # 1 marks a name on the current path, 2 a name whose references are all explored.
    state: Dict[str, int] = {}
    for binding in bindings:
        if binding.name in state:
            continue
        state[binding.name] = 1
        path = [binding.name]
        pending = [iter(binding.node.references())]
        while pending:
            reference = next(pending[-1], None)
            if reference is None:
                pending.pop()
                state[path.pop()] = 2
                continue
            if state.get(reference) == 1:
                cycle = path[path.index(reference):] + [reference]
                raise locate(
                    f"circular subexpression: {' -> '.join(cycle)}", by_name[cycle[0]].offset)
            if reference not in state:
                state[reference] = 1
                path.append(reference)
                pending.append(iter(by_name[reference].node.references()))

    resolved: Dict[str, RegexNode] = {}
    for binding in bindings:
        for reference in binding.node.references():
            if order[reference] > order[binding.name]:
                raise locate(
                    f"subexpression '{reference}' is referenced before it is defined", binding.offset)
        resolved[binding.name] = _substitute(binding.node, resolved)
    return resolved


def _substitute(node: RegexNode, resolved: Dict[str, RegexNode]) -> RegexNode:
    if isinstance(node, ReferenceNode):
        if node.name not in resolved:
            raise InternalInvariantViolation("reference resolved out of order", name=node.name)
        return resolved[node.name]
    if isinstance(node, UnionNode):
        return UnionNode([_substitute(option, resolved) for option in node.options])
    if isinstance(node, ConcatNode):
        return ConcatNode([_substitute(part, resolved) for part in node.parts])
    if isinstance(node, StarNode):
        return StarNode(_substitute(node.inner, resolved))
    if isinstance(node, PlusNode):
        return PlusNode(_substitute(node.inner, resolved))
    return node


def _expand(node: RegexNode, name: str, value: RegexNode) -> RegexNode:
    if isinstance(node, ReferenceNode):
        return value if node.name == name else node
    if isinstance(node, UnionNode):
        return UnionNode([_expand(option, name, value) for option in node.options])
    if isinstance(node, ConcatNode):
        return ConcatNode([_expand(part, name, value) for part in node.parts])
    if isinstance(node, StarNode):
        return StarNode(_expand(node.inner, name, value))
    if isinstance(node, PlusNode):
        return PlusNode(_expand(node.inner, name, value))
    return node


class Regex:
    """
    A resolved regular expression together with its Thompson NFA.

    Instances are normally built with Regex.from_string.
    """

    def __init__(self, node: RegexNode, source: str = '', bindings: Optional[List[Binding]] = None,
                 final: Optional[RegexNode] = None):
        self.node = node
        self.source = source
        self.bindings = bindings or []
        self.final = final if final is not None else node

        builder = NFABuilder()
        start, accept = builder.build(node)
        self.nfa = builder.to_nfa(start, accept)
        self.input_alphabet: Tuple[str, ...] = tuple(sorted(node.symbols()))

    @classmethod
    def from_string(cls, source: str) -> 'Regex':
        return parse_regex_document(source)

    def __repr__(self) -> str:
        return f"Regex({self.to_string()!r})"

    def to_string(self) -> str:
        return self.node.to_string()

    def accepts(self, input_string: str) -> bool:
        """Whole-string match. Symbols the expression never mentions make the input rejected."""
        if any(char not in self.input_alphabet for char in input_string):
            return False
        return self.nfa.accepts(input_string)

    def substitution_steps(self) -> List[Dict[str, str]]:
        """
        Shows how the final expression is expanded, one binding at a time.

        Each step holds the expression so far and the bindings it still refers to.
        """
        if not self.bindings:
            return []
        by_name = {binding.name: binding for binding in self.bindings}

        def remaining(node: RegexNode) -> str:
            used = set(node.references())
            return '; '.join(f"{binding.name} = {binding.node.to_string()}"
                             for binding in self.bindings if binding.name in used)

        expression = self.final
        steps = [{'expression': expression.to_string(), 'subexpressions': remaining(expression)}]
        while expression.references():
            name = max(expression.references(), key=lambda ref: self.bindings.index(by_name[ref]))
            expression = _expand(expression, name, by_name[name].node)
            steps.append({'expression': expression.to_string(), 'subexpressions': remaining(expression)})
        return steps

    def to_dict(self) -> Dict:
        return {
            'type': 'regex',
            'expression': self.to_string(),
            'input_alphabet': list(self.input_alphabet),
            'bindings': [{'name': binding.name, 'pattern': binding.node.to_string()} for binding in self.bindings],
            'nfa': self.nfa.to_dict(),
        }
