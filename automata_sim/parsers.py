"""
Parsers for the textual automaton formats.

DFA, NFA, TM and CFG descriptions are YAML documents. They are read with PyYAML's
composer rather than its constructor: nodes keep their source marks, so every error
can point at the offending line and column, and no scalar is ever converted to a
bool or a number (``0``, ``1``, ``y`` and ``n`` are symbols here).
"""
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from .alphabet import BLANK, EPSILON, EPSILON_LEAF, RESERVED_SYMBOLS, WILDCARD, set_notation
from .cfg import CFG, Rule
from .dfa import DFA
from .errors import ParseError
from .nfa import NFA
from .regex import Regex
from .turing import MOVES, TM

logger = logging.getLogger(__name__)

Automaton = Union[DFA, NFA, Regex, CFG, TM]


class _StringLoader(yaml.SafeLoader):
    """SafeLoader that resolves every plain scalar as a string."""


_StringLoader.yaml_implicit_resolvers = {}


class _Document:
    """A composed YAML document plus the source needed to report errors."""

    def __init__(self, text: str):
        self.text = text
        self.lines = text.split('\n')
        try:
            self.root: Optional[Node] = yaml.compose(text, Loader=_StringLoader)
        except yaml.MarkedYAMLError as e:
            mark = e.problem_mark or e.context_mark
            message = e.problem or e.context or 'invalid YAML'
            if mark is None:
                raise ParseError(message) from e
            raise self.error_at(message, mark.line + 1, mark.column + 1) from e
        except yaml.YAMLError as e:
            raise ParseError(f"invalid YAML: {e}") from e

    def excerpt(self, line: int, column: int) -> str:
        rows = []
        for number in range(max(1, line - 2), min(line, len(self.lines)) + 1):
            marker = '>' if number == line else ' '
            rows.append(f"{marker} {number:>3} | {self.lines[number - 1]}")
        rows.append(' ' * (8 + column - 1) + '^')
        return '\n'.join(rows)

    def error_at(self, message: str, line: int, column: int, path: Optional[str] = None) -> ParseError:
        return ParseError(message, path=path, line=line, column=column, excerpt=self.excerpt(line, column))

    def error(self, message: str, node: Optional[Node], path: Optional[str] = None) -> ParseError:
        if node is None:
            return ParseError(message, path=path)
        mark = node.start_mark
        return self.error_at(message, mark.line + 1, mark.column + 1, path)

    def mapping(self, node: Optional[Node], path: str,
                allow_duplicates: bool = False) -> List[Tuple[str, Node, Node]]:
        if not isinstance(node, MappingNode):
            raise self.error("expected a mapping", node, path)
        entries = []
        seen: Set[str] = set()
        for key_node, value_node in node.value:
            key = self.scalar(key_node, path)
            if key in seen and not allow_duplicates:
                raise self.error(f"duplicate key '{key}'", key_node, _join(path, key))
            seen.add(key)
            entries.append((key, key_node, value_node))
        return entries

    def scalar(self, node: Node, path: str) -> str:
        if not isinstance(node, ScalarNode):
            raise self.error("expected a single value", node, path)
        return node.value

    def scalar_list(self, node: Node, path: str) -> List[Tuple[str, Node]]:
        if not isinstance(node, SequenceNode):
            raise self.error("expected a list", node, path)
        return [(self.scalar(item, f"{path}[{index}]"), item) for index, item in enumerate(node.value)]


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _top_level(doc: _Document, required: Tuple[str, ...], optional: Tuple[str, ...]) -> Dict[str, Tuple[Node, Node]]:
    if doc.root is None:
        raise ParseError("document is empty")
    fields: Dict[str, Tuple[Node, Node]] = {}
    for key, key_node, value_node in doc.mapping(doc.root, ''):
        if key not in required and key not in optional:
            raise doc.error(
                f"unknown key '{key}', expected one of {set_notation(required + optional)}", key_node, key)
        fields[key] = (key_node, value_node)
    for key in required:
        if key not in fields:
            raise doc.error(f"missing required key '{key}'", doc.root)
    return fields


def _states(doc: _Document, node: Node, path: str = 'states') -> List[str]:
    states: List[str] = []
    for name, item in doc.scalar_list(node, path):
        if not name:
            raise doc.error("state names may not be empty", item, path)
        if name in states:
            raise doc.error(f"duplicate state '{name}'", item, path)
        states.append(name)
    if not states:
        raise doc.error("at least one state is required", node, path)
    return states


def _alphabet(doc: _Document, node: Node, path: str, forbidden: Set[str] = frozenset(),
              allow_empty: bool = False) -> List[str]:
    symbols: List[str] = []
    for symbol, item in doc.scalar_list(node, path):
        if len(symbol) != 1:
            raise doc.error(f"symbol '{symbol}' must be a single character", item, path)
        if symbol in RESERVED_SYMBOLS or symbol in forbidden:
            raise doc.error(f"'{symbol}' is reserved and cannot be used as a symbol", item, path)
        if symbol in symbols:
            raise doc.error(f"duplicate symbol '{symbol}'", item, path)
        symbols.append(symbol)
    if not symbols and not allow_empty:
        raise doc.error("at least one symbol is required", node, path)
    return symbols


def _state_ref(doc: _Document, node: Node, path: str, states: List[str]) -> str:
    name = doc.scalar(node, path)
    if name not in states:
        raise doc.error(f"unknown state '{name}', expected one of {set_notation(states)}", node, path)
    return name


def _build(factory: Callable, *args):
    try:
        return factory(*args)
    except ParseError:
        raise
    except ValueError as e:
        raise ParseError(str(e)) from e


def _finite_automaton(text: str, deterministic: bool) -> Union[DFA, NFA]:
    doc = _Document(text)
    fields = _top_level(doc, ('states', 'input_alphabet', 'start_state', 'delta'),
                        ('accept_states', 'accept_state'))
    states = _states(doc, fields['states'][1])
    alphabet = _alphabet(doc, fields['input_alphabet'][1], 'input_alphabet')
    start_state = _state_ref(doc, fields['start_state'][1], 'start_state', states)

    accept_states: List[str] = []
    for key in ('accept_states', 'accept_state'):
        if key in fields:
            value = fields[key][1]
            if isinstance(value, ScalarNode):
                items = [value] if value.value else []
            else:
                items = [item for _, item in doc.scalar_list(value, key)]
            accept_states.extend(_state_ref(doc, item, key, states) for item in items)

    delta: Dict[str, Dict] = {}
    for state, state_node, row_node in doc.mapping(fields['delta'][1], 'delta'):
        row_path = _join('delta', state)
        if state not in states:
            raise doc.error(f"unknown state '{state}', expected one of {set_notation(states)}", state_node, row_path)
        row: Dict[str, Union[str, List[str]]] = {}
        if isinstance(row_node, ScalarNode) and row_node.value == '':
            delta[state] = row
            continue
        for symbol, symbol_node, target_node in doc.mapping(row_node, row_path):
            path = _join(row_path, symbol or "''")
            if symbol == EPSILON and deterministic:
                raise doc.error("a DFA may not have epsilon transitions", symbol_node, path)
            if symbol != EPSILON and symbol not in alphabet:
                raise doc.error(
                    f"symbol '{symbol}' not in input alphabet {set_notation(alphabet)}", symbol_node, path)
            if deterministic:
                if not isinstance(target_node, ScalarNode):
                    raise doc.error("a DFA transition must have exactly one target state", target_node, path)
                row[symbol] = _state_ref(doc, target_node, path, states)
            elif isinstance(target_node, ScalarNode):
                row[symbol] = [_state_ref(doc, target_node, path, states)]
            else:
                row[symbol] = [_state_ref(doc, item, path, states) for _, item in doc.scalar_list(target_node, path)]
        delta[state] = row

    if deterministic:
        return _build(DFA, states, alphabet, start_state, accept_states, delta)
    return _build(NFA, states, alphabet, start_state, accept_states, delta)


def parse_dfa(text: str) -> DFA:
    """
    Parses a DFA description.

    Example::

        states: [q0, q1]
        input_alphabet: [0, 1]
        start_state: q0
        accept_states: [q1]
        delta:
          q0: {0: q0, 1: q1}
          q1: {0: q0, 1: q1}

    Raises:
        ParseError: If the description is malformed or inconsistent.
    """
    dfa = _finite_automaton(text, deterministic=True)
    logger.debug("Parsed DFA with %d states", len(dfa.states))
    return dfa


def parse_nfa(text: str) -> NFA:
    """
    Parses an NFA description. Targets may be a single state or a list of states,
    and the key ``''`` holds epsilon transitions.
    """
    nfa = _finite_automaton(text, deterministic=False)
    logger.debug("Parsed NFA with %d states", len(nfa.states))
    return nfa


def parse_tm(text: str) -> TM:
    """
    Parses a Turing machine description.

    ``tape_alphabet_extra`` lists the tape symbols beyond the input alphabet; the blank
    ``_`` is always part of the tape alphabet. Each transition is ``[next, write, move]``
    with move one of L, R or S.
    """
    doc = _Document(text)
    fields = _top_level(doc, ('states', 'input_alphabet', 'start_state', 'accept_state', 'reject_state', 'delta'),
                        ('tape_alphabet_extra',))
    states = _states(doc, fields['states'][1])
    input_alphabet = _alphabet(doc, fields['input_alphabet'][1], 'input_alphabet', forbidden={BLANK})
    extra: List[str] = []
    if 'tape_alphabet_extra' in fields:
        node = fields['tape_alphabet_extra'][1]
        extra = _alphabet(doc, node, 'tape_alphabet_extra', forbidden={BLANK}, allow_empty=True)
        overlap = [symbol for symbol in extra if symbol in input_alphabet]
        if overlap:
            raise doc.error(
                f"input_alphabet and tape_alphabet_extra cannot overlap, both contain {set_notation(overlap)}",
                node, 'tape_alphabet_extra')
    tape_alphabet = input_alphabet + extra + [BLANK]

    start_state = _state_ref(doc, fields['start_state'][1], 'start_state', states)
    accept_state = _state_ref(doc, fields['accept_state'][1], 'accept_state', states)
    reject_state = _state_ref(doc, fields['reject_state'][1], 'reject_state', states)
    if accept_state == reject_state:
        raise doc.error("accept_state and reject_state must be different", fields['reject_state'][1], 'reject_state')

    readable = tape_alphabet + [WILDCARD]
    delta: Dict[str, Dict[str, Tuple[str, str, str]]] = {}
    for state, state_node, row_node in doc.mapping(fields['delta'][1], 'delta'):
        row_path = _join('delta', state)
        if state not in states:
            raise doc.error(f"unknown state '{state}', expected one of {set_notation(states)}", state_node, row_path)
        if state in (accept_state, reject_state):
            raise doc.error(f"halting state '{state}' may not have transitions", state_node, row_path)
        row: Dict[str, Tuple[str, str, str]] = {}
        for symbol, symbol_node, action_node in doc.mapping(row_node, row_path):
            path = _join(row_path, symbol)
            if symbol not in readable:
                raise doc.error(
                    f"symbol '{symbol}' not in tape alphabet {set_notation(tape_alphabet)}", symbol_node, path)
            action = doc.scalar_list(action_node, path)
            if len(action) != 3:
                raise doc.error("a transition must be [next_state, write_symbol, move]", action_node, path)
            (_, next_node), (write, write_node), (move, move_node) = action
            next_state = _state_ref(doc, next_node, path, states)
            if write not in readable:
                raise doc.error(
                    f"written symbol '{write}' not in tape alphabet {set_notation(tape_alphabet)}", write_node, path)
            if move not in MOVES:
                raise doc.error(f"move '{move}' must be one of L, R, S", move_node, path)
            row[symbol] = (next_state, write, move)
        delta[state] = row

    tm = _build(TM, states, input_alphabet, tape_alphabet, start_state, accept_state, reject_state, delta)
    logger.debug("Parsed TM with %d states and %d transitions", len(states), tm.transition_count())
    return tm


def parse_cfg(text: str) -> CFG:
    """
    Parses a grammar written as ``variable: [alternatives]``.

    The first variable is the start symbol. Every character of an alternative that is
    not a variable is a terminal, and the empty alternative ``''`` is an epsilon
    production. A variable listed twice has its alternatives merged.
    """
    doc = _Document(text)
    if doc.root is None:
        raise ParseError("document is empty")

    entries = doc.mapping(doc.root, '', allow_duplicates=True)
    variables: List[str] = []
    for variable, key_node, _ in entries:
        if len(variable) != 1:
            raise doc.error(f"variable '{variable}' must be a single character", key_node, variable)
        if variable in RESERVED_SYMBOLS:
            raise doc.error(f"'{variable}' is reserved and cannot be used as a variable", key_node, variable)
        if variable not in variables:
            variables.append(variable)
    if not variables:
        raise doc.error("at least one variable is required", doc.root)

    rules: List[Rule] = []
    terminals: List[str] = []
    for variable, _, value_node in entries:
        if isinstance(value_node, ScalarNode):
            alternatives = [(value_node.value, value_node)]
        else:
            alternatives = doc.scalar_list(value_node, variable)
        for output, item in alternatives:
            if output == EPSILON_LEAF:
                output = ''
            for symbol in output:
                if symbol in RESERVED_SYMBOLS:
                    raise doc.error(f"'{symbol}' is reserved and cannot appear in a production", item, variable)
                if symbol not in variables and symbol not in terminals:
                    terminals.append(symbol)
            rule = Rule(variable, output)
            if rule not in rules:
                rules.append(rule)

    cfg = _build(CFG, terminals, variables, rules, variables[0])
    logger.debug("Parsed CFG with %d variables and %d rules", len(variables), len(rules))
    return cfg


def parse_regex(text: str) -> Regex:
    return Regex.from_string(text)


PARSERS: Dict[str, Callable[[str], Automaton]] = {
    'dfa': parse_dfa,
    'nfa': parse_nfa,
    'regex': parse_regex,
    'cfg': parse_cfg,
    'tm': parse_tm,
}


def parse(kind: str, text: str) -> Automaton:
    """
    Parses text as an automaton of the given kind.

    Args:
        kind (str): One of 'dfa', 'nfa', 'regex', 'cfg', 'tm'.
        text (str): The description.

    Raises:
        ValueError: If kind is unknown.
        ParseError: If text does not describe a valid automaton.
    """
    try:
        parser = PARSERS[kind]
    except KeyError:
        raise ValueError(f"unknown automaton kind '{kind}', expected one of {set_notation(PARSERS)}") from None
    return parser(text)
