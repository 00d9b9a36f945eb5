import logging
from collections import deque
from typing import Dict, FrozenSet, Iterable, List, Set, Tuple, Union

from .alphabet import (
    EPSILON,
    check_against_input_alphabet,
    delta_key,
    set_notation,
    validate_alphabet,
    validate_states,
)
from .errors import InternalInvariantViolation

logger = logging.getLogger(__name__)


class NFA:
    """
    A nondeterministic finite automaton with epsilon moves.

    Args:
        states (List[str]): State names, in declaration order.
        input_alphabet (List[str]): Single character symbols. May be empty.
        start_state (str): The initial state.
        accept_states (List[str]): Accepting states.
        delta (Dict[str, Dict[str, Union[str, List[str]]]]): state -> symbol -> target(s).
            The empty string key holds epsilon moves.
    """

    def __init__(self, states: List[str], input_alphabet: List[str], start_state: str,
                 accept_states: List[str], delta: Dict[str, Dict[str, Union[str, List[str]]]]):
        validate_states(states)
        validate_alphabet(input_alphabet, allow_empty=True)

        state_set = set(states)
        if start_state not in state_set:
            raise ValueError(f"start state '{start_state}' not in states {set_notation(states)}")
        for state in accept_states:
            if state not in state_set:
                raise ValueError(f"accept state '{state}' not in states {set_notation(states)}")

        symbols = set(input_alphabet)
        table: Dict[Tuple[str, str], FrozenSet[str]] = {}
        for state, row in delta.items():
            if state not in state_set:
                raise ValueError(f"transition from unknown state '{state}'")
            for symbol, targets in row.items():
                if symbol != EPSILON and symbol not in symbols:
                    raise ValueError(
                        f"transition on '{symbol}' from '{state}': symbol not in input alphabet "
                        f"{set_notation(input_alphabet)}")
                if isinstance(targets, str):
                    targets = [targets]
                for target in targets:
                    if target not in state_set:
                        raise ValueError(f"transition on '{symbol}' from '{state}' to unknown state '{target}'")
                if targets:
                    table[delta_key(state, symbol)] = frozenset(targets)

        self.states: Tuple[str, ...] = tuple(states)
        self.input_alphabet: Tuple[str, ...] = tuple(input_alphabet)
        self.start_state = start_state
        self.accept_states: FrozenSet[str] = frozenset(accept_states)
        self._delta = table

    def __repr__(self) -> str:
        return f"NFA(states={list(self.states)!r}, start_state={self.start_state!r})"

    def targets(self, state: str, symbol: str) -> FrozenSet[str]:
        return self._delta.get(delta_key(state, symbol), frozenset())

    def transition_defined(self, state: str, symbol: str) -> bool:
        return delta_key(state, symbol) in self._delta

    def transition_str(self, state: str, symbol: str) -> str:
        label = symbol if symbol != EPSILON else 'ε'
        return f"{label} → {set_notation(self.ordered(self.targets(state, symbol)))}"

    def ordered(self, states: Iterable[str]) -> List[str]:
        members = set(states)
        return [state for state in self.states if state in members]

    def epsilon_closure(self, states: Iterable[str]) -> FrozenSet[str]:
        """
        Returns all states reachable from states using only epsilon moves.

        Epsilon cycles are handled by the visited set: every state is expanded at most once.
        """
        closure: Set[str] = set(states)
        queue = deque(closure)
        expansions = 0
        while queue:
            current = queue.popleft()
            expansions += 1
            if expansions > len(self.states):
                raise InternalInvariantViolation(
                    "epsilon closure expanded more states than the automaton has", state=current)
            for target in self.targets(current, EPSILON):
                if target not in closure:
                    closure.add(target)
                    queue.append(target)
        return frozenset(closure)

    def step(self, current: Iterable[str], symbol: str) -> FrozenSet[str]:
        """Consumes one symbol from the given set of states and closes under epsilon."""
        moved: Set[str] = set()
        for state in current:
            moved |= self.targets(state, symbol)
        return self.epsilon_closure(moved)

    def state_sets_visited(self, input_string: str) -> List[FrozenSet[str]]:
        """
        Returns the sets of active states after each prefix of input_string.

        Raises:
            DomainError: If input_string uses a symbol outside the input alphabet.
        """
        check_against_input_alphabet(self.input_alphabet, input_string)

        current = self.epsilon_closure([self.start_state])
        visited = [current]
        for symbol in input_string:
            current = self.step(current, symbol)
            visited.append(current)
        return visited

    def accepts(self, input_string: str) -> bool:
        return not self.state_sets_visited(input_string)[-1].isdisjoint(self.accept_states)

    def transition_count(self) -> int:
        return sum(len(targets) for targets in self._delta.values())

    def to_dict(self) -> Dict:
        delta: Dict[str, Dict[str, List[str]]] = {}
        for (state, symbol), targets in self._delta.items():
            delta.setdefault(state, {})[symbol] = self.ordered(targets)
        return {
            'type': 'nfa',
            'states': list(self.states),
            'input_alphabet': list(self.input_alphabet),
            'start_state': self.start_state,
            'accept_states': self.ordered(self.accept_states),
            'delta': delta,
        }
