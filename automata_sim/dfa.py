import logging
from collections import deque
from typing import Dict, List, Optional, Set, Tuple

from .alphabet import (
    check_against_input_alphabet,
    delta_key,
    fresh_state_name,
    set_notation,
    validate_alphabet,
    validate_states,
)
from .errors import InternalInvariantViolation

logger = logging.getLogger(__name__)


class DFA:
    """
    A deterministic finite automaton.

    The transition function may be partial: a missing (state, symbol) pair sends the
    computation to an implicit dead state, so the input is rejected.

    Args:
        states (List[str]): State names, in declaration order.
        input_alphabet (List[str]): Single character symbols.
        start_state (str): The initial state.
        accept_states (List[str]): Accepting states, a subset of states.
        delta (Dict[str, Dict[str, str]]): state -> symbol -> next state.
        require_total (bool): Reject a partial transition function at construction.
    """

    def __init__(self, states: List[str], input_alphabet: List[str], start_state: str,
                 accept_states: List[str], delta: Dict[str, Dict[str, str]],
                 require_total: bool = False):
        validate_states(states)
        validate_alphabet(input_alphabet, allow_empty=True)

        state_set = set(states)
        if start_state not in state_set:
            raise ValueError(f"start state '{start_state}' not in states {set_notation(states)}")
        for state in accept_states:
            if state not in state_set:
                raise ValueError(f"accept state '{state}' not in states {set_notation(states)}")

        symbols = set(input_alphabet)
        table: Dict[Tuple[str, str], str] = {}
        for state, row in delta.items():
            if state not in state_set:
                raise ValueError(f"transition from unknown state '{state}'")
            for symbol, target in row.items():
                if symbol not in symbols:
                    raise ValueError(
                        f"transition on '{symbol}' from '{state}': symbol not in input alphabet "
                        f"{set_notation(input_alphabet)}")
                if not isinstance(target, str):
                    raise ValueError(
                        f"transition on '{symbol}' from '{state}' must have exactly one target state")
                if target not in state_set:
                    raise ValueError(f"transition on '{symbol}' from '{state}' to unknown state '{target}'")
                table[delta_key(state, symbol)] = target

        self.states: Tuple[str, ...] = tuple(states)
        self.input_alphabet: Tuple[str, ...] = tuple(input_alphabet)
        self.start_state = start_state
        self.accept_states: frozenset = frozenset(accept_states)
        self._delta = table

        if require_total and not self.is_total():
            missing = [f"({state},{symbol})" for state in self.states for symbol in self.input_alphabet
                       if not self.transition_defined(state, symbol)]
            raise ValueError(f"transition function is not total, missing {set_notation(missing)}")

    def __repr__(self) -> str:
        return f"DFA(states={list(self.states)!r}, start_state={self.start_state!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, DFA):
            return NotImplemented
        return (self.states == other.states and
                set(self.input_alphabet) == set(other.input_alphabet) and
                self.start_state == other.start_state and
                self.accept_states == other.accept_states and
                self._delta == other._delta)

    def __hash__(self):
        return hash((self.states, self.start_state, self.accept_states))

    def next_state(self, state: str, symbol: str) -> Optional[str]:
        return self._delta.get(delta_key(state, symbol))

    def transition_defined(self, state: str, symbol: str) -> bool:
        return delta_key(state, symbol) in self._delta

    def transition_str(self, state: str, symbol: str) -> str:
        target = self.next_state(state, symbol)
        return f"{symbol} → {target if target is not None else '∅'}"

    def is_total(self) -> bool:
        return all(self.transition_defined(state, symbol)
                   for state in self.states for symbol in self.input_alphabet)

    def states_visited(self, input_string: str) -> List[Optional[str]]:
        """
        Returns the run of the DFA on input_string.

        The list has one entry per prefix of the input, the first being the start state.
        After an undefined transition every remaining entry is None.

        Raises:
            DomainError: If input_string uses a symbol outside the input alphabet.
        """
        check_against_input_alphabet(self.input_alphabet, input_string)

        current: Optional[str] = self.start_state
        visited: List[Optional[str]] = [current]
        for symbol in input_string:
            if current is not None:
                current = self.next_state(current, symbol)
            visited.append(current)
        return visited

    def accepts(self, input_string: str) -> bool:
        return self.states_visited(input_string)[-1] in self.accept_states

    def reachable_states(self) -> List[str]:
        """States reachable from the start state, in declaration order."""
        reachable = {self.start_state}
        queue = deque([self.start_state])
        while queue:
            current = queue.popleft()
            for symbol in self.input_alphabet:
                target = self.next_state(current, symbol)
                if target is not None and target not in reachable:
                    reachable.add(target)
                    queue.append(target)
        return [state for state in self.states if state in reachable]

    def minimize(self) -> 'DFA':
        """
        Returns the minimal total DFA recognising the same language.

        Unreachable states are dropped, a dead state is added if the reachable part is
        partial, and the remaining states are merged by Moore partition refinement.
        A merged state is named after its members in set notation, a class with a single
        member keeps that member's name, so minimising a minimal DFA returns it unchanged.

        Returns:
            DFA: The minimised automaton.
        """
        states = self.reachable_states()
        alphabet = list(self.input_alphabet)
        transitions: Dict[str, Dict[str, str]] = {
            state: {symbol: self.next_state(state, symbol) for symbol in alphabet
                    if self.transition_defined(state, symbol)}
            for state in states
        }

        if any(len(transitions[state]) < len(alphabet) for state in states):
            dead_state = fresh_state_name(self.states, 'DEAD')
            for state in states:
                for symbol in alphabet:
                    transitions[state].setdefault(symbol, dead_state)
            transitions[dead_state] = {symbol: dead_state for symbol in alphabet}
            states.append(dead_state)

        block = {state: 0 if state in self.accept_states else 1 for state in states}
        block_count = len(set(block.values()))
        rounds = 0
        while True:
            rounds += 1
            if rounds > len(states) + 1:
                raise InternalInvariantViolation(
                    "partition refinement did not converge", states=len(states), rounds=rounds)

            signatures: Dict[Tuple, int] = {}
            refined: Dict[str, int] = {}
            for state in states:
                signature = (block[state],) + tuple(block[transitions[state][symbol]] for symbol in alphabet)
                refined[state] = signatures.setdefault(signature, len(signatures))

            block = refined
            if len(signatures) == block_count:
                break
            block_count = len(signatures)

        members: Dict[int, List[str]] = {}
        for state in states:
            members.setdefault(block[state], []).append(state)

        # Singletons keep their state's name; a merged class gets its members in set
        # notation, suffixed if a state of that name already exists.
        names: Dict[int, str] = {index: group[0] for index, group in members.items() if len(group) == 1}
        taken = set(names.values())
        for index, group in members.items():
            if len(group) > 1:
                names[index] = fresh_state_name(taken, set_notation(sorted(group)))
                taken.add(names[index])

        new_states = [names[index] for index in members]
        new_delta: Dict[str, Dict[str, str]] = {}
        for index, group in members.items():
            representative = group[0]
            new_delta[names[index]] = {
                symbol: names[block[transitions[representative][symbol]]] for symbol in alphabet
            }

        accepting = [names[index] for index, group in members.items()
                     if group[0] in self.accept_states]

        logger.debug("Minimised DFA from %d to %d states in %d rounds", len(self.states), len(new_states), rounds)
        return DFA(new_states, alphabet, names[block[self.start_state]], accepting, new_delta)

    def to_dict(self) -> Dict:
        delta: Dict[str, Dict[str, str]] = {}
        for (state, symbol), target in self._delta.items():
            delta.setdefault(state, {})[symbol] = target
        return {
            'type': 'dfa',
            'states': list(self.states),
            'input_alphabet': list(self.input_alphabet),
            'start_state': self.start_state,
            'accept_states': [state for state in self.states if state in self.accept_states],
            'delta': delta,
        }
