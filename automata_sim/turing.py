import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .alphabet import (
    BLANK,
    WILDCARD,
    check_against_input_alphabet,
    delta_key,
    set_notation,
    validate_alphabet,
    validate_states,
)
from .errors import InternalInvariantViolation

logger = logging.getLogger(__name__)

# Upper bound on the number of steps a single run may take
MAX_STEPS = 10 ** 6

MOVES = {'L': -1, 'R': 1, 'S': 0}


class TMOutcome(Enum):
    RUNNING = 'running'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    STEP_LIMIT_EXCEEDED = 'step_limit_exceeded'


@dataclass(frozen=True)
class ConfigDiff:
    """
    The change made by one step: state, the symbol under the head and the head position,
    each before and after the step. Enough to replay the step or undo it.
    """
    old_state: str
    new_state: str
    old_symbol: str
    new_symbol: str
    old_head: int
    new_head: int

    def to_dict(self) -> Dict:
        return {
            'old_state': self.old_state,
            'new_state': self.new_state,
            'old_symbol': self.old_symbol,
            'new_symbol': self.new_symbol,
            'old_head': self.old_head,
            'new_head': self.new_head,
        }

    def __str__(self) -> str:
        move = self.new_head - self.old_head
        direction = 'L' if move < 0 else 'R' if move > 0 else 'S'
        return f"{self.old_state},{self.old_symbol} → {self.new_state},{self.new_symbol},{direction}"


class TMConfiguration:
    """
    State, tape and head position of a single tape Turing machine.

    The tape is two-way infinite. Only non-blank cells are stored, so two configurations
    are equal exactly when they describe the same tape.
    """

    def __init__(self, state: str, tape: Optional[Dict[int, str]] = None, head: int = 0):
        self.state = state
        self.head = head
        self.tape: Dict[int, str] = {position: symbol for position, symbol in (tape or {}).items()
                                     if symbol != BLANK}

    @classmethod
    def from_input(cls, state: str, input_string: str) -> 'TMConfiguration':
        return cls(state, dict(enumerate(input_string)), 0)

    def copy(self) -> 'TMConfiguration':
        return TMConfiguration(self.state, dict(self.tape), self.head)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TMConfiguration):
            return NotImplemented
        return self.state == other.state and self.head == other.head and self.tape == other.tape

    def __repr__(self) -> str:
        return f"TMConfiguration(state={self.state!r}, head={self.head}, tape={self.tape_string()!r})"

    def symbol_at(self, position: int) -> str:
        return self.tape.get(position, BLANK)

    def scanned_symbol(self) -> str:
        return self.symbol_at(self.head)

    def _write(self, position: int, symbol: str):
        if symbol == BLANK:
            self.tape.pop(position, None)
        else:
            self.tape[position] = symbol

    def bounds(self) -> Tuple[int, int]:
        """Leftmost and rightmost cell worth showing: every non-blank cell and the head."""
        positions = list(self.tape) + [self.head]
        return min(positions), max(positions)

    def tape_string(self) -> str:
        low, high = self.bounds()
        return ''.join(self.symbol_at(position) for position in range(low, high + 1))

    def output_string(self) -> str:
        """The tape contents with leading and trailing blanks trimmed. The head position is ignored."""
        if not self.tape:
            return ''
        return ''.join(self.symbol_at(position) for position in range(min(self.tape), max(self.tape) + 1))

    def apply_diff(self, diff: ConfigDiff):
        """Replays one step in place. The diff must start from this configuration."""
        if (self.state != diff.old_state or self.head != diff.old_head or
                self.scanned_symbol() != diff.old_symbol):
            raise InternalInvariantViolation(
                "diff does not apply to this configuration",
                state=self.state, head=self.head, symbol=self.scanned_symbol(), diff=str(diff))
        self._write(diff.old_head, diff.new_symbol)
        self.head = diff.new_head
        self.state = diff.new_state

    def apply_reverse_diff(self, diff: ConfigDiff):
        """Undoes one step in place. The diff must end at this configuration."""
        if (self.state != diff.new_state or self.head != diff.new_head or
                self.symbol_at(diff.old_head) != diff.new_symbol):
            raise InternalInvariantViolation(
                "diff cannot be reversed from this configuration",
                state=self.state, head=self.head, diff=str(diff))
        self._write(diff.old_head, diff.old_symbol)
        self.head = diff.old_head
        self.state = diff.old_state

    def to_dict(self) -> Dict:
        low, _ = self.bounds()
        return {
            'state': self.state,
            'head': self.head,
            'tape_start': low,
            'tape': self.tape_string(),
        }


@dataclass
class TMExecutionLog:
    """
    A complete run: the initial and final configurations and the diff of every step.

    Any intermediate configuration is recovered by replaying diffs forward from the
    initial configuration or backward from the final one.
    """
    input_string: str
    initial_config: TMConfiguration
    final_config: TMConfiguration
    diffs: List[ConfigDiff] = field(default_factory=list)
    outcome: TMOutcome = TMOutcome.RUNNING

    @property
    def steps(self) -> int:
        return len(self.diffs)

    def states_visited(self) -> List[str]:
        return [self.initial_config.state] + [diff.new_state for diff in self.diffs]

    def to_dict(self) -> Dict:
        return {
            'input': self.input_string,
            'outcome': self.outcome.value,
            'steps': self.steps,
            'initial_config': self.initial_config.to_dict(),
            'final_config': self.final_config.to_dict(),
            'diffs': [diff.to_dict() for diff in self.diffs],
        }


class TMNavigator:
    """
    A cursor over an execution log.

    Moving by one step applies or reverses a single diff. Jumping to the first or last
    configuration copies the cached snapshot, and seek walks from whichever of the
    cursor, the start or the end is closest.
    """

    def __init__(self, log: TMExecutionLog):
        self.log = log
        self.position = 0
        self.config = log.initial_config.copy()

    @property
    def at_start(self) -> bool:
        return self.position == 0

    @property
    def at_end(self) -> bool:
        return self.position == self.log.steps

    def forward(self) -> bool:
        if self.at_end:
            return False
        self.config.apply_diff(self.log.diffs[self.position])
        self.position += 1
        return True

    def backward(self) -> bool:
        if self.at_start:
            return False
        self.position -= 1
        self.config.apply_reverse_diff(self.log.diffs[self.position])
        return True

    def to_start(self) -> TMConfiguration:
        self.position = 0
        self.config = self.log.initial_config.copy()
        return self.config

    def to_end(self) -> TMConfiguration:
        self.position = self.log.steps
        self.config = self.log.final_config.copy()
        return self.config

    def seek(self, step: int) -> TMConfiguration:
        if not 0 <= step <= self.log.steps:
            raise ValueError(f"step {step} out of range 0..{self.log.steps}")

        if step < abs(step - self.position):
            self.to_start()
        elif self.log.steps - step < abs(step - self.position):
            self.to_end()

        while self.position < step:
            self.forward()
        while self.position > step:
            self.backward()
        return self.config


class TM:
    """
    A deterministic single tape Turing machine.

    A missing transition sends the machine to the reject state without touching the tape.
    A transition on the wildcard ``?`` matches any symbol that has no exact transition,
    and writing ``?`` writes back the symbol that was read.

    Args:
        states (List[str]): State names.
        input_alphabet (List[str]): Input symbols. Must not contain the blank.
        tape_alphabet (List[str]): Tape symbols, including the input symbols and the blank.
        start_state (str): Initial state.
        accept_state (str): Halting accept state.
        reject_state (str): Halting reject state.
        delta (Dict[str, Dict[str, Tuple[str, str, str]]]): state -> read -> (next, write, move).
    """

    def __init__(self, states: List[str], input_alphabet: List[str], tape_alphabet: List[str],
                 start_state: str, accept_state: str, reject_state: str,
                 delta: Dict[str, Dict[str, Tuple[str, str, str]]]):
        validate_states(states)
        validate_alphabet(input_alphabet, reserved=(BLANK,))
        validate_alphabet(tape_alphabet, name='tape_alphabet')

        missing = [symbol for symbol in list(input_alphabet) + [BLANK] if symbol not in tape_alphabet]
        if missing:
            raise ValueError(f"tape_alphabet must contain the input alphabet and blank, missing {set_notation(missing)}")

        state_set = set(states)
        for role, state in (('start', start_state), ('accept', accept_state), ('reject', reject_state)):
            if state not in state_set:
                raise ValueError(f"{role} state '{state}' not in states {set_notation(states)}")
        if accept_state == reject_state:
            raise ValueError("accept state and reject state must be different")

        readable = set(tape_alphabet) | {WILDCARD}
        table: Dict[Tuple[str, str], Tuple[str, str, str]] = {}
        for state, row in delta.items():
            if state not in state_set:
                raise ValueError(f"transition from unknown state '{state}'")
            if state in (accept_state, reject_state):
                raise ValueError(f"halting state '{state}' may not have outgoing transitions")
            for symbol, action in row.items():
                if symbol not in readable:
                    raise ValueError(
                        f"transition on '{symbol}' from '{state}': symbol not in tape alphabet "
                        f"{set_notation(tape_alphabet)}")
                next_state, write, move = action
                if next_state not in state_set:
                    raise ValueError(f"transition on '{symbol}' from '{state}' to unknown state '{next_state}'")
                if write not in readable:
                    raise ValueError(f"transition on '{symbol}' from '{state}' writes unknown symbol '{write}'")
                if move not in MOVES:
                    raise ValueError(f"transition on '{symbol}' from '{state}' has move '{move}', expected L, R or S")
                table[delta_key(state, symbol)] = (next_state, write, move)

        self.states: Tuple[str, ...] = tuple(states)
        self.input_alphabet: Tuple[str, ...] = tuple(input_alphabet)
        self.tape_alphabet: Tuple[str, ...] = tuple(tape_alphabet)
        self.start_state = start_state
        self.accept_state = accept_state
        self.reject_state = reject_state
        self._delta = table

    def __repr__(self) -> str:
        return f"TM(states={list(self.states)!r}, start_state={self.start_state!r})"

    def is_halting(self, state: str) -> bool:
        return state in (self.accept_state, self.reject_state)

    def transition(self, state: str, symbol: str) -> Optional[Tuple[str, str, str]]:
        """The action for (state, symbol). Exact transitions take precedence over the wildcard."""
        action = self._delta.get(delta_key(state, symbol))
        if action is None:
            action = self._delta.get(delta_key(state, WILDCARD))
        return action

    def transition_str(self, state: str, symbol: str) -> Optional[str]:
        action = self._delta.get(delta_key(state, symbol))
        if action is None:
            return None
        return f"{symbol} → {', '.join(action)}"

    def transition_count(self) -> int:
        return len(self._delta)

    def initial_config(self, input_string: str) -> TMConfiguration:
        """
        Raises:
            DomainError: If input_string uses a symbol outside the input alphabet.
        """
        check_against_input_alphabet(self.input_alphabet, input_string)
        return TMConfiguration.from_input(self.start_state, input_string)

    def next_diff(self, config: TMConfiguration) -> ConfigDiff:
        """The diff that takes config to its successor. config is not modified."""
        if self.is_halting(config.state):
            raise InternalInvariantViolation("no step after a halting configuration", state=config.state)

        symbol = config.scanned_symbol()
        action = self.transition(config.state, symbol)
        if action is None:
            return ConfigDiff(config.state, self.reject_state, symbol, symbol, config.head, config.head)

        next_state, write, move = action
        if write == WILDCARD:
            write = symbol
        return ConfigDiff(config.state, next_state, symbol, write, config.head, config.head + MOVES[move])

    def iter_diffs(self, config: TMConfiguration, max_steps: Optional[int] = None) -> Iterator[ConfigDiff]:
        """
        Advances config in place, yielding the diff of every step.

        Stops when the machine halts or after max_steps steps. Callers may stop
        iterating early to cancel a long computation.
        """
        limit = MAX_STEPS if max_steps is None else max_steps
        steps = 0
        while not self.is_halting(config.state) and steps < limit:
            diff = self.next_diff(config)
            config.apply_diff(diff)
            steps += 1
            yield diff

    def outcome_of(self, config: TMConfiguration) -> TMOutcome:
        if config.state == self.accept_state:
            return TMOutcome.ACCEPTED
        if config.state == self.reject_state:
            return TMOutcome.REJECTED
        return TMOutcome.STEP_LIMIT_EXCEEDED

    def run(self, input_string: str, max_steps: Optional[int] = None) -> TMExecutionLog:
        """
        Runs the machine on input_string and records every step.

        Args:
            input_string (str): The input, written on the tape starting at cell 0.
            max_steps (Optional[int]): Step ceiling, MAX_STEPS by default.

        Returns:
            TMExecutionLog: The log. Its outcome is STEP_LIMIT_EXCEEDED if the
            machine had not halted when the ceiling was reached.
        """
        initial = self.initial_config(input_string)
        config = initial.copy()
        diffs = list(self.iter_diffs(config, max_steps))
        outcome = self.outcome_of(config)
        if outcome is TMOutcome.STEP_LIMIT_EXCEEDED:
            logger.info("TM run on %r stopped after %d steps without halting", input_string, len(diffs))
        return TMExecutionLog(input_string, initial, config, diffs, outcome)

    def accepts(self, input_string: str, max_steps: Optional[int] = None) -> bool:
        return self.run(input_string, max_steps).outcome is TMOutcome.ACCEPTED

    def output(self, input_string: str, max_steps: Optional[int] = None) -> str:
        return self.run(input_string, max_steps).final_config.output_string()

    def states_visited(self, input_string: str, max_steps: Optional[int] = None) -> List[str]:
        return self.run(input_string, max_steps).states_visited()

    def to_dict(self) -> Dict:
        delta: Dict[str, Dict[str, List[str]]] = {}
        for (state, symbol), action in self._delta.items():
            delta.setdefault(state, {})[symbol] = list(action)
        return {
            'type': 'tm',
            'states': list(self.states),
            'input_alphabet': list(self.input_alphabet),
            'tape_alphabet': list(self.tape_alphabet),
            'start_state': self.start_state,
            'accept_state': self.accept_state,
            'reject_state': self.reject_state,
            'delta': delta,
        }
