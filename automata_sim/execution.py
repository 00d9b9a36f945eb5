import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from .cfg import CFG, TreeNode
from .dfa import DFA
from .errors import DomainError
from .nfa import NFA
from .parsers import Automaton, parse
from .regex import Regex
from .turing import TM, TMExecutionLog, TMOutcome

logger = logging.getLogger(__name__)

MAX_JSON_TREE_DEPTH = 200


@dataclass
class DfaTrace:
    input_string: str
    accepted: bool
    states: List[Optional[str]] = field(default_factory=list)
    rejection_reason: Optional[str] = None
    kind: str = 'dfa'

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind,
            'input': self.input_string,
            'accepted': self.accepted,
            'states': self.states,
            'rejection_reason': self.rejection_reason,
        }


@dataclass
class NfaTrace:
    input_string: str
    accepted: bool
    state_sets: List[List[str]] = field(default_factory=list)
    rejection_reason: Optional[str] = None
    kind: str = 'nfa'

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind,
            'input': self.input_string,
            'accepted': self.accepted,
            'state_sets': self.state_sets,
            'rejection_reason': self.rejection_reason,
        }


@dataclass
class RegexTrace:
    input_string: str
    accepted: bool
    substitution_steps: List[Dict[str, str]] = field(default_factory=list)
    rejection_reason: Optional[str] = None
    kind: str = 'regex'

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind,
            'input': self.input_string,
            'accepted': self.accepted,
            'substitution_steps': self.substitution_steps,
            'rejection_reason': self.rejection_reason,
        }


@dataclass
class CfgTrace:
    input_string: str
    accepted: bool
    parse_tree: Optional[TreeNode] = None
    rejection_reason: Optional[str] = None
    kind: str = 'cfg'

    def to_dict(self) -> Dict:
        tree = self.parse_tree
        depth = tree.depth() if tree else None
        return {
            'kind': self.kind,
            'input': self.input_string,
            'accepted': self.accepted,
            # json encodes nested dicts recursively, so very deep trees are sent as text only
            'parse_tree': tree.to_dict() if tree and depth <= MAX_JSON_TREE_DEPTH else None,
            'parse_tree_depth': depth,
            'parse_tree_text': tree.to_tree_string() if tree else None,
            'rejection_reason': self.rejection_reason,
        }


@dataclass
class TmTrace:
    input_string: str
    accepted: bool
    log: Optional[TMExecutionLog] = None
    rejection_reason: Optional[str] = None
    kind: str = 'tm'

    @property
    def outcome(self) -> Optional[TMOutcome]:
        return self.log.outcome if self.log else None

    def to_dict(self) -> Dict:
        data = {
            'kind': self.kind,
            'input': self.input_string,
            'accepted': self.accepted,
            'rejection_reason': self.rejection_reason,
        }
        if self.log is not None:
            data.update(self.log.to_dict())
            data['output'] = self.log.final_config.output_string()
        return data


ExecutionData = Union[DfaTrace, NfaTrace, RegexTrace, CfgTrace, TmTrace]

_TRACE_TYPES = {DFA: DfaTrace, NFA: NfaTrace, Regex: RegexTrace, CFG: CfgTrace, TM: TmTrace}


def execute(automaton: Automaton, input_string: str, max_steps: Optional[int] = None) -> ExecutionData:
    """
    Runs automaton on input_string and returns the trace for its kind.

    An input symbol outside the automaton's alphabet does not raise: the trace is
    marked as rejected and carries the reason.

    Args:
        automaton: A DFA, NFA, Regex, CFG or TM.
        input_string (str): The input.
        max_steps (Optional[int]): Step ceiling for Turing machines.

    Returns:
        ExecutionData: The trace.
    """
    try:
        if isinstance(automaton, DFA):
            states = automaton.states_visited(input_string)
            accepted = states[-1] in automaton.accept_states
            reason = None
            if not accepted:
                reason = ('No transition defined' if states[-1] is None
                          else f"Ended in non-accepting state '{states[-1]}'")
            return DfaTrace(input_string, accepted, states, reason)

        if isinstance(automaton, NFA):
            state_sets = automaton.state_sets_visited(input_string)
            accepted = not state_sets[-1].isdisjoint(automaton.accept_states)
            return NfaTrace(input_string, accepted, [automaton.ordered(states) for states in state_sets],
                            None if accepted else 'No accepting state active at end of input')

        if isinstance(automaton, Regex):
            accepted = automaton.accepts(input_string)
            return RegexTrace(input_string, accepted, automaton.substitution_steps(),
                              None if accepted else 'Input does not match the expression')

        if isinstance(automaton, CFG):
            tree = automaton.parse_tree(input_string)
            return CfgTrace(input_string, tree is not None, tree,
                            None if tree is not None else 'Input is not generated by the grammar')

        if isinstance(automaton, TM):
            log = automaton.run(input_string, max_steps)
            reason = None
            if log.outcome is TMOutcome.REJECTED:
                reason = f"Halted in reject state '{automaton.reject_state}'"
            elif log.outcome is TMOutcome.STEP_LIMIT_EXCEEDED:
                reason = f"Did not halt within {log.steps} steps"
            return TmTrace(input_string, log.outcome is TMOutcome.ACCEPTED, log, reason)

    except DomainError as e:
        logger.debug("Input %r rejected: %s", input_string, e)
        return _TRACE_TYPES[type(automaton)](input_string, False, rejection_reason=str(e))

    raise DomainError(f"cannot execute object of type {type(automaton).__name__}")


def run_source(kind: str, source: str, input_string: str, max_steps: Optional[int] = None) -> ExecutionData:
    """Parses source as an automaton of the given kind and runs it on input_string."""
    return execute(parse(kind, source), input_string, max_steps)


def iter_tm_chunks(tm: TM, input_string: str, chunk_size: int = 1000,
                   max_steps: Optional[int] = None) -> Iterator[Dict]:
    """
    Runs tm on input_string, yielding the diffs in chunks, then a summary.

    Stopping the iteration stops the machine, so a consumer can cancel a long run.

    Raises:
        DomainError: If input_string uses a symbol outside the input alphabet.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be a positive integer")

    initial = tm.initial_config(input_string)
    yield {'type': 'initial', 'config': initial.to_dict()}

    config = initial.copy()
    chunk: List[Dict] = []
    first_step = 0
    steps = 0
    for diff in tm.iter_diffs(config, max_steps):
        chunk.append(diff.to_dict())
        steps += 1
        if len(chunk) == chunk_size:
            yield {'type': 'diffs', 'first_step': first_step, 'diffs': chunk}
            first_step = steps
            chunk = []
    if chunk:
        yield {'type': 'diffs', 'first_step': first_step, 'diffs': chunk}

    outcome = tm.outcome_of(config)
    yield {
        'type': 'summary',
        'outcome': outcome.value,
        'accepted': outcome is TMOutcome.ACCEPTED,
        'steps': steps,
        'final_config': config.to_dict(),
        'output': config.output_string(),
    }
