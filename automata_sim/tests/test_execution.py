from django.test import TestCase

from automata_sim.errors import DomainError, ParseError
from automata_sim.execution import (
    CfgTrace,
    DfaTrace,
    NfaTrace,
    RegexTrace,
    TmTrace,
    execute,
    iter_tm_chunks,
    run_source,
)
from automata_sim.parsers import parse_cfg, parse_dfa, parse_nfa, parse_regex, parse_tm
from automata_sim.turing import TMOutcome

EVEN_ZEROS = """
states: [e, o]
input_alphabet: [0, 1]
start_state: e
accept_states: [e]
delta:
  e: {0: o, 1: e}
  o: {0: e}
"""

ENDS_IN_01 = """
states: [a, b, c]
input_alphabet: [0, 1]
start_state: a
accept_states: [c]
delta:
  a: {0: [a, b], 1: a}
  b: {1: c}
"""

ZEROS_TM = """
states: [s, qA, qR]
input_alphabet: [0, 1]
tape_alphabet_extra: [x]
start_state: s
accept_state: qA
reject_state: qR
delta:
  s: {0: [s, x, R], 1: [qR, 1, S], _: [qA, _, S]}
"""

LOOPING_TM = """
states: [s, qA, qR]
input_alphabet: [0]
start_state: s
accept_state: qA
reject_state: qR
delta:
  s: {'?': [s, '?', R]}
"""


class TestExecuteFiniteAutomata(TestCase):
    """Traces for DFAs and NFAs"""

    def test_dfa_accepted(self):
        trace = execute(parse_dfa(EVEN_ZEROS), '1001')
        self.assertIsInstance(trace, DfaTrace)
        self.assertTrue(trace.accepted)
        self.assertEqual(trace.states, ['e', 'e', 'o', 'e', 'e'])
        self.assertIsNone(trace.rejection_reason)

    def test_dfa_non_accepting_state(self):
        trace = execute(parse_dfa(EVEN_ZEROS), '0')
        self.assertFalse(trace.accepted)
        self.assertIn("'o'", trace.rejection_reason)

    def test_dfa_missing_transition(self):
        trace = execute(parse_dfa(EVEN_ZEROS), '01')
        self.assertFalse(trace.accepted)
        self.assertEqual(trace.states, ['e', 'o', None])
        self.assertEqual(trace.rejection_reason, 'No transition defined')

    def test_foreign_symbol_is_a_rejection(self):
        trace = execute(parse_dfa(EVEN_ZEROS), '02')
        self.assertIsInstance(trace, DfaTrace)
        self.assertFalse(trace.accepted)
        self.assertIn('2', trace.rejection_reason)
        self.assertEqual(trace.states, [])

    def test_nfa_state_sets(self):
        trace = execute(parse_nfa(ENDS_IN_01), '001')
        self.assertIsInstance(trace, NfaTrace)
        self.assertTrue(trace.accepted)
        self.assertEqual(trace.state_sets, [['a'], ['a', 'b'], ['a', 'b'], ['a', 'c']])

    def test_nfa_rejected(self):
        trace = execute(parse_nfa(ENDS_IN_01), '10')
        self.assertFalse(trace.accepted)
        self.assertIsNotNone(trace.rejection_reason)
        self.assertEqual(trace.to_dict()['kind'], 'nfa')


class TestExecuteOtherKinds(TestCase):
    """Traces for regexes, grammars and Turing machines"""

    def test_regex(self):
        trace = execute(parse_regex('D = 0|1; D D'), '01')
        self.assertIsInstance(trace, RegexTrace)
        self.assertTrue(trace.accepted)
        self.assertEqual(trace.substitution_steps[0]['expression'], 'DD')

    def test_regex_foreign_symbol(self):
        trace = execute(parse_regex('(0|1)*'), '2')
        self.assertFalse(trace.accepted)

    def test_cfg_tree(self):
        trace = execute(parse_cfg("S: [aSb, '']"), 'ab')
        self.assertIsInstance(trace, CfgTrace)
        self.assertTrue(trace.accepted)
        data = trace.to_dict()
        self.assertEqual(data['parse_tree']['symbol'], 'S')
        self.assertTrue(data['parse_tree_text'].startswith('└───S'))

    def test_cfg_rejected(self):
        trace = execute(parse_cfg("S: [aSb, '']"), 'abb')
        self.assertFalse(trace.accepted)
        self.assertIsNone(trace.parse_tree)
        self.assertIsNone(trace.to_dict()['parse_tree'])

    def test_cfg_deep_tree_is_sent_as_text(self):
        string = '(' * 600 + ')' * 600
        data = execute(parse_cfg("S: ['(S)', '']"), string).to_dict()
        self.assertTrue(data['accepted'])
        self.assertIsNone(data['parse_tree'])
        self.assertEqual(data['parse_tree_depth'], 601)
        self.assertTrue(data['parse_tree_text'].startswith('└───S'))

    def test_cfg_foreign_symbol(self):
        trace = execute(parse_cfg("S: [aSb, '']"), 'ac')
        self.assertIsInstance(trace, CfgTrace)
        self.assertFalse(trace.accepted)

    def test_tm(self):
        trace = execute(parse_tm(ZEROS_TM), '00')
        self.assertIsInstance(trace, TmTrace)
        self.assertTrue(trace.accepted)
        self.assertEqual(trace.outcome, TMOutcome.ACCEPTED)
        data = trace.to_dict()
        self.assertEqual(data['steps'], 3)
        self.assertEqual(data['final_config']['tape'], 'xx_')
        self.assertEqual(data['final_config']['head'], 2)
        self.assertEqual(data['output'], 'xx')

    def test_tm_rejected(self):
        trace = execute(parse_tm(ZEROS_TM), '01')
        self.assertFalse(trace.accepted)
        self.assertIn('qR', trace.rejection_reason)

    def test_tm_step_limit(self):
        trace = execute(parse_tm(LOOPING_TM), '0', max_steps=50)
        self.assertFalse(trace.accepted)
        self.assertEqual(trace.outcome, TMOutcome.STEP_LIMIT_EXCEEDED)
        self.assertEqual(trace.log.steps, 50)

    def test_tm_foreign_symbol(self):
        trace = execute(parse_tm(ZEROS_TM), '0a')
        self.assertFalse(trace.accepted)
        self.assertIsNone(trace.log)
        self.assertNotIn('steps', trace.to_dict())

    def test_unsupported_object(self):
        with self.assertRaises(DomainError):
            execute(object(), '')


class TestRunSource(TestCase):
    """Parsing and running in one call"""

    def test_run_source(self):
        trace = run_source('dfa', EVEN_ZEROS, '00')
        self.assertTrue(trace.accepted)

    def test_parse_errors_propagate(self):
        with self.assertRaises(ParseError):
            run_source('dfa', 'states: []', '')


class TestTMChunks(TestCase):
    """Streaming a Turing machine run in chunks"""

    def setUp(self):
        self.tm = parse_tm(ZEROS_TM)

    def test_event_sequence(self):
        events = list(iter_tm_chunks(self.tm, '000', chunk_size=3))
        self.assertEqual([event['type'] for event in events], ['initial', 'diffs', 'diffs', 'summary'])
        self.assertEqual(events[0]['config'], {'state': 's', 'head': 0, 'tape_start': 0, 'tape': '000'})
        self.assertEqual(events[1]['first_step'], 0)
        self.assertEqual(len(events[1]['diffs']), 3)
        self.assertEqual(events[2]['first_step'], 3)
        self.assertEqual(len(events[2]['diffs']), 1)

    def test_summary_matches_run(self):
        events = list(iter_tm_chunks(self.tm, '000', chunk_size=2))
        summary = events[-1]
        log = self.tm.run('000')
        self.assertEqual(summary['outcome'], 'accepted')
        self.assertTrue(summary['accepted'])
        self.assertEqual(summary['steps'], log.steps)
        self.assertEqual(summary['final_config'], log.final_config.to_dict())
        streamed = [diff for event in events if event['type'] == 'diffs' for diff in event['diffs']]
        self.assertEqual(streamed, [diff.to_dict() for diff in log.diffs])

    def test_exact_multiple_of_chunk_size(self):
        events = list(iter_tm_chunks(self.tm, '0', chunk_size=2))
        self.assertEqual([event['type'] for event in events], ['initial', 'diffs', 'summary'])

    def test_step_limit(self):
        events = list(iter_tm_chunks(parse_tm(LOOPING_TM), '0', chunk_size=10, max_steps=25))
        self.assertEqual(events[-1]['outcome'], 'step_limit_exceeded')
        self.assertEqual(events[-1]['steps'], 25)
        self.assertEqual(len(events), 1 + 3 + 1)

    def test_foreign_symbol(self):
        with self.assertRaises(DomainError):
            list(iter_tm_chunks(self.tm, '0y'))

    def test_bad_chunk_size(self):
        with self.assertRaises(ValueError):
            list(iter_tm_chunks(self.tm, '0', chunk_size=0))
