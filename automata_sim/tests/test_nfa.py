from itertools import product

from django.test import TestCase

from automata_sim.errors import DomainError
from automata_sim.nfa import NFA


def third_from_last_is_0():
    return NFA(
        states=['q1', 'q2', 'q3', 'q4'],
        input_alphabet=['0', '1'],
        start_state='q1',
        accept_states=['q4'],
        delta={
            'q1': {'0': ['q1', 'q2'], '1': 'q1'},
            'q2': {'0': 'q3', '1': 'q3'},
            'q3': {'0': 'q4', '1': 'q4'},
        },
    )


class TestNFASimulation(TestCase):
    """Test cases for NFA acceptance"""

    def setUp(self):
        self.nfa = third_from_last_is_0()

    def test_third_from_last_symbol(self):
        self.assertTrue(self.nfa.accepts('000'))
        self.assertFalse(self.nfa.accepts('111'))
        self.assertTrue(self.nfa.accepts('1011'))
        self.assertFalse(self.nfa.accepts('00'))

    def test_matches_language(self):
        for length in range(8):
            for symbols in product('01', repeat=length):
                string = ''.join(symbols)
                expected = len(string) >= 3 and string[-3] == '0'
                self.assertEqual(self.nfa.accepts(string), expected, f"Disagreement on string '{string}'")

    def test_state_sets_visited(self):
        visited = self.nfa.state_sets_visited('01')
        self.assertEqual(visited, [
            frozenset({'q1'}),
            frozenset({'q1', 'q2'}),
            frozenset({'q1', 'q3'}),
        ])

    def test_empty_state_set_is_valid(self):
        nfa = NFA(['a', 'b'], ['x', 'y'], 'a', ['b'], {'a': {'x': 'b'}})
        visited = nfa.state_sets_visited('yx')
        self.assertEqual(visited[-1], frozenset())
        self.assertFalse(nfa.accepts('yx'))

    def test_symbol_outside_alphabet(self):
        with self.assertRaises(DomainError):
            self.nfa.accepts('012')

    def test_transition_str(self):
        self.assertEqual(self.nfa.transition_str('q1', '0'), '0 → {q1,q2}')


class TestEpsilonClosure(TestCase):
    """Test cases for epsilon closure"""

    def test_chain(self):
        nfa = NFA(['a', 'b', 'c'], ['x'], 'a', ['c'], {'a': {'': 'b'}, 'b': {'': ['c']}})
        self.assertEqual(nfa.epsilon_closure(['a']), frozenset({'a', 'b', 'c'}))
        self.assertTrue(nfa.accepts(''))

    def test_epsilon_cycle_terminates(self):
        nfa = NFA(
            states=['a', 'b', 'c'],
            input_alphabet=['x'],
            start_state='a',
            accept_states=['c'],
            delta={'a': {'': 'b'}, 'b': {'': 'a', 'x': 'c'}, 'c': {'': 'c'}},
        )
        self.assertEqual(nfa.epsilon_closure(['a']), frozenset({'a', 'b'}))
        self.assertTrue(nfa.accepts('x'))
        self.assertFalse(nfa.accepts('xx'))

    def test_closure_applied_after_each_symbol(self):
        nfa = NFA(['a', 'b', 'c'], ['x'], 'a', ['c'], {'a': {'x': 'b'}, 'b': {'': 'c'}})
        self.assertEqual(nfa.state_sets_visited('x'), [frozenset({'a'}), frozenset({'b', 'c'})])

    def test_epsilon_on_unknown_state_rejected(self):
        with self.assertRaises(ValueError):
            NFA(['a'], ['x'], 'a', [], {'a': {'': 'z'}})
