from itertools import product

from django.test import TestCase

from automata_sim.dfa import DFA
from automata_sim.errors import DomainError


def all_strings(alphabet, max_length):
    for length in range(max_length + 1):
        for symbols in product(alphabet, repeat=length):
            yield ''.join(symbols)


def no_trailing_000():
    """DFA over {0,1} accepting strings that do not end in 000."""
    return DFA(
        states=['q0', 'q1', 'q2', 'q3'],
        input_alphabet=['0', '1'],
        start_state='q0',
        accept_states=['q0', 'q1', 'q2'],
        delta={
            'q0': {'0': 'q1', '1': 'q0'},
            'q1': {'0': 'q2', '1': 'q0'},
            'q2': {'0': 'q3', '1': 'q0'},
            'q3': {'0': 'q3', '1': 'q0'},
        },
    )


class TestDFAAcceptance(TestCase):
    """Acceptance and traces of a DFA"""

    def setUp(self):
        self.dfa = no_trailing_000()

    def test_rejects_trailing_000(self):
        self.assertFalse(self.dfa.accepts('000'))
        self.assertFalse(self.dfa.accepts('1000'))

    def test_accepts_other_strings(self):
        for string in ['', '0', '00', '0001', '010', '1']:
            self.assertTrue(self.dfa.accepts(string), f"Disagreement on string '{string}'")

    def test_acceptance_matches_language(self):
        for string in all_strings('01', 7):
            self.assertEqual(self.dfa.accepts(string), not string.endswith('000'),
                             f"Disagreement on string '{string}'")

    def test_states_visited(self):
        self.assertEqual(self.dfa.states_visited('0001'), ['q0', 'q1', 'q2', 'q3', 'q0'])
        self.assertEqual(self.dfa.states_visited(''), ['q0'])

    def test_trace_ends_in_accept_state_iff_accepted(self):
        for string in all_strings('01', 5):
            trace = self.dfa.states_visited(string)
            self.assertEqual(len(trace), len(string) + 1)
            self.assertEqual(trace[-1] in self.dfa.accept_states, self.dfa.accepts(string))

    def test_symbol_outside_alphabet(self):
        with self.assertRaises(DomainError) as context:
            self.dfa.accepts('0120')
        self.assertEqual(context.exception.symbol, '2')
        self.assertEqual(context.exception.position, 2)

    def test_transition_str(self):
        self.assertEqual(self.dfa.transition_str('q2', '0'), '0 → q3')


class TestPartialDFA(TestCase):
    """A missing transition is an implicit reject"""

    def setUp(self):
        # Accepts exactly 'a'
        self.dfa = DFA(['s', 'f'], ['a', 'b'], 's', ['f'], {'s': {'a': 'f'}})

    def test_missing_transition_rejects(self):
        self.assertTrue(self.dfa.accepts('a'))
        self.assertFalse(self.dfa.accepts('b'))
        self.assertFalse(self.dfa.accepts('ab'))
        self.assertFalse(self.dfa.accepts(''))

    def test_trace_after_missing_transition(self):
        self.assertEqual(self.dfa.states_visited('b'), ['s', None])
        self.assertEqual(self.dfa.states_visited('aba'), ['s', 'f', None, None])

    def test_is_total(self):
        self.assertFalse(self.dfa.is_total())
        self.assertTrue(no_trailing_000().is_total())

    def test_require_total(self):
        with self.assertRaises(ValueError):
            DFA(['s', 'f'], ['a', 'b'], 's', ['f'], {'s': {'a': 'f'}}, require_total=True)


class TestDFAConstruction(TestCase):
    """Invalid definitions are rejected"""

    def test_unknown_start_state(self):
        with self.assertRaises(ValueError):
            DFA(['q0'], ['a'], 'q9', [], {})

    def test_unknown_target(self):
        with self.assertRaises(ValueError):
            DFA(['q0'], ['a'], 'q0', [], {'q0': {'a': 'q1'}})

    def test_symbol_not_in_alphabet(self):
        with self.assertRaises(ValueError):
            DFA(['q0'], ['a'], 'q0', [], {'q0': {'b': 'q0'}})

    def test_multiple_targets(self):
        with self.assertRaises(ValueError):
            DFA(['q0', 'q1'], ['a'], 'q0', [], {'q0': {'a': ['q0', 'q1']}})

    def test_duplicate_states(self):
        with self.assertRaises(ValueError):
            DFA(['q0', 'q0'], ['a'], 'q0', [], {})


class TestMinimizeDFA(TestCase):
    """Test cases for DFA minimisation"""

    def assertSameLanguage(self, first, second, alphabet, max_length=6):
        for string in all_strings(alphabet, max_length):
            self.assertEqual(first.accepts(string), second.accepts(string),
                             f"Disagreement on string '{string}'")

    def test_minimal_dfa_is_unchanged(self):
        dfa = no_trailing_000()
        self.assertEqual(dfa.minimize(), dfa)

    def test_equivalent_states_are_merged(self):
        # p0 behaves exactly like q0
        dfa = DFA(
            states=['q0', 'q1', 'q2', 'q3', 'p0'],
            input_alphabet=['0', '1'],
            start_state='q0',
            accept_states=['q0', 'q1', 'q2', 'p0'],
            delta={
                'q0': {'0': 'q1', '1': 'p0'},
                'p0': {'0': 'q1', '1': 'q0'},
                'q1': {'0': 'q2', '1': 'p0'},
                'q2': {'0': 'q3', '1': 'q0'},
                'q3': {'0': 'q3', '1': 'p0'},
            },
        )
        minimized = dfa.minimize()

        self.assertEqual(len(minimized.states), 4)
        self.assertIn('{p0,q0}', minimized.states)
        self.assertEqual(minimized.start_state, '{p0,q0}')
        self.assertSameLanguage(dfa, minimized, '01')

    def test_unreachable_states_are_removed(self):
        dfa = DFA(
            states=['a', 'b', 'unused'],
            input_alphabet=['x'],
            start_state='a',
            accept_states=['b', 'unused'],
            delta={'a': {'x': 'b'}, 'b': {'x': 'a'}, 'unused': {'x': 'unused'}},
        )
        minimized = dfa.minimize()

        self.assertEqual(list(minimized.states), ['a', 'b'])
        self.assertSameLanguage(dfa, minimized, 'x')

    def test_partial_dfa_gets_dead_state(self):
        dfa = DFA(['s', 'f'], ['a', 'b'], 's', ['f'], {'s': {'a': 'f'}})
        minimized = dfa.minimize()

        self.assertEqual(list(minimized.states), ['s', 'f', 'DEAD'])
        self.assertTrue(minimized.is_total())
        self.assertEqual(minimized.next_state('DEAD', 'a'), 'DEAD')
        self.assertSameLanguage(dfa, minimized, 'ab')

    def test_dead_state_name_does_not_clash(self):
        dfa = DFA(['DEAD', 'f'], ['a', 'b'], 'DEAD', ['f'], {'DEAD': {'a': 'f'}})
        minimized = dfa.minimize()

        self.assertIn('DEAD_1', minimized.states)
        self.assertSameLanguage(dfa, minimized, 'ab')

    def test_merged_state_name_does_not_clash(self):
        # a and b are equivalent, and a distinct state is already called '{a,b}'
        dfa = DFA(
            states=['s', 'a', 'b', '{a,b}', 't'],
            input_alphabet=['0', '1'],
            start_state='s',
            accept_states=['t'],
            delta={
                's': {'0': 'a', '1': 'b'},
                'a': {'0': '{a,b}', '1': '{a,b}'},
                'b': {'0': '{a,b}', '1': '{a,b}'},
                '{a,b}': {'0': 't', '1': 't'},
                't': {'0': 't', '1': 't'},
            },
        )
        minimized = dfa.minimize()

        self.assertEqual(len(minimized.states), 4)
        self.assertIn('{a,b}', minimized.states)
        self.assertIn('{a,b}_1', minimized.states)
        self.assertEqual(minimized.next_state('s', '0'), '{a,b}_1')
        self.assertEqual(minimized.next_state('{a,b}_1', '1'), '{a,b}')
        self.assertSameLanguage(dfa, minimized, '01')

    def test_all_accepting_collapses_to_one_state(self):
        dfa = DFA(['a', 'b'], ['0'], 'a', ['a', 'b'], {'a': {'0': 'b'}, 'b': {'0': 'a'}})
        minimized = dfa.minimize()

        self.assertEqual(list(minimized.states), ['{a,b}'])
        self.assertEqual(minimized.accept_states, frozenset({'{a,b}'}))
        self.assertTrue(minimized.accepts('000'))

    def test_empty_language(self):
        dfa = DFA(['a', 'b'], ['0', '1'], 'a', [], {'a': {'0': 'b'}, 'b': {'1': 'a'}})
        minimized = dfa.minimize()

        self.assertEqual(len(minimized.states), 1)
        self.assertFalse(minimized.accepts(''))
        self.assertFalse(minimized.accepts('01'))

    def test_minimize_is_idempotent(self):
        dfas = [
            no_trailing_000(),
            DFA(['s', 'f'], ['a', 'b'], 's', ['f'], {'s': {'a': 'f'}}),
            DFA(['a', 'b', 'c'], ['0'], 'a', ['a', 'c'],
                {'a': {'0': 'b'}, 'b': {'0': 'c'}, 'c': {'0': 'b'}}),
        ]
        for dfa in dfas:
            once = dfa.minimize()
            self.assertEqual(once.minimize(), once)

    def test_to_dict(self):
        data = no_trailing_000().to_dict()
        self.assertEqual(data['type'], 'dfa')
        self.assertEqual(data['start_state'], 'q0')
        self.assertEqual(data['accept_states'], ['q0', 'q1', 'q2'])
        self.assertEqual(data['delta']['q2'], {'0': 'q3', '1': 'q0'})
