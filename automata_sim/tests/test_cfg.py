from itertools import product

from django.test import TestCase

from automata_sim.cfg import CFG, Rule, TreeNode
from automata_sim.errors import DomainError


def balanced_parentheses():
    return CFG(
        terminals=['(', ')'],
        variables=['S'],
        rules=[Rule('S', '(S)'), Rule('S', 'SS'), Rule('S', '')],
        start_symbol='S',
    )


def is_balanced(string):
    depth = 0
    for char in string:
        depth += 1 if char == '(' else -1
        if depth < 0:
            return False
    return depth == 0


class TestCFGAcceptance(TestCase):
    """Earley recognition"""

    def setUp(self):
        self.cfg = balanced_parentheses()

    def test_balanced(self):
        self.assertTrue(self.cfg.accepts('(())'))
        self.assertTrue(self.cfg.accepts('()()'))
        self.assertTrue(self.cfg.accepts(''))

    def test_unbalanced(self):
        self.assertFalse(self.cfg.accepts('(()'))
        self.assertFalse(self.cfg.accepts(')('))

    def test_matches_language(self):
        for length in range(9):
            for symbols in product('()', repeat=length):
                string = ''.join(symbols)
                self.assertEqual(self.cfg.accepts(string), is_balanced(string),
                                 f"Disagreement on string '{string}'")

    def test_symbol_outside_terminals(self):
        with self.assertRaises(DomainError):
            self.cfg.accepts('(a)')

    def test_nullable(self):
        self.assertTrue(self.cfg.is_nullable('S'))

    def test_left_recursion(self):
        cfg = CFG(['a', '+'], ['E'], [Rule('E', 'E+a'), Rule('E', 'a')], 'E')
        self.assertTrue(cfg.accepts('a+a+a'))
        self.assertFalse(cfg.accepts('a+'))

    def test_chain_of_nullable_variables(self):
        cfg = CFG(['a'], ['S', 'A', 'B'],
                  [Rule('S', 'AaB'), Rule('A', 'B'), Rule('B', '')], 'S')
        self.assertTrue(cfg.accepts('a'))
        self.assertFalse(cfg.accepts(''))
        self.assertEqual(cfg.nullable, frozenset({'A', 'B'}))


class TestParseTree(TestCase):
    """Parse trees built from the Earley chart"""

    def setUp(self):
        self.cfg = balanced_parentheses()

    def test_nested_parentheses_tree(self):
        tree = self.cfg.parse_tree('(())')
        expected = TreeNode('S', [
            TreeNode('('),
            TreeNode('S', [
                TreeNode('('),
                TreeNode('S', [TreeNode('ε')]),
                TreeNode(')'),
            ]),
            TreeNode(')'),
        ])
        self.assertEqual(tree, expected)
        self.assertEqual(tree.depth(), 3)

    def test_no_tree_when_rejected(self):
        self.assertIsNone(self.cfg.parse_tree('(()'))

    def test_leaves_spell_the_input(self):
        for string in ['', '()', '(())', '()()', '(()())()']:
            tree = self.cfg.parse_tree(string)
            self.assertIsNotNone(tree)
            self.assertEqual(tree.leaves_string(), string)

    def test_tree_agrees_with_acceptance(self):
        for length in range(7):
            for symbols in product('()', repeat=length):
                string = ''.join(symbols)
                self.assertEqual(self.cfg.parse_tree(string) is not None, self.cfg.accepts(string))

    def test_tree_is_deterministic(self):
        self.assertEqual(self.cfg.parse_tree('()()'), self.cfg.parse_tree('()()'))

    def test_empty_input_tree(self):
        tree = self.cfg.parse_tree('')
        self.assertEqual(tree, TreeNode('S', [TreeNode('ε')]))
        self.assertEqual(tree.leaves_string(), '')

    def test_deeply_nested_input(self):
        cfg = CFG(['(', ')'], ['S'], [Rule('S', '(S)'), Rule('S', '')], 'S')
        string = '(' * 1200 + ')' * 1200
        tree = cfg.parse_tree(string)

        self.assertIsNotNone(tree)
        self.assertEqual(tree.leaves_string(), string)
        self.assertEqual(tree.depth(), 1201)
        self.assertEqual(tree, cfg.parse_tree(string))
        self.assertEqual(len(tree.to_tree_string().splitlines()), 3602)

        data = tree.to_dict()
        for _ in range(1200):
            self.assertEqual(data['symbol'], 'S')
            data = data['children'][1]
        self.assertEqual(data['children'], [{'symbol': 'ε', 'children': []}])

    def test_trees_with_different_shapes_are_not_equal(self):
        self.assertNotEqual(TreeNode('S', [TreeNode('a')]), TreeNode('S', [TreeNode('b')]))
        self.assertNotEqual(TreeNode('S', [TreeNode('a')]), TreeNode('S', [TreeNode('a'), TreeNode('a')]))

    def test_tree_string(self):
        tree = TreeNode('S', [TreeNode('a'), TreeNode('B', [TreeNode('b')])])
        self.assertEqual(tree.to_tree_string(), '└───S\n    ├───a\n    └───B\n        └───b\n')


class TestCFGConstruction(TestCase):
    """Invalid grammars are rejected"""

    def test_terminals_and_variables_overlap(self):
        with self.assertRaises(ValueError):
            CFG(['S'], ['S'], [Rule('S', '')], 'S')

    def test_start_symbol_must_be_a_variable(self):
        with self.assertRaises(ValueError):
            CFG(['a'], ['S'], [Rule('S', 'a')], 'T')

    def test_rule_variable_is_one_character(self):
        with self.assertRaises(ValueError):
            Rule('ST', 'a')

    def test_rule_with_unknown_symbol(self):
        with self.assertRaises(ValueError):
            CFG(['a'], ['S'], [Rule('S', 'ab')], 'S')

    def test_rule_str(self):
        self.assertEqual(str(Rule('S', '')), 'S -> ε')
        self.assertEqual(str(Rule('S', '(S)')), 'S -> (S)')
