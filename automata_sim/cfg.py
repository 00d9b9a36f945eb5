import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .alphabet import EPSILON_LEAF, check_against_input_alphabet, set_notation
from .errors import InternalInvariantViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """A production ``variable -> output``. An empty output is an epsilon production."""
    variable: str
    output: str

    def __post_init__(self):
        if len(self.variable) != 1:
            raise ValueError(
                f"production rule must have exactly 1 input symbol, but instead has \"{self.variable}\"")

    def __len__(self) -> int:
        return len(self.output)

    def is_epsilon(self) -> bool:
        return not self.output

    def __str__(self) -> str:
        return f"{self.variable} -> {self.output or EPSILON_LEAF}"


@dataclass(eq=False, repr=False)
class TreeNode:
    """
    A node of a parse tree. Leaves are terminals or the epsilon marker.

    Trees can be as deep as the input is long, so every traversal here uses an
    explicit stack instead of recursion.
    """
    symbol: str
    children: List['TreeNode'] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"TreeNode({self.symbol!r}, children={len(self.children)})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, TreeNode):
            return NotImplemented
        stack = [(self, other)]
        while stack:
            left, right = stack.pop()
            if left.symbol != right.symbol or len(left.children) != len(right.children):
                return False
            stack.extend(zip(left.children, right.children))
        return True

    def is_leaf(self) -> bool:
        return not self.children

    def leaves(self) -> List[str]:
        found: List[str] = []
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf():
                found.append(node.symbol)
            else:
                stack.extend(reversed(node.children))
        return found

    def leaves_string(self) -> str:
        """The derived string: non-epsilon leaves read left to right."""
        return ''.join(leaf for leaf in self.leaves() if leaf != EPSILON_LEAF)

    def depth(self) -> int:
        """Number of edges on the longest root to leaf path."""
        deepest = 0
        stack = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            deepest = max(deepest, depth)
            stack.extend((child, depth + 1) for child in node.children)
        return deepest

    def to_tree_string(self) -> str:
        """Renders the tree with box drawing characters, one node per line."""
        lines: List[str] = []
        stack = [(self, '', True)]
        while stack:
            node, prefix, tail = stack.pop()
            lines.append(prefix + ('└───' if tail else '├───') + node.symbol)
            child_prefix = prefix + ('    ' if tail else '│   ')
            last = len(node.children) - 1
            for index in range(last, -1, -1):
                stack.append((node.children[index], child_prefix, index == last))
        return '\n'.join(lines) + '\n'

    def to_dict(self) -> Dict:
        root: Dict = {'symbol': self.symbol, 'children': []}
        stack = [(self, root)]
        while stack:
            node, data = stack.pop()
            for child in node.children:
                child_data = {'symbol': child.symbol, 'children': []}
                data['children'].append(child_data)
                stack.append((child, child_data))
        return root


class Item:
    """An Earley item: a rule with a dot position and the input position where it started."""

    __slots__ = ('rule', 'dot', 'start', 'previous', 'completing')

    def __init__(self, rule: Rule, dot: int, start: int,
                 previous: Optional['Item'] = None, completing: Optional['Item'] = None):
        self.rule = rule
        self.dot = dot
        self.start = start
        # Back-pointers for tree construction: the item before the dot advanced,
        # and the completed item that advanced it over a variable.
        self.previous = previous
        self.completing = completing

    @property
    def key(self) -> Tuple[Rule, int, int]:
        return self.rule, self.dot, self.start

    def is_complete(self) -> bool:
        return self.dot == len(self.rule)

    def next_symbol(self) -> str:
        return self.rule.output[self.dot]

    def previous_symbol(self) -> str:
        return self.rule.output[self.dot - 1]

    def __repr__(self) -> str:
        output = self.rule.output
        return f"({self.rule.variable} -> {output[:self.dot]}.{output[self.dot:]}, {self.start})"


class Chart:
    """The items of one input position, in insertion order, without duplicates."""

    def __init__(self):
        self.items: List[Item] = []
        self._keys: Set[Tuple[Rule, int, int]] = set()

    def add(self, item: Item):
        # The first item with a given key wins, so back-pointers always reach older items.
        if item.key not in self._keys:
            self._keys.add(item.key)
            self.items.append(item)

    def __len__(self) -> int:
        return len(self.items)


class EarleyParser:
    """
    Earley recognizer for a CFG on a fixed input.

    Epsilon productions are handled by repeating predict, scan and complete on each
    chart until it stops growing.
    """

    def __init__(self, cfg: 'CFG', input_string: str):
        self.cfg = cfg
        self.input = input_string
        self.charts = [Chart() for _ in range(len(input_string) + 1)]
        for rule in cfg.rules_for(cfg.start_symbol):
            self.charts[0].add(Item(rule, 0, 0))
        self._run()

    def _run(self):
        for k, chart in enumerate(self.charts):
            changed = True
            while changed:
                size = len(chart)
                i = 0
                while i < len(chart):
                    item = chart.items[i]
                    if not item.is_complete():
                        symbol = item.next_symbol()
                        if symbol in self.cfg.variable_set:
                            # Predict
                            for rule in self.cfg.rules_for(symbol):
                                chart.add(Item(rule, 0, k))
                        elif k < len(self.input) and self.input[k] == symbol:
                            # Scan
                            self.charts[k + 1].add(Item(item.rule, item.dot + 1, item.start, previous=item))
                    else:
                        # Complete
                        for waiting in list(self.charts[item.start].items):
                            if not waiting.is_complete() and waiting.next_symbol() == item.rule.variable:
                                chart.add(Item(waiting.rule, waiting.dot + 1, waiting.start,
                                               previous=waiting, completing=item))
                    i += 1
                changed = len(chart) > size

    def item_count(self) -> int:
        return sum(len(chart) for chart in self.charts)

    def completed_start_item(self) -> Optional[Item]:
        for item in self.charts[-1].items:
            if item.start == 0 and item.rule.variable == self.cfg.start_symbol and item.is_complete():
                return item
        return None

    def accepts(self) -> bool:
        return self.completed_start_item() is not None

    def parse_tree(self) -> Optional[TreeNode]:
        """Tree for the first completed start item, or None if the input is not in the language."""
        root = self.completed_start_item()
        if root is None:
            return None
        return self._build(root)

    def _build(self, root: Item) -> TreeNode:
        # Each node is created empty and filled in when its item is popped.
        limit = self.item_count()
        tree = TreeNode(root.rule.variable)
        stack: List[Tuple[Item, TreeNode, int]] = [(root, tree, 0)]
        while stack:
            item, node, depth = stack.pop()
            if depth > limit:
                raise InternalInvariantViolation(
                    "grammar did not terminate while building the parse tree", depth=depth, input=self.input)

            if item.rule.is_epsilon():
                node.children.append(TreeNode(EPSILON_LEAF))
                continue

            current: Optional[Item] = item
            while current is not None and current.dot > 0:
                symbol = current.previous_symbol()
                child = TreeNode(symbol)
                if symbol in self.cfg.variable_set:
                    if current.completing is None:
                        raise InternalInvariantViolation("expected completing item for variable", item=repr(current))
                    stack.append((current.completing, child, depth + 1))
                node.children.append(child)
                current = current.previous
            node.children.reverse()
        return tree


class CFG:
    """
    A context-free grammar with single character variables and terminals.

    Args:
        terminals (List[str]): Terminal symbols.
        variables (List[str]): Variables. The start symbol must be one of them.
        rules (List[Rule]): Productions.
        start_symbol (str): The start variable.
    """

    def __init__(self, terminals: List[str], variables: List[str], rules: List[Rule], start_symbol: str):
        overlap = set(terminals) & set(variables)
        if overlap:
            raise ValueError(
                f"terminals and variables cannot intersect: {set_notation(sorted(overlap))} appear in both")
        if start_symbol not in variables:
            raise ValueError(f"variables {set_notation(variables)} must contain start symbol '{start_symbol}'")
        if EPSILON_LEAF in terminals or EPSILON_LEAF in variables:
            raise ValueError(f"'{EPSILON_LEAF}' is reserved for the empty string")

        symbols = set(terminals) | set(variables)
        for rule in rules:
            if rule.variable not in variables:
                raise ValueError(f"rule {rule} has unknown variable '{rule.variable}'")
            for symbol in rule.output:
                if symbol not in symbols:
                    raise ValueError(f"rule {rule} uses unknown symbol '{symbol}'")

        self.terminals: Tuple[str, ...] = tuple(terminals)
        self.variables: Tuple[str, ...] = tuple(variables)
        self.rules: Tuple[Rule, ...] = tuple(rules)
        self.start_symbol = start_symbol
        self.variable_set = frozenset(variables)

        self._rules_by_variable: Dict[str, List[Rule]] = {variable: [] for variable in variables}
        for rule in self.rules:
            self._rules_by_variable[rule.variable].append(rule)
        self.nullable = self._find_nullable()

    def __repr__(self) -> str:
        return f"CFG(start_symbol={self.start_symbol!r}, rules={len(self.rules)})"

    def __str__(self) -> str:
        return '\n'.join(str(rule) for rule in self.rules)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CFG):
            return NotImplemented
        return (self.start_symbol == other.start_symbol and
                set(self.terminals) == set(other.terminals) and
                set(self.variables) == set(other.variables) and
                set(self.rules) == set(other.rules))

    def __hash__(self):
        return hash((self.start_symbol, frozenset(self.rules)))

    def _find_nullable(self) -> frozenset:
        nullable: Set[str] = set()
        changed = True
        while changed:
            size = len(nullable)
            for rule in self.rules:
                if all(symbol in nullable for symbol in rule.output):
                    nullable.add(rule.variable)
            changed = len(nullable) > size
        return frozenset(nullable)

    def is_nullable(self, symbol: str) -> bool:
        return symbol in self.nullable

    def rules_for(self, variable: str) -> List[Rule]:
        return self._rules_by_variable.get(variable, [])

    def parser(self, input_string: str) -> EarleyParser:
        """
        Runs the Earley recognizer on input_string.

        Raises:
            DomainError: If input_string contains a symbol that is not a terminal.
        """
        check_against_input_alphabet(self.terminals, input_string)
        return EarleyParser(self, input_string)

    def accepts(self, input_string: str) -> bool:
        return self.parser(input_string).accepts()

    def parse_tree(self, input_string: str) -> Optional[TreeNode]:
        return self.parser(input_string).parse_tree()

    def to_dict(self) -> Dict:
        return {
            'type': 'cfg',
            'start_symbol': self.start_symbol,
            'variables': list(self.variables),
            'terminals': list(self.terminals),
            'rules': [{'variable': rule.variable, 'output': rule.output} for rule in self.rules],
        }
