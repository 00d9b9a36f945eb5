from typing import Iterable, List, Tuple
from .errors import DomainError

# Transition tables use the empty string for epsilon moves, parse trees show it as a leaf.
EPSILON = ''
EPSILON_LEAF = 'ε'

BLANK = '_'
WILDCARD = '?'

RESERVED_SYMBOLS = {EPSILON_LEAF, WILDCARD}


def set_notation(items: Iterable) -> str:
    """
    Formats items as a set literal, e.g. ``{q0,q1}``. The empty string is shown as ``''``.
    """
    formatted = ["''" if str(item) == '' else str(item) for item in items]
    return '{' + ','.join(formatted) + '}'


def delta_key(state: str, symbol: str) -> Tuple[str, str]:
    return state, symbol


def check_against_input_alphabet(alphabet: Iterable[str], text: str) -> None:
    """
    Ensures every character of text is an alphabet symbol.

    Raises:
        DomainError: On the first symbol outside the alphabet.
    """
    symbols = alphabet if isinstance(alphabet, (set, frozenset)) else set(alphabet)
    for position, char in enumerate(text):
        if char not in symbols:
            raise DomainError(
                f"symbol '{char}' not contained in alphabet {set_notation(sorted(symbols))}",
                symbol=char,
                position=position,
            )


def validate_alphabet(symbols: List[str], name: str = 'input_alphabet',
                      reserved: Iterable[str] = (), allow_empty: bool = False) -> List[str]:
    """
    Checks an alphabet declaration and returns it unchanged.

    Args:
        symbols (List[str]): Declared symbols, in declaration order.
        name (str): Name of the declaration used in error messages.
        reserved (Iterable[str]): Extra symbols that may not appear.
        allow_empty (bool): Whether an empty alphabet is acceptable.

    Returns:
        List[str]: The validated symbols.

    Raises:
        ValueError: If a symbol is not a single character, is reserved or is repeated.
    """
    if not symbols and not allow_empty:
        raise ValueError(f"{name} must contain at least one symbol")

    forbidden = RESERVED_SYMBOLS | set(reserved)
    seen = set()
    for symbol in symbols:
        if not isinstance(symbol, str) or len(symbol) != 1:
            raise ValueError(f"{name} symbol {symbol!r} must be a single character")
        if symbol in forbidden:
            raise ValueError(f"{name} may not contain the reserved symbol '{symbol}'")
        if symbol in seen:
            raise ValueError(f"{name} contains duplicate symbol '{symbol}'")
        seen.add(symbol)
    return symbols


def validate_states(states: List[str], name: str = 'states') -> List[str]:
    """Checks that a state list is non-empty and has no repeated names."""
    if not states:
        raise ValueError(f"{name} must contain at least one state")
    seen = set()
    for state in states:
        if not isinstance(state, str) or not state:
            raise ValueError(f"{name} entry {state!r} must be a non-empty string")
        if state in seen:
            raise ValueError(f"{name} contains duplicate state '{state}'")
        seen.add(state)
    return states


def fresh_state_name(existing: Iterable[str], base: str) -> str:
    """Returns base, or base_1, base_2, ... whichever is not already taken."""
    taken = set(existing)
    if base not in taken:
        return base
    counter = 1
    while f"{base}_{counter}" in taken:
        counter += 1
    return f"{base}_{counter}"
