"""Simulators for finite automata, regular expressions, context-free grammars and Turing machines."""
