from typing import Dict, Optional


class ParseError(ValueError):
    """
    Raised when an automaton description cannot be turned into an automaton.

    Carries the location of the problem so callers can point the author at it.

    Args:
        message (str): Human readable description of the problem.
        path (Optional[str]): Dotted key path inside the document, e.g. ``delta.q0.1``.
        line (Optional[int]): 1-based line of the offending text.
        column (Optional[int]): 1-based column of the offending text.
        excerpt (Optional[str]): A few lines of source around the location.
    """

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None,
                 column: Optional[int] = None, excerpt: Optional[str] = None):
        self.message = message
        self.path = path
        self.line = line
        self.column = column
        self.excerpt = excerpt
        super().__init__(self._format())

    def _format(self) -> str:
        text = self.message
        if self.path:
            text = f"{self.path}: {text}"
        if self.line is not None:
            text = f"{text} (line {self.line}, column {self.column})"
        return text

    def to_dict(self) -> Dict:
        return {
            'message': self.message,
            'path': self.path,
            'line': self.line,
            'column': self.column,
            'excerpt': self.excerpt,
        }


class DomainError(ValueError):
    """Raised when an input does not belong to an automaton's domain (e.g. a foreign symbol)."""

    def __init__(self, message: str, symbol: Optional[str] = None, position: Optional[int] = None):
        self.symbol = symbol
        self.position = position
        super().__init__(message)


class InternalInvariantViolation(RuntimeError):
    """An engine noticed its own state is inconsistent. Fatal for the current computation."""

    def __init__(self, message: str, **context):
        self.context = context
        if context:
            details = ', '.join(f"{key}={value!r}" for key, value in sorted(context.items()))
            message = f"{message} [{details}]"
        super().__init__(message)
