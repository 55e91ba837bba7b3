"""
Exceptions raised by PREC.

`ConfigError` means the context (rules and templates) must be fixed by the
user. `InputGraphError` means the PREC-0 graph does not have the expected
shape. `LogicError` is an invariant violation: a bug in PREC itself.
"""


class PrecError(Exception):
    """Base class of every PREC exception."""


class ConfigError(PrecError):
    """The context is malformed: invalid rule, template or shortcut."""


class InputGraphError(PrecError):
    """The PREC-0 graph is malformed."""


class LogicError(PrecError):
    """An internal invariant has been violated."""


class ParseError(PrecError):
    """A Turtle document could not be parsed."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message)
        self.line = line
        self.column = column


class ConfigValidationError(PrecError):
    """The YAML configuration holds invalid values."""
