"""
Parser exceptions.

ExtractionError subclasses are fatal and user-facing (HTTP 400, CLI exit 2).
StrategyError subclasses are soft failures: the strategy chain catches them
and falls through to the next strategy.
"""


class ExtractionError(ValueError):
    """The document cannot be processed at all."""


class UnsupportedFormatError(ExtractionError):
    pass


class EmptyWorkbookError(ExtractionError):
    pass


class StrategyError(Exception):
    """One extraction strategy failed; a cheaper one may still succeed."""


class AIUnavailableError(StrategyError):
    pass


class AIResponseError(StrategyError):
    pass


class EmptyEmailError(ExtractionError):
    pass
