"""Exception hierarchy."""

from __future__ import annotations


class TradefluxError(Exception):
    """Base class for all errors raised by the bot."""


class ConfigurationError(TradefluxError):
    """Fatal startup error; no flux is started when this is raised.

    Parameters
    ----------
    message:
        What is wrong.
    hint:
        What the operator should do about it.
    """

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


class PositionStateError(TradefluxError):
    """A position was asked to do something its current status forbids."""


class PollFetchError(TradefluxError):
    """A flux could not fetch its snapshot for one tick."""


class CurrencyMismatchError(TradefluxError, ValueError):
    """Arithmetic between amounts of different currencies."""
