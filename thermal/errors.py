from __future__ import annotations


class ThermalViewerError(Exception):
    """Base class for recoverable viewer failures."""


class NoDataError(ThermalViewerError):
    """The catalog holds no scenes for the selected site."""


class StatisticsUnavailable(ThermalViewerError):
    """A statistic set could not be computed for the displayed scene."""


class InvalidTargetDate(ThermalViewerError):
    """A requested target date could not be parsed."""


class InvalidLegendInput(ThermalViewerError):
    """A manual legend range is not a pair of increasing numbers."""


class StaleResponse(ThermalViewerError):
    """An asynchronous result arrived after a newer request was issued."""

    def __init__(self, seq: int, current: int) -> None:
        super().__init__(f"Response #{seq} superseded by #{current}")
        self.seq = seq
        self.current = current


class ComputeEngineError(ThermalViewerError):
    """The remote compute backend failed to evaluate a request."""


class RequestTimeout(ThermalViewerError):
    """A backend request did not complete within the configured timeout."""
