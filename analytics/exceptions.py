class AnalyticsError(Exception):
    """Base class for errors raised by the analytics app."""


class InvalidDateRangeError(AnalyticsError, ValueError):
    """A custom date range bound could not be parsed or is inverted."""
