"""Error types raised or emitted by the simulation engine."""


class ConfigurationError(ValueError):
    """Invalid or inconsistent simulation input. Fatal for the run."""

    def __init__(self, message: str, reason: str = "invalid_config"):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def __str__(self) -> str:
        return self.message


class DegenerateResultWarning(UserWarning):
    """Too few data points for a meaningful statistic; fallback values were reported."""
