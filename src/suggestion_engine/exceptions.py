"""Custom exception hierarchy for the suggestion engine."""


class SuggestionEngineError(Exception):
    """Base exception for all suggestion engine errors."""


class ConfigurationError(SuggestionEngineError):
    """Error in system configuration."""


class MalformedFactorError(SuggestionEngineError):
    """A provider value could not be turned into a factor value."""


class SuggestionNotFound(SuggestionEngineError):
    """No suggestion exists with the given id."""


class StaleSuggestion(SuggestionEngineError):
    """The suggestion is already in a terminal state."""

    def __init__(self, suggestion_id: str, state: str) -> None:
        super().__init__(f"suggestion {suggestion_id} is already {state}")
        self.suggestion_id = suggestion_id
        self.state = state


class WeightProfileConflict(SuggestionEngineError):
    """A weight profile write lost against a newer revision."""


class WeightStoreUnavailable(SuggestionEngineError):
    """The weight profile store could not be read or written."""


class CycleAborted(SuggestionEngineError):
    """An evaluation cycle stopped before scoring any candidate."""
