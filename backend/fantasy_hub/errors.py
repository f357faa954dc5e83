"""Error types for player integration runs.

Fatal errors abort a run and carry a ``kind`` that the API layer returns to
callers. Per-player problems never raise out of the pipeline; they are
recorded on the player's record instead.
"""


class IntegrationError(RuntimeError):
    """Base error for a failed integration run."""

    kind = "integration_error"

    def __init__(self, message: str, source: str = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.stage = None  # pipeline stage that failed, set by the orchestrator

    def to_dict(self) -> dict:
        payload = {"kind": self.kind, "message": self.message}
        if self.source:
            payload["source"] = self.source
        return payload


class SourceUnavailableError(IntegrationError):
    """An upstream adapter call failed or timed out."""

    kind = "source_unavailable"


class EmptyDataError(SourceUnavailableError):
    """An upstream adapter succeeded but returned zero records."""

    kind = "empty_data"


class NoUsablePredictionsError(IntegrationError):
    """Matching completed but no player carries a positive prediction."""

    kind = "no_usable_predictions"
