"""Error taxonomy for the embedding autopilot."""


class AutopilotError(Exception):
    """Base class for all autopilot errors."""


class ModelError(AutopilotError):
    """The embedder rejected its input or produced an invalid vector."""


class QueueUnavailable(AutopilotError):
    """The durable job queue could not be reached."""


class MalformedJobError(AutopilotError):
    """A queue payload is missing fields required for processing.

    Retrying cannot fix a malformed payload, so these jobs are archived
    on first sight.
    """

    def __init__(self, message: str, missing_fields=None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])
