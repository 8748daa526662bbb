class CoachError(Exception):
    """Base class for errors surfaced to the caller as a single message."""

    status_code = 500


class InputValidationError(CoachError):
    status_code = 400


class MediaDecodeError(CoachError):
    pass


class ProviderCallError(CoachError):
    pass


class ProcessingTimeoutError(CoachError):
    pass


class ProcessingFailedError(CoachError):
    def __init__(self, state: str):
        super().__init__(f"File processing failed with state: {state}")
        self.state = state
