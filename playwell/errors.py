class PlaywellError(Exception):
    """Base for errors raised by the service layer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(PlaywellError):
    """The playthrough is in a state where the requested operation is not allowed."""


class NotFound(PlaywellError):
    """A referenced user, playthrough or session does not exist."""


class ValidationError(PlaywellError):
    """The request values themselves are unacceptable."""
