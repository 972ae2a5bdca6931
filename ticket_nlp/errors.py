"""
Exception taxonomy for the ticket query pipeline.

Each error carries a ``public_message`` that is safe to show to the caller;
the exception's own text may include internal detail and is only logged.
"""


class NLPError(Exception):
    public_message = "Service unavailable. Please try again later."

    def __init__(self, detail: str = "", public_message: str = "") -> None:
        super().__init__(detail or public_message or self.public_message)
        if public_message:
            self.public_message = public_message


class ValidationError(NLPError):
    """Malformed or empty input."""

    public_message = "Invalid request."


class AuthorizationError(NLPError):
    """Role or ownership check failed."""

    public_message = "Permission denied."


class UnrecognizedIntentError(NLPError):
    public_message = "Sorry, I could not understand your query."


class ReferenceNotFoundError(NLPError):
    """An entity points at a ticket or user that does not exist."""

    public_message = "The referenced item could not be found."


class UpstreamError(NLPError):
    """A ticket or identity store call failed."""

    public_message = "Service unavailable. Please try again later."
