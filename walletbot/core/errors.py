class BotError(Exception):
    """Base bot error. The message is safe to show to the participant."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotConfiguredError(BotError):
    """Raised when a required collaborator endpoint or credential is absent."""

    default_message = "Service unavailable."


class NotFoundError(BotError):
    """Raised when a token, alert or watchlist entry is absent or already consumed."""

    default_message = "Not found."


class TokenNotFoundError(NotFoundError):
    default_message = "Invalid or expired link code."


class ExpiredError(BotError):
    """Raised when a link token is past its deadline."""

    default_message = "Link code expired."


class InvalidInputError(BotError):
    """Raised for malformed command arguments."""

    default_message = "Invalid input."


class AlreadyLinkedError(BotError):
    default_message = "Wallet already linked."


class SignatureMismatchError(BotError):
    default_message = "Invalid signature."


class MalformedSignatureError(BotError):
    default_message = "Malformed signature."


class QuotaExceededError(BotError):
    default_message = "Limit reached."


class CollaboratorUnavailable(BotError):
    """Raised when the transport, store, price feed or chain RPC fails or times out."""

    default_message = "Service temporarily unavailable. Try again later."
