class RelayError(Exception):
    """Base class for everything the relay raises on purpose."""

    code = "relay_error"


class SignatureError(RelayError):
    """Inbound webhook could not be verified. The only error that changes the response."""

    code = "signature_invalid"


class AuthError(RelayError):
    """BotHelp credential exchange failed."""

    code = "auth_failed"


class SubscriberLookupError(RelayError):
    """Transport-level failure while searching for a subscriber."""

    code = "lookup_failed"


class SubscriberNotFound(RelayError):
    code = "subscriber_not_found"


class TagMutationError(RelayError):
    code = "tag_mutation_failed"

    def __init__(self, message: str, *, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MalformedResponse(RelayError):
    """Remote API returned a body we could not parse."""

    code = "malformed_response"
