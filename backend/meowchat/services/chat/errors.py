class ChatError(Exception):
    """Base class for errors raised by the chat engine."""


class ProtocolError(ChatError):
    """A client request that cannot be honoured (bad payload, unknown session...).

    The message is safe to send back to the originating party.
    """


class StaleGuessError(ProtocolError):
    """A guess with neither a live session nor a remembered partner to compare against."""


class GenerationError(ChatError):
    """The persona backend failed or produced nothing usable."""
