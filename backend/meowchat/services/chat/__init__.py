from .errors import ChatError, GenerationError, ProtocolError, StaleGuessError
from .service import ChatService, ChatSettings

__all__ = [
    'ChatError',
    'ChatService',
    'ChatSettings',
    'GenerationError',
    'ProtocolError',
    'StaleGuessError',
]
