"""Persona responder: produces the AI partner's side of a conversation.

The engine treats generation as an opaque, fallible call. A backend only
needs ``complete(prompt, temperature, max_tokens) -> str``; the Gemini one
is used in production and tests plug in a stub.
"""

import logging
import random
import threading
from typing import Dict, List, Optional, Tuple

import google.generativeai as genai

from .errors import GenerationError

logger = logging.getLogger(__name__)

CAT = 'cat'
HUMAN = 'human'

PERSONALITIES = {
    CAT: (
        "You are a cat walking on a keyboard in an anonymous chat.\n"
        "Your responses should be chaotic and cat-like:\n"
        "- Use \"meow\", \"mrow\", \"mew\" frequently\n"
        "- Add random letters or typos as if paws are hitting keys\n"
        "- Be playful and unpredictable\n"
        "- Keep messages VERY short (1-10 words max)\n"
        "- Never admit you're AI or a cat simulation\n"
        "- Sometimes just send \"meow\" or random characters\n"
        "- Act curious, playful, or demanding like a real cat\n"
        "\n"
        "Examples: \"meow meow\", \"mrowww feed me\", \"asdjkl meow\", \"mew?\", \"prrrr\""
    ),
    HUMAN: (
        "You are a friendly person chatting anonymously online.\n"
        "Be natural and conversational:\n"
        "- Keep messages short and casual (5-20 words)\n"
        "- Use varied language - sometimes lowercase, sometimes proper capitalization\n"
        "- Occasionally use common emojis (\U0001F602, \U0001F60A, \U0001F643, etc.)\n"
        "- Ask questions, show curiosity\n"
        "- Be friendly but not overly enthusiastic\n"
        "- Mix up your style - don't be too predictable\n"
        "- Never admit you're AI\n"
        "- Sound like a real person texting\n"
        "\n"
        "Stay casual, authentic, and human-like."
    ),
}

TEMPERATURES = {CAT: 0.9, HUMAN: 0.8}
MAX_OUTPUT_TOKENS = 50

FALLBACK_LINES = {
    CAT: ('meow', 'mrow?', 'mew mew', 'prrrr', 'meowww', 'hiss'),
    HUMAN: ('hey!', 'lol', 'yeah', 'interesting', 'cool', 'haha'),
}


class GeminiBackend:
    """Text completion through Google's Gemini API."""

    def __init__(self, api_key: str, model_name: str = 'gemini-1.5-flash'):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._model = genai.GenerativeModel(model_name=model_name)

    def complete(self, prompt: str, temperature: float, max_tokens: int) -> str:
        result = self._model.generate_content(
            prompt,
            generation_config={'temperature': temperature, 'max_output_tokens': max_tokens},
        )
        return result.text


def build_backend(api_key: Optional[str], model_name: str) -> Optional[GeminiBackend]:
    if not api_key:
        logger.warning("[persona] GEMINI_API_KEY not set; AI partners will use canned replies")
        return None
    try:
        backend = GeminiBackend(api_key, model_name)
    except Exception as exc:
        logger.error(f"[persona] failed to configure Gemini model={model_name}: {exc}")
        return None
    logger.info(f"[persona] Gemini configured model={model_name}")
    return backend


class PersonaResponder:
    def __init__(self, backend=None, history_length: int = 6, rng: random.Random = None):
        self.backend = backend
        self.history_length = history_length
        self._rng = rng or random.Random()
        self._histories: Dict[str, List[Tuple[str, str]]] = {}
        self._lock = threading.Lock()

    def random_persona(self) -> str:
        return self._rng.choice(tuple(PERSONALITIES))

    def fallback_line(self, persona: str) -> str:
        return self._rng.choice(FALLBACK_LINES.get(persona, FALLBACK_LINES[HUMAN]))

    def history(self, session_id: str) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._histories.get(session_id, ()))

    def clear_history(self, session_id: str) -> None:
        with self._lock:
            self._histories.pop(session_id, None)

    def build_prompt(self, persona: str, history: List[Tuple[str, str]], text: str) -> str:
        lines = [PERSONALITIES[persona], '', 'Conversation so far:']
        lines.extend(f"{speaker}: {content}" for speaker, content in history)
        lines.append(f"User: {text}")
        lines.append('You:')
        return '\n'.join(lines)

    def generate(self, session_id: str, persona: str, text: str) -> str:
        """Produce the persona's next line. Raises GenerationError on any failure."""
        if persona not in PERSONALITIES:
            raise GenerationError(f"unknown persona {persona!r}")
        if self.backend is None:
            raise GenerationError('no generation backend configured')

        prompt = self.build_prompt(persona, self.history(session_id), text)
        try:
            reply = self.backend.complete(prompt, TEMPERATURES[persona], MAX_OUTPUT_TOKENS)
        except Exception as exc:
            raise GenerationError(str(exc)) from exc
        reply = (reply or '').strip()
        if not reply:
            raise GenerationError('empty completion')

        with self._lock:
            history = self._histories.setdefault(session_id, [])
            history.append(('User', text))
            history.append(('You', reply))
            if self.history_length <= 0:
                history.clear()
            elif len(history) > self.history_length:
                del history[:-self.history_length]
        return reply
