import random

import pytest

from meowchat.services.chat import GenerationError
from meowchat.services.chat.persona import FALLBACK_LINES, PERSONALITIES, PersonaResponder
from meowchat.services.chat.profanity import ProfanityFilter

from conftest import StubBackend


def test_generate_without_backend_fails():
    responder = PersonaResponder()
    with pytest.raises(GenerationError):
        responder.generate('s1', 'human', 'hello')


def test_generate_uses_persona_prompt_and_settings():
    backend = StubBackend(reply='  mrow?  ')
    responder = PersonaResponder(backend)
    assert responder.generate('s1', 'cat', 'hi kitty') == 'mrow?'
    call = backend.calls[0]
    assert call['prompt'].startswith(PERSONALITIES['cat'])
    assert '\n\nConversation so far:\n' in call['prompt']
    assert call['prompt'].endswith('User: hi kitty\nYou:')
    assert call['temperature'] == 0.9
    assert call['max_tokens'] == 50


def test_history_feeds_later_prompts_and_is_bounded():
    backend = StubBackend(reply='sure')
    responder = PersonaResponder(backend, history_length=6)
    for n in range(4):
        responder.generate('s1', 'human', f"line {n}")
    history = responder.history('s1')
    assert len(history) == 6
    assert history[0] == ('User', 'line 1')
    assert history[-1] == ('You', 'sure')
    assert 'User: line 2\nYou: sure\n' in backend.calls[3]['prompt']


def test_failed_generation_leaves_history_untouched():
    backend = StubBackend(error=TimeoutError('slow'))
    responder = PersonaResponder(backend)
    with pytest.raises(GenerationError):
        responder.generate('s1', 'human', 'hello')
    assert responder.history('s1') == []


def test_empty_completion_is_a_failure():
    responder = PersonaResponder(StubBackend(reply='   '))
    with pytest.raises(GenerationError):
        responder.generate('s1', 'human', 'hello')


def test_unknown_persona_is_a_failure():
    responder = PersonaResponder(StubBackend())
    with pytest.raises(GenerationError):
        responder.generate('s1', 'dog', 'hello')


def test_clear_history():
    responder = PersonaResponder(StubBackend())
    responder.generate('s1', 'human', 'a')
    responder.generate('s2', 'human', 'b')
    responder.clear_history('s1')
    responder.clear_history('never-existed')
    assert responder.history('s1') == []
    assert responder.history('s2')


def test_random_persona_and_fallbacks():
    responder = PersonaResponder(rng=random.Random(3))
    personas = {responder.random_persona() for _ in range(50)}
    assert personas == {'cat', 'human'}
    assert responder.fallback_line('cat') in FALLBACK_LINES['cat']
    assert responder.fallback_line('human') in FALLBACK_LINES['human']


def test_profanity_filter_masks_listed_words():
    words = ProfanityFilter(['darn', 'heck'])
    assert words.filter('Darn it, what the HECK') == '**** it, what the ****'
    assert words('clean text') == 'clean text'
    assert words.has_profanity('oh darnit')
    assert not words.has_profanity('hello')
