import logging
import random
import threading
from typing import Callable, Dict, Optional

from . import roles
from .errors import ProtocolError
from .matchmaking import MatchmakingQueue, Party
from .persona import PersonaResponder, build_backend
from .profanity import DEFAULT_WORDS, ProfanityFilter
from .sessions import MANUAL, ChatSessionManager

logger = logging.getLogger(__name__)


class ChatSettings:
    """Engine budgets, read from the Flask config."""

    def __init__(
        self,
        session_duration_sec: float = 120.0,
        max_messages: int = 12,
        ai_fallback_wait_sec: float = 3.0,
        match_retry_sec: float = 3.0,
        ai_reply_delay_min_sec: float = 0.8,
        ai_reply_delay_max_sec: float = 2.0,
        history_length: int = 6,
        session_grace_sec: float = 1.0,
    ):
        if ai_reply_delay_min_sec > ai_reply_delay_max_sec:
            raise ValueError('AI_REPLY_DELAY_MIN_SEC must not exceed AI_REPLY_DELAY_MAX_SEC')
        self.session_duration_sec = session_duration_sec
        self.max_messages = max_messages
        self.ai_fallback_wait_sec = ai_fallback_wait_sec
        self.match_retry_sec = match_retry_sec
        self.ai_reply_delay_min_sec = ai_reply_delay_min_sec
        self.ai_reply_delay_max_sec = ai_reply_delay_max_sec
        self.history_length = history_length
        self.session_grace_sec = session_grace_sec

    @classmethod
    def from_config(cls, config) -> 'ChatSettings':
        return cls(
            session_duration_sec=float(config.get('SESSION_DURATION_SEC', 120)),
            max_messages=int(config.get('MAX_MESSAGES', 12)),
            ai_fallback_wait_sec=float(config.get('AI_FALLBACK_WAIT_SEC', 3)),
            match_retry_sec=float(config.get('MATCH_RETRY_SEC', 3)),
            ai_reply_delay_min_sec=float(config.get('AI_REPLY_DELAY_MIN_SEC', 0.8)),
            ai_reply_delay_max_sec=float(config.get('AI_REPLY_DELAY_MAX_SEC', 2.0)),
            history_length=int(config.get('HISTORY_LENGTH', 6)),
            session_grace_sec=float(config.get('SESSION_GRACE_SEC', 1)),
        )


class ChatService:
    """Owns the queue, the session registry and the user records.

    Every operation runs under one re-entrant lock, shared with the session
    manager's timer callbacks, so engine state is only ever touched by one
    thread at a time.
    """

    def __init__(
        self,
        scheduler,
        notify: Callable[[str, str, dict], None],
        settings: ChatSettings = None,
        responder: PersonaResponder = None,
        text_filter: Callable[[str], str] = None,
        rng: random.Random = None,
    ):
        self.settings = settings or ChatSettings()
        self.scheduler = scheduler
        self._notify = notify
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self.responder = responder or PersonaResponder(history_length=self.settings.history_length, rng=self._rng)
        self.queue = MatchmakingQueue(
            scheduler,
            fallback_wait_sec=self.settings.ai_fallback_wait_sec,
            random_persona=self.responder.random_persona,
        )
        self.sessions = ChatSessionManager(
            scheduler,
            notify,
            self.responder,
            self.queue,
            text_filter=text_filter or ProfanityFilter(),
            duration_sec=self.settings.session_duration_sec,
            max_messages=self.settings.max_messages,
            reply_delay=(self.settings.ai_reply_delay_min_sec, self.settings.ai_reply_delay_max_sec),
            grace_sec=self.settings.session_grace_sec,
            lock=self._lock,
            rng=self._rng,
        )

    @classmethod
    def from_config(cls, config, scheduler, notify) -> 'ChatService':
        settings = ChatSettings.from_config(config)
        backend = build_backend(config.get('GEMINI_API_KEY'), config.get('GEMINI_MODEL', 'gemini-1.5-flash'))
        responder = PersonaResponder(backend, history_length=settings.history_length)
        text_filter = ProfanityFilter(config.get('PROFANITY_WORDS', DEFAULT_WORDS))
        return cls(scheduler, notify, settings=settings, responder=responder, text_filter=text_filter)

    # ---- matchmaking ----

    def join_queue(self, handle: str, selection: str) -> str:
        """Queue a connection under the requested role and try to pair it right away.

        Returns the resolved role.
        """
        if selection not in roles.SELECTIONS:
            raise ProtocolError(f"Invalid role: {selection!r}")
        with self._lock:
            if self.queue.get_waiting(handle) is not None:
                raise ProtocolError('Already waiting for a match')
            if self.sessions.active_session_for(handle) is not None:
                raise ProtocolError('Already in a chat')

            role = roles.assign_role(selection, self._rng)
            party = Party(handle, role, self.scheduler.now())
            self.queue.enqueue(party)
            self._notify(handle, 'waiting', {'role': role})

            self._try_match(party)
            return role

    def _try_match(self, party: Party) -> None:
        result = self.queue.process_matchmaking(party)
        if result is not None:
            self._start_session(result)
        elif party.role == roles.HUMAN:
            # Cats and AIs wait for a human to find them
            party.retry_task = self.scheduler.call_later(
                self.settings.match_retry_sec, self._retry_match, party, name=f"retry:{party.handle}"
            )

    def _retry_match(self, party: Party) -> None:
        with self._lock:
            record = self.queue.get_user_record(party.handle)
            if record is None or not record.in_queue or self.queue.get_waiting(party.handle) is not party:
                return
            logger.info(f"[match-retry] handle={party.handle}")
            self._try_match(party)

    def _start_session(self, result) -> None:
        for party in result.participants:
            if party.retry_task is not None:
                party.retry_task.cancel()
                party.retry_task = None
        session = self.sessions.create_session(result)
        for party in result.participants:
            if party.is_synthetic:
                continue
            self.queue.mark_in_session(party.handle, session.id)
            self._notify(party.handle, 'matched', {'sessionId': session.id})

    # ---- chat ----

    def send_message(self, handle: str, text: str) -> None:
        with self._lock:
            session = self.sessions.active_session_for(handle)
            if session is None:
                return
            self.sessions.handle_message(session.id, handle, text)

    def typing(self, handle: str, is_typing: bool) -> None:
        with self._lock:
            session = self.sessions.active_session_for(handle)
            if session is None:
                return
            self.sessions.handle_typing(session.id, handle, is_typing)

    def end_chat(self, handle: str) -> None:
        with self._lock:
            session = self.sessions.active_session_for(handle)
            if session is None:
                raise ProtocolError('Not in a chat')
            self.sessions.end_chat(session.id, MANUAL)

    def submit_guess(self, handle: str, guess: str) -> Dict[str, object]:
        if guess not in roles.ROLES:
            raise ProtocolError(f"Invalid guess: {guess!r}")
        partner_type, correct = self.sessions.resolve_guess(handle, guess)
        logger.info(f"[guess] handle={handle} guess={guess} actual={partner_type} correct={correct}")
        return {'partnerType': partner_type, 'correct': correct}

    def disconnect(self, handle: str) -> None:
        with self._lock:
            party = self.queue.get_waiting(handle)
            if party is not None and party.retry_task is not None:
                party.retry_task.cancel()
            self.queue.remove(handle)
            self.sessions.handle_disconnect(handle)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            data = {'waiting': len(self.queue), 'users': self.queue.user_count}
            data.update(self.sessions.counts())
            return data

    def user_record(self, handle: str) -> Optional[dict]:
        with self._lock:
            record = self.queue.get_user_record(handle)
            return record.to_dict() if record else None
