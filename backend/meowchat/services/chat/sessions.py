"""Chat session lifecycle: relay, AI turn injection, limits and teardown.

A session is ``active`` from creation, becomes ``ended`` exactly once (time
limit, message limit, manual end or disconnect) and is ``destroyed`` a short
grace period later, when it leaves the registry.
"""

import logging
import random
import threading
from typing import Callable, Dict, List, Optional, Tuple

from . import roles
from .errors import StaleGuessError

logger = logging.getLogger(__name__)

TIME_LIMIT = 'time_limit'
MESSAGE_LIMIT = 'message_limit'
MANUAL = 'manual'
DISCONNECT = 'disconnect'

ACTIVE = 'active'
ENDED = 'ended'
DESTROYED = 'destroyed'


class Participant:
    is_connected = False
    handle = None

    def __init__(self, role: str):
        self.role = role
        self.message_count = 0


class ConnectedParticipant(Participant):
    """A party behind a live socket, whatever role it plays."""

    is_connected = True

    def __init__(self, handle: str, role: str):
        super().__init__(role)
        self.handle = handle

    def __repr__(self):
        return f"<Connected {self.handle} role={self.role}>"


class SyntheticParticipant(Participant):
    """A generated partner. It never receives events; its lines come from the persona responder."""

    def __init__(self, persona: str):
        super().__init__(roles.AI)
        self.persona = persona

    def __repr__(self):
        return f"<Synthetic persona={self.persona}>"


def participant_from_party(party) -> Participant:
    if party.is_synthetic:
        return SyntheticParticipant(party.persona)
    return ConnectedParticipant(party.handle, party.role)


class ChatSession:
    def __init__(self, session_id: str, participants: List[Participant], created_at: float):
        if len(participants) != 2:
            raise ValueError('a chat session has exactly two participants')
        self.id = session_id
        self.participants = tuple(participants)
        self.message_count = 0
        self.created_at = created_at
        self.ended = False
        self.end_reason: Optional[str] = None
        self.destroyed = False
        self.expiry_task = None
        self.pending_replies = []

    @property
    def state(self) -> str:
        if self.destroyed:
            return DESTROYED
        return ENDED if self.ended else ACTIVE

    def participant_for(self, handle: str) -> Optional[Participant]:
        for p in self.participants:
            if p.is_connected and p.handle == handle:
                return p
        return None

    def counterpart_of(self, participant: Participant) -> Participant:
        first, second = self.participants
        return second if participant is first else first

    def __repr__(self):
        return f"<ChatSession {self.id} {self.state} messages={self.message_count}>"


class ChatSessionManager:
    def __init__(
        self,
        scheduler,
        notify: Callable[[str, str, dict], None],
        responder,
        records,
        text_filter: Callable[[str], str] = None,
        duration_sec: float = 120.0,
        max_messages: int = 12,
        reply_delay: Tuple[float, float] = (0.8, 2.0),
        grace_sec: float = 1.0,
        lock=None,
        rng: random.Random = None,
    ):
        self._scheduler = scheduler
        self._notify = notify
        self._responder = responder
        self._records = records
        self._filter = text_filter or (lambda text: text)
        self.duration_sec = duration_sec
        self.max_messages = max_messages
        self.reply_delay = reply_delay
        self.grace_sec = grace_sec
        self._lock = lock or threading.RLock()
        self._rng = rng or random.Random()
        self._sessions: Dict[str, ChatSession] = {}
        self._by_handle: Dict[str, str] = {}

    # ---- lookup ----

    def get(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def session_for(self, handle: str) -> Optional[ChatSession]:
        session_id = self._by_handle.get(handle)
        return self._sessions.get(session_id) if session_id else None

    def active_session_for(self, handle: str) -> Optional[ChatSession]:
        session = self.session_for(handle)
        return session if session is not None and not session.ended else None

    def counts(self) -> Dict[str, int]:
        ended = sum(1 for s in self._sessions.values() if s.ended)
        return {'active_sessions': len(self._sessions) - ended, 'ended_sessions': ended}

    # ---- lifecycle ----

    def create_session(self, match) -> ChatSession:
        with self._lock:
            session = ChatSession(
                match.session_id,
                [participant_from_party(p) for p in match.participants],
                self._scheduler.now(),
            )
            self._sessions[session.id] = session
            for p in session.participants:
                if p.is_connected:
                    self._by_handle[p.handle] = session.id
            session.expiry_task = self._scheduler.call_later(
                self.duration_sec, self.end_chat, session.id, TIME_LIMIT, name=f"expire:{session.id}"
            )
            logger.info(
                f"[session-start] session={session.id} "
                f"roles={' & '.join(p.role for p in session.participants)} duration={self.duration_sec}s"
            )
            return session

    def end_chat(self, session_id: str, reason: str = MANUAL) -> bool:
        """Move a session to ``ended``. Returns False if it was already ended or unknown."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return False
            session.ended = True
            session.end_reason = reason
            if session.expiry_task is not None:
                session.expiry_task.cancel()
            for task in session.pending_replies:
                task.cancel()
            session.pending_replies = []

            for participant in session.participants:
                if not participant.is_connected:
                    continue
                partner = session.counterpart_of(participant)
                record = self._records.get_user_record(participant.handle)
                if record is not None:
                    record.last_revealed_partner_type = partner.role
                self._notify(participant.handle, 'chat_ended', {'reason': reason, 'partnerType': partner.role})

            logger.info(f"[session-end] session={session.id} reason={reason} messages={session.message_count}")
            self._scheduler.call_later(self.grace_sec, self._destroy, session.id, name=f"destroy:{session.id}")
            return True

    def _destroy(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return
            session.destroyed = True
            for p in session.participants:
                if p.is_connected and self._by_handle.get(p.handle) == session_id:
                    del self._by_handle[p.handle]
            self._responder.clear_history(session_id)
            logger.info(f"[session-destroy] session={session_id}")

    def handle_disconnect(self, handle: str) -> None:
        with self._lock:
            session = self.active_session_for(handle)
            if session is not None:
                self.end_chat(session.id, DISCONNECT)

    # ---- relay ----

    def handle_message(self, session_id: str, sender_handle: str, raw_text: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return
            sender = session.participant_for(sender_handle)
            if sender is None:
                return

            text = self._filter(raw_text)
            sender.message_count += 1
            session.message_count += 1

            recipient = session.counterpart_of(sender)
            if recipient.is_connected:
                self._notify(recipient.handle, 'receive_message', {'text': text, 'timestamp': self._timestamp()})
            else:
                delay = self._rng.uniform(*self.reply_delay)
                task = self._scheduler.call_later(
                    delay, self._synthetic_reply, session.id, sender_handle, text, name=f"reply:{session.id}"
                )
                session.pending_replies.append(task)

            self._check_message_limit(session)

    def handle_typing(self, session_id: str, sender_handle: str, is_typing: bool) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return
            sender = session.participant_for(sender_handle)
            if sender is None:
                return
            recipient = session.counterpart_of(sender)
            if recipient.is_connected:
                self._notify(recipient.handle, 'partner_typing', {'isTyping': is_typing})

    def _synthetic_reply(self, session_id: str, sender_handle: str, text: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.ended:
                return
            session.pending_replies = [t for t in session.pending_replies if t.pending]
            sender = session.participant_for(sender_handle)
            if sender is None:
                return
            ai = session.counterpart_of(sender)
            persona = ai.persona

        # Generation may be slow; other sessions keep moving meanwhile
        reply = self._generate(session_id, persona, text)

        with self._lock:
            if session.destroyed:
                self._responder.clear_history(session_id)
                return
            if session.ended:
                logger.info(f"[reply-drop] session={session_id} ended while generating")
                return
            self._notify(sender_handle, 'receive_message', {'text': reply, 'timestamp': self._timestamp()})
            ai.message_count += 1
            session.message_count += 1
            self._check_message_limit(session)

    def _generate(self, session_id: str, persona: str, text: str) -> str:
        try:
            return self._responder.generate(session_id, persona, text)
        except Exception as exc:
            logger.warning(f"[reply-fallback] session={session_id} persona={persona}: {exc}")
            return self._responder.fallback_line(persona)

    def _check_message_limit(self, session: ChatSession) -> None:
        if session.message_count >= self.max_messages:
            self.end_chat(session.id, MESSAGE_LIMIT)

    def _timestamp(self) -> int:
        return int(self._scheduler.now() * 1000)

    # ---- guessing ----

    def resolve_guess(self, handle: str, guess: str) -> Tuple[str, bool]:
        """Judge a guess about the partner's role. Returns ``(partner_type, correct)``."""
        with self._lock:
            session = self.session_for(handle)
            if session is not None:
                participant = session.participant_for(handle)
                partner_type = session.counterpart_of(participant).role
                return partner_type, guess == partner_type

            record = self._records.get_user_record(handle)
            if record is None or not record.last_revealed_partner_type:
                raise StaleGuessError('No chat to guess about')
            partner_type = record.last_revealed_partner_type
            record.last_revealed_partner_type = None
            return partner_type, guess == partner_type
