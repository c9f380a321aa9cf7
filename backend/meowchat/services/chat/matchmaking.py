"""Matchmaking queue and per-connection user records."""

import logging
import uuid
from typing import Callable, Dict, List, Optional

from . import roles

logger = logging.getLogger(__name__)


class Party:
    """Someone who wants (or was made) to chat.

    ``handle`` is the connection id; a manufactured AI partner has none and
    carries a ``persona`` instead.
    """

    def __init__(self, handle: Optional[str], role: str, joined_at: float, persona: Optional[str] = None):
        self.handle = handle
        self.role = role
        self.joined_at = joined_at
        self.persona = persona
        # Pending matchmaking retry, owned by the chat service
        self.retry_task = None

    @property
    def is_synthetic(self) -> bool:
        return self.handle is None

    @classmethod
    def synthetic(cls, persona: str, now: float) -> 'Party':
        return cls(None, roles.AI, now, persona=persona)

    def __repr__(self):
        who = self.handle or f"synthetic:{self.persona}"
        return f"<Party {who} role={self.role}>"


class UserRecord:
    def __init__(self, role: str):
        self.role = role
        self.in_queue = True
        self.chat_id: Optional[str] = None
        # Partner role remembered at end of chat so a late guess can still be judged
        self.last_revealed_partner_type: Optional[str] = None

    def to_dict(self):
        return {
            'role': self.role,
            'inQueue': self.in_queue,
            'chatId': self.chat_id,
            'lastRevealedPartnerType': self.last_revealed_partner_type,
        }


class MatchResult:
    def __init__(self, session_id: str, participants: List[Party]):
        self.session_id = session_id
        self.participants = participants

    @property
    def synthetic(self) -> bool:
        return any(p.is_synthetic for p in self.participants)

    def __repr__(self):
        return f"<MatchResult {self.session_id} {self.participants!r}>"


class MatchmakingQueue:
    def __init__(
        self,
        clock,
        fallback_wait_sec: float = 3.0,
        random_persona: Callable[[], str] = None,
        id_factory: Callable[[], str] = None,
    ):
        self._clock = clock
        self.fallback_wait_sec = fallback_wait_sec
        self._random_persona = random_persona
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._waiting: List[Party] = []
        self._users: Dict[str, UserRecord] = {}

    def __len__(self):
        return len(self._waiting)

    @property
    def waiting(self) -> List[Party]:
        return list(self._waiting)

    @property
    def user_count(self) -> int:
        return len(self._users)

    def get_waiting(self, handle: str) -> Optional[Party]:
        for party in self._waiting:
            if party.handle == handle:
                return party
        return None

    def enqueue(self, party: Party) -> None:
        if self.get_waiting(party.handle) is not None:
            # Never hold two entries for one connection
            self._discard(party.handle)
        self._waiting.append(party)
        self._users[party.handle] = UserRecord(party.role)
        logger.info(f"[queue-join] handle={party.handle} role={party.role} waiting={len(self._waiting)}")

    def find_match(self, party: Party) -> Optional[Party]:
        """First-fit scan in arrival order. The candidate found is removed from the queue."""
        for idx, candidate in enumerate(self._waiting):
            if candidate is party or candidate.handle == party.handle:
                continue
            if roles.is_compatible(party.role, candidate.role):
                del self._waiting[idx]
                return candidate
        return None

    def process_matchmaking(self, party: Party) -> Optional[MatchResult]:
        """Pair ``party`` with a waiting party, or with a fresh AI once a human waited long enough.

        Returns None when the party should keep waiting.
        """
        match = self.find_match(party)
        if match is not None:
            self._discard(party.handle)
            result = MatchResult(self._new_id(), [party, match])
            logger.info(f"[match] session={result.session_id} {party.role}:{party.handle} & {match.role}:{match.handle}")
            return result

        if party.role != roles.HUMAN:
            return None

        waited = self._clock.now() - party.joined_at
        # Reaching the threshold counts: a retry scheduled exactly at it must pair the human
        if waited < self.fallback_wait_sec:
            return None

        self._discard(party.handle)
        partner = Party.synthetic(self._random_persona(), self._clock.now())
        result = MatchResult(self._new_id(), [party, partner])
        logger.info(
            f"[match-ai] session={result.session_id} handle={party.handle} waited={waited:.1f}s persona={partner.persona}"
        )
        return result

    def remove(self, handle: str) -> None:
        """Forget a connection entirely. Safe to call repeatedly."""
        removed = self._discard(handle)
        self._users.pop(handle, None)
        if removed:
            logger.info(f"[queue-leave] handle={handle} waiting={len(self._waiting)}")

    def mark_in_session(self, handle: str, session_id: str) -> None:
        record = self._users.get(handle)
        if record is None:
            return
        record.in_queue = False
        record.chat_id = session_id

    def get_user_record(self, handle: str) -> Optional[UserRecord]:
        return self._users.get(handle)

    def _discard(self, handle: str) -> Optional[Party]:
        for idx, party in enumerate(self._waiting):
            if party.handle == handle:
                return self._waiting.pop(idx)
        return None
