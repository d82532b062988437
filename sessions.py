"""In-memory dialog state: wizard sessions and pending out-of-band actions.

Both stores are plain objects owned by the application (kept in
``Application.bot_data``). PTB processes updates one at a time unless
``concurrent_updates`` is enabled, which this bot never does, so the
stores are not locked.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

OwnerKey = Tuple[int, ...]


class WorkflowKind(str, Enum):
    PRODUCT_CREATE = 'product_create'
    PRODUCT_UPDATE = 'product_update'
    CATEGORY_CREATE = 'category_create'
    CATEGORY_UPDATE = 'category_update'
    USER_EDIT = 'user_edit'
    PROMOCODE_CREATE = 'promocode_create'
    ORDER_PLACEMENT = 'order_placement'
    RECEIPT_UPLOAD = 'receipt_upload'
    HELP_REQUEST = 'help_request'
    PROFILE_FIELD_EDIT = 'profile_field_edit'


def owner_key(user_id: int, entity_id: Optional[int] = None) -> OwnerKey:
    """(user,) for user-wide flows, (user, entity) for flows editing one record."""
    if entity_id is None:
        return (user_id,)
    return (user_id, entity_id)


@dataclass
class Session:
    owner: OwnerKey
    workflow: WorkflowKind
    step: str
    language: str
    chat_id: Optional[int] = None
    draft: Dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    last_touched_at: float = 0.0

    @property
    def user_id(self) -> int:
        return self.owner[0]

    @property
    def entity_id(self) -> Optional[int]:
        return self.owner[1] if len(self.owner) > 1 else None


class SessionStore:
    """Zero or one in-progress draft per (owner, workflow)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._sessions: Dict[Tuple[OwnerKey, WorkflowKind], Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def start(self, owner: OwnerKey, workflow: WorkflowKind, first_step: str, language: str,
              chat_id: Optional[int] = None, draft: Optional[Dict[str, Any]] = None) -> Session:
        """Open a session at `first_step`. A running session for the same key is replaced."""
        key = (owner, workflow)
        if key in self._sessions:
            logger.info('Replacing running %s session for %s', workflow.value, owner)
        now = self._clock()
        session = Session(owner=owner, workflow=workflow, step=first_step, language=language, chat_id=chat_id,
                          draft=dict(draft or {}), created_at=now, last_touched_at=now)
        self._sessions[key] = session
        logger.info('Session %s started for %s at step %s', workflow.value, owner, first_step)
        return session

    def get(self, owner: OwnerKey, workflow: WorkflowKind) -> Optional[Session]:
        return self._sessions.get((owner, workflow))

    def update(self, session: Session, field_name: str, value: Any) -> None:
        session.draft[field_name] = value
        session.last_touched_at = self._clock()

    def advance(self, session: Session, step: str) -> None:
        logger.debug('Session %s for %s: %s -> %s', session.workflow.value, session.owner, session.step, step)
        session.step = step
        session.last_touched_at = self._clock()

    def clear(self, owner: OwnerKey, workflow: WorkflowKind) -> None:
        if self._sessions.pop((owner, workflow), None) is not None:
            logger.info('Session %s cleared for %s', workflow.value, owner)

    def discard(self, session: Session) -> None:
        """Clear `session` unless it has already been replaced by a newer one."""
        if self._sessions.get((session.owner, session.workflow)) is session:
            self.clear(session.owner, session.workflow)

    def for_user(self, user_id: int) -> List[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    def active_for_user(self, user_id: int) -> Optional[Session]:
        """The session that owns this user's next message: most recently touched, entity-scoped first on ties."""
        sessions = self.for_user(user_id)
        if not sessions:
            return None
        return max(sessions, key=lambda s: (s.last_touched_at, s.entity_id is not None))

    def clear_user(self, user_id: int) -> int:
        sessions = self.for_user(user_id)
        for s in sessions:
            self.clear(s.owner, s.workflow)
        return len(sessions)

    def sweep(self, max_idle_seconds: float) -> int:
        """Drop sessions untouched for longer than `max_idle_seconds`."""
        cutoff = self._clock() - max_idle_seconds
        stale = [key for key, s in self._sessions.items() if s.last_touched_at < cutoff]
        for key in stale:
            del self._sessions[key]
        if stale:
            logger.info('Swept %d idle session(s)', len(stale))
        return len(stale)


@dataclass
class PendingAction:
    order_id: int
    owner: int
    language: str
    chat_id: Optional[int] = None
    created_at: float = 0.0


class PendingActionRegistry:
    """Orders waiting for a payment receipt photo, indexed by order and by owner."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._by_order: Dict[int, PendingAction] = {}
        self._by_owner: Dict[int, List[int]] = {}

    def __len__(self) -> int:
        return len(self._by_order)

    def register(self, order_id: int, owner: int, language: str, chat_id: Optional[int] = None) -> PendingAction:
        if order_id in self._by_order:
            self.resolve(order_id)
        action = PendingAction(order_id=order_id, owner=owner, language=language, chat_id=chat_id,
                               created_at=self._clock())
        self._by_order[order_id] = action
        self._by_owner.setdefault(owner, []).append(order_id)
        logger.info('Awaiting receipt for order #%s from %s', order_id, owner)
        return action

    def find_by_owner(self, owner: int) -> Optional[PendingAction]:
        """Oldest open action for this owner."""
        order_ids = self._by_owner.get(owner)
        if not order_ids:
            return None
        return self._by_order[order_ids[0]]

    def resolve(self, order_id: int) -> Optional[PendingAction]:
        """Remove and return the action; None when it was already resolved."""
        action = self._by_order.pop(order_id, None)
        if action is None:
            return None
        order_ids = self._by_owner.get(action.owner, [])
        if order_id in order_ids:
            order_ids.remove(order_id)
        if not order_ids:
            self._by_owner.pop(action.owner, None)
        logger.info('Pending receipt for order #%s resolved', order_id)
        return action

    def sweep(self, max_age_seconds: float) -> int:
        cutoff = self._clock() - max_age_seconds
        stale = [order_id for order_id, a in self._by_order.items() if a.created_at < cutoff]
        for order_id in stale:
            self.resolve(order_id)
        if stale:
            logger.info('Swept %d abandoned receipt request(s)', len(stale))
        return len(stale)
