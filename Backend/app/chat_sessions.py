"""
Chat session persistence.

A session carries the appointment date the client is working on between
turns, plus the identity of a recognised client. Sessions idle for longer
than SESSION_TTL_HOURS forget everything they carried.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .business_time import business_today
from .core.config import get_settings
from .models import ChatMessage, ChatSession, ChatSessionStatus

settings = get_settings()
logger = logging.getLogger(__name__)


def parse_session_id(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed session id %r", value)
        return None


@dataclass
class SessionContext:
    session: ChatSession
    session_date: Optional[date] = None
    is_new: bool = False
    expired: bool = False

    @property
    def session_id(self) -> str:
        return str(self.session.id)


class ChatSessionStore:
    """Reads and updates ChatSession rows for one barbershop."""

    def __init__(self, db: AsyncSession, barbershop_id: uuid.UUID):
        self.db = db
        self.barbershop_id = barbershop_id

    async def _open(self, session_id) -> tuple[ChatSession, bool]:
        parsed = parse_session_id(session_id)
        existing = await self.db.get(ChatSession, parsed) if parsed else None
        if existing is not None and existing.barbershop_id == self.barbershop_id:
            return existing, False

        # An id owned by another barbershop is never reused.
        new_id = parsed if parsed and existing is None else uuid.uuid4()
        chat_session = ChatSession(
            id=new_id,
            barbershop_id=self.barbershop_id,
            status=ChatSessionStatus.ACTIVE,
            session_data={},
        )
        self.db.add(chat_session)
        logger.info("Opened chat session %s", chat_session.id)
        return chat_session, True

    async def load_context(self, session_id, now: datetime) -> SessionContext:
        """
        Load the session and the appointment date it carries.

        - idle for more than the TTL: date and session data are cleared and
          the session is marked expired
        - carried date already in the past: the date is cleared
        """
        chat_session, is_new = await self._open(session_id)
        context = SessionContext(session=chat_session, is_new=is_new)
        if is_new:
            return context

        ttl = timedelta(hours=settings.session_ttl_hours)
        last = chat_session.last_message_at
        if last is not None and now - last > ttl:
            logger.info(
                "Session %s idle for %s, clearing carried context",
                chat_session.id,
                now - last,
            )
            chat_session.current_appointment_date = None
            chat_session.session_data = {}
            chat_session.status = ChatSessionStatus.EXPIRED
            context.expired = True
            await self.db.flush()
            return context

        carried = chat_session.current_appointment_date
        if carried is not None and carried < business_today(now):
            logger.info("Session %s carried past date %s, clearing it", chat_session.id, carried)
            chat_session.current_appointment_date = None
            await self.db.flush()
            return context

        context.session_date = carried
        return context

    def remember_date(self, chat_session: ChatSession, appointment_date: date) -> None:
        if chat_session.current_appointment_date != appointment_date:
            logger.info("Session %s now carries %s", chat_session.id, appointment_date)
        chat_session.current_appointment_date = appointment_date
        chat_session.status = ChatSessionStatus.ACTIVE

    def link_client(self, chat_session: ChatSession, phone: str, profile_id=None) -> None:
        chat_session.client_phone = phone
        if profile_id is not None:
            chat_session.client_profile_id = profile_id

    def complete(self, chat_session: ChatSession) -> None:
        """Booking done: the next request starts from scratch."""
        chat_session.current_appointment_date = None
        chat_session.session_data = {}
        chat_session.status = ChatSessionStatus.COMPLETED

    async def record_turn(
        self,
        chat_session: ChatSession,
        user_message: str,
        assistant_message: str,
        now: datetime,
        metadata: Optional[dict] = None,
    ) -> None:
        self.db.add(ChatMessage(session_id=chat_session.id, role="user", content=user_message))
        self.db.add(
            ChatMessage(
                session_id=chat_session.id,
                role="assistant",
                content=assistant_message,
                message_metadata=metadata,
            )
        )
        chat_session.last_message_at = now
        await self.db.commit()
