# app/integrations/notifier.py
"""
In-app notifications, persisted to the notifications table.
"""
from typing import Any, Optional, Protocol
from app.db.models import Notification
from app.db.unit_of_work import UnitOfWorkFactory
from common import get_app_logger

logger = get_app_logger(__name__)


class Notifier(Protocol):
    async def create(
        self,
        user_id: str,
        type: str,
        message: str,
        key: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        link: Optional[str] = None,
    ) -> None: ...


class DbNotifier:
    """Writes each notification in its own transaction."""

    def __init__(self, unit_of_work: UnitOfWorkFactory):
        self._unit_of_work = unit_of_work

    async def create(
        self,
        user_id: str,
        type: str,
        message: str,
        key: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        link: Optional[str] = None,
    ) -> None:
        async with self._unit_of_work() as uow:
            await uow.notifications.add(
                Notification(
                    user_id=user_id,
                    type=type,
                    message=message,
                    key=key,
                    params=params,
                    link=link,
                )
            )
        logger.debug("Notification stored", user_id=user_id, type=type)


__all__ = ["Notifier", "DbNotifier"]
