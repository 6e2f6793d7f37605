"""
Notification Dispatcher - durable per-subject outbox for alerts.

Redis layout (all values are strings, client uses decode_responses=True):

    notification:<id>                         hash with the notification fields
    notifications:<subject_id>                list of ids, newest first (LPUSH)
    notifications:pending:<subject>:<kind>:<code>
                                              id of the unread alert that
                                              suppresses duplicates (SET NX)

LPUSH is atomic, so concurrent enqueues from many verifications never lose
entries and never overwrite earlier unread notifications.
"""
import abc
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

import redis

import config
from shared.domain.exceptions import BackendUnavailable, NotFound
from notifications.domain.model import Notification, NotificationKind

logger = logging.getLogger(__name__)


class AbstractNotificationDispatcher(abc.ABC):

    def enqueue(self, notification: Notification) -> Optional[str]:
        """Queue a notification. Returns its id, or None when suppressed as a duplicate."""
        return self._enqueue(notification)

    def list_for(self, subject_id: str, limit: Optional[int] = None) -> List[Notification]:
        """Notifications for ``subject_id``, newest first."""
        return self._list_for(subject_id, limit)

    def unread_count(self, subject_id: str) -> int:
        return sum(1 for n in self._list_for(subject_id, None) if not n.is_read)

    def acknowledge(self, notification_id: str) -> bool:
        """
        Mark a notification read. Idempotent: acknowledging twice is a no-op.

        Returns:
            True if this call flipped it, False if it was already read

        Raises:
            NotFound: If no notification has this id
        """
        return self._acknowledge(notification_id)

    @abc.abstractmethod
    def _enqueue(self, notification: Notification) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_for(self, subject_id: str, limit: Optional[int]) -> List[Notification]:
        raise NotImplementedError

    @abc.abstractmethod
    def _acknowledge(self, notification_id: str) -> bool:
        raise NotImplementedError


class RedisNotificationDispatcher(AbstractNotificationDispatcher):
    """Redis implementation of the notification outbox."""

    def __init__(self, client: redis.Redis, dedup: bool = True):
        self.client = client
        self.dedup = dedup

    @staticmethod
    def _notification_key(notification_id: str) -> str:
        return f"notification:{notification_id}"

    @staticmethod
    def _subject_key(subject_id: str) -> str:
        return f"notifications:{subject_id}"

    @staticmethod
    def _pending_key(subject_id: str, kind: str, related_code: str) -> str:
        return f"notifications:pending:{subject_id}:{kind}:{related_code}"

    @contextmanager
    def _backend_errors(self, action: str):
        try:
            yield
        except redis.exceptions.RedisError as e:
            logger.error(f"Redis failure while trying to {action}: {e}")
            raise BackendUnavailable(f"Notification store unavailable while trying to {action}") from e

    def _enqueue(self, notification: Notification) -> Optional[str]:
        pending_key = self._pending_key(
            notification.subject_id, notification.kind.value, notification.related_code
        )

        with self._backend_errors(f"enqueue notification for {notification.subject_id}"):
            if self.dedup:
                claimed = self.client.set(pending_key, notification.id, nx=True)
                if not claimed:
                    logger.info(
                        f"Suppressing duplicate {notification.kind.value} for "
                        f"{notification.subject_id} about {notification.related_code}"
                    )
                    return None

            try:
                pipe = self.client.pipeline(transaction=True)
                pipe.hset(self._notification_key(notification.id), mapping=_to_hash(notification))
                pipe.lpush(self._subject_key(notification.subject_id), notification.id)
                pipe.execute()
            except redis.exceptions.RedisError:
                if self.dedup:
                    # release the claim so the next scan can retry the alert
                    self.client.delete(pending_key)
                raise

        logger.info(f"Queued {notification.kind.value} {notification.id} for {notification.subject_id}")
        return notification.id

    def _list_for(self, subject_id: str, limit: Optional[int]) -> List[Notification]:
        if limit is not None and limit <= 0:
            return []
        end = -1 if limit is None else limit - 1

        with self._backend_errors(f"list notifications for {subject_id}"):
            ids = self.client.lrange(self._subject_key(subject_id), 0, end)
            pipe = self.client.pipeline(transaction=False)
            for notification_id in ids:
                pipe.hgetall(self._notification_key(notification_id))
            rows = pipe.execute() if ids else []

        return [_from_hash(row) for row in rows if row]

    def _acknowledge(self, notification_id: str) -> bool:
        key = self._notification_key(notification_id)

        with self._backend_errors(f"acknowledge notification {notification_id}"):
            row = self.client.hgetall(key)
            if not row:
                raise NotFound(f"Notification {notification_id} not found")

            notification = _from_hash(row)
            if not notification.acknowledge():
                logger.debug(f"Notification {notification_id} already read")
                return False

            self.client.hset(key, "is_read", "1")

            pending_key = self._pending_key(
                notification.subject_id, notification.kind.value, notification.related_code
            )
            if self.client.get(pending_key) == notification_id:
                self.client.delete(pending_key)

        logger.info(f"Notification {notification_id} acknowledged")
        return True


def _to_hash(notification: Notification) -> Dict[str, str]:
    return {
        "id": notification.id,
        "subject_id": notification.subject_id,
        "kind": notification.kind.value,
        "message": notification.message,
        "related_code": notification.related_code,
        "is_read": "1" if notification.is_read else "0",
        "created_at": notification.created_at.isoformat(),
    }


def _from_hash(row: Dict[str, str]) -> Notification:
    return Notification(
        id=row["id"],
        subject_id=row["subject_id"],
        kind=NotificationKind(row["kind"]),
        message=row["message"],
        related_code=row["related_code"],
        is_read=row["is_read"] == "1",
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def redis_dispatcher_from_config() -> RedisNotificationDispatcher:
    client = redis.Redis(
        **config.get_redis_host_and_port(),
        decode_responses=True,
        socket_timeout=config.get_store_timeout_seconds(),
        socket_connect_timeout=config.get_store_timeout_seconds(),
    )
    return RedisNotificationDispatcher(client, dedup=config.get_notification_dedup_enabled())
