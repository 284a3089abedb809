# src/core/notifications/channel.py
"""
Realtime-канал статусов оплаты.

Клиент, ожидающий оплату, слушает канал payment:{payment_id} в Redis
(через WebSocket-шлюз). Ошибки публикации логируются и не пробрасываются.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import TypeMsg
from src.common.exceptions import ExternalServiceError
from src.common.logger import log_error, log_info
from src.common.utils import utc_now

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


def payment_channel(payment_id: str) -> str:
    """Имя канала для статусов конкретного платежа."""
    return f"payment:{payment_id}"


class PaymentStatusChannel:
    """Публикация результата оплаты подписчикам платежа."""

    def __init__(self, redis: "RedisClient") -> None:
        self._redis = redis

    async def notify_payment_success(self, payment_id: str, subject_id: str) -> bool:
        return await self._publish(payment_id, {
            "type": "payment_success",
            "payment_id": payment_id,
            "subject_id": subject_id,
        })

    async def notify_payment_error(self, payment_id: str, subject_id: str, reason: str) -> bool:
        return await self._publish(payment_id, {
            "type": "payment_error",
            "payment_id": payment_id,
            "subject_id": subject_id,
            "reason": reason,
        })

    async def _publish(self, payment_id: str, message: dict[str, Any]) -> bool:
        message["timestamp"] = utc_now().isoformat()
        try:
            receivers = await self._redis.publish(payment_channel(payment_id), message)
        except ExternalServiceError as e:
            await log_error(
                f"Не удалось отправить статус платежа {payment_id} в канал: {e.message}",
                extra={"payment_id": payment_id},
            )
            return False

        await log_info(
            f"Статус платежа {payment_id} ({message['type']}) отправлен, подписчиков: {receivers}",
            type_msg=TypeMsg.DEBUG,
        )
        return True
