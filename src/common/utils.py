# src/common/utils.py
"""
Мелкие общие помощники: время в UTC и разбор JSONB.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4


def utc_now() -> datetime:
    """Текущее время с таймзоной UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Наивное время считается UTC, aware-время приводится к UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def load_jsonb(value: Any) -> Any:
    """asyncpg без кодека отдаёт JSONB строкой."""
    if value is None or isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def dump_jsonb(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)
