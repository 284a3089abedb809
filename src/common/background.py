# src/common/background.py
"""
Фоновые задачи "запустил и забыл".
Держит ссылки на задачи до их завершения и логирует ошибки.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from src.common.logger import log_error


class BackgroundTasks:
    """Набор фоновых задач процесса."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        """Запускает корутину в фоне, не дожидаясь результата."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Колбэк синхронный, поэтому логируем через отдельную задачу
            asyncio.get_running_loop().create_task(
                log_error(f"Фоновая задача {task.get_name()} завершилась ошибкой: {exc}")
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Дожидается завершения всех запущенных задач."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Отменяет все задачи (при остановке процесса)."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()


_background: BackgroundTasks | None = None


def get_background_tasks() -> BackgroundTasks:
    """Возвращает общий для процесса набор фоновых задач."""
    global _background
    if _background is None:
        _background = BackgroundTasks()
    return _background
