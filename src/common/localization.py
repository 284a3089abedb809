# src/common/localization.py
"""
Тексты уведомлений.
Загружаются из config/lang_dict.json: {KEY: {lang: text}}.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any


DEFAULT_LANGUAGE = "ru"


def get_lang_dict_path() -> Path:
    """Возвращает путь к файлу с текстами."""
    return Path(__file__).parent.parent.parent / "config" / "lang_dict.json"


@lru_cache()
def load_lang_dict() -> dict[str, dict[str, str]]:
    """Загружает словарь текстов (кэшируется на процесс)."""
    lang_path = get_lang_dict_path()
    if not lang_path.exists():
        raise FileNotFoundError(f"Файл локализации не найден: {lang_path}")

    with open(lang_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_text(
    key: str,
    lang: str = DEFAULT_LANGUAGE,
    default: str | None = None,
    **kwargs: Any,
) -> str:
    """
    Возвращает текст по ключу с подстановкой параметров.

    Если перевода на нужный язык нет, берётся русский, затем любой доступный.
    Неизвестный ключ даёт default или "[KEY]".

    Example:
        >>> get_text("ORDER_PAID_FOR_COURIERS", "ru", address="ул. Ленина, 1")
        "Новый оплаченный заказ: ул. Ленина, 1"
    """
    try:
        translations = load_lang_dict().get(key)
    except FileNotFoundError:
        translations = None

    if not translations:
        return default if default else f"[{key}]"

    text = (
        translations.get(lang)
        or translations.get(DEFAULT_LANGUAGE)
        or next(iter(translations.values()), f"[{key}]")
    )

    if kwargs:
        try:
            text = text.format(**kwargs)
        except KeyError:
            pass

    return text


def validate_lang_dict() -> list[str]:
    """Проверяет, что у каждого ключа есть переводы на все языки первого ключа."""
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError as e:
        return [str(e)]

    first = next(iter(lang_dict.values()), {})
    languages = set(first.keys())
    errors: list[str] = []

    for key, translations in lang_dict.items():
        if not isinstance(translations, dict):
            errors.append(f"Ключ '{key}' имеет неверный формат")
            continue
        missing = languages - set(translations.keys())
        if missing:
            errors.append(f"Ключ '{key}' не имеет перевода для языков: {sorted(missing)}")

    return errors
