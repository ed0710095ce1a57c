"""Глобальный выключатель реферальной программы."""

from __future__ import annotations

from loguru import logger

from config.settings import get_settings


class FeatureToggle:
    """Значение по умолчанию берётся из REFERRAL__ENABLED.

    Переключение живёт в памяти процесса и не трогает сохранённые записи.
    """

    def __init__(self, enabled: bool | None = None) -> None:
        self._enabled = get_settings().referral.enabled if enabled is None else enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set(self, enabled: bool, *, actor: str = "system") -> bool:
        if enabled != self._enabled:
            logger.warning(
                "Реферальная программа {state} ({actor})",
                state="включена" if enabled else "выключена",
                actor=actor,
            )
        self._enabled = enabled
        return self._enabled


__all__ = ["FeatureToggle"]
