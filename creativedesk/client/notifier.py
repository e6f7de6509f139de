"""
Нотифікатор результатів (toast у UI). Координатори не знають, як саме
показувати результат: вони формують Outcome і віддають його нотифікатору.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

log = logging.getLogger(__name__)


class Level(str, enum.Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    level: Level
    title: str
    description: Optional[str] = None


class Notifier(Protocol):
    def notify(self, outcome: Outcome) -> None: ...


_LOG_LEVELS = {
    Level.SUCCESS: logging.INFO,
    Level.INFO: logging.INFO,
    Level.WARNING: logging.WARNING,
    Level.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """За замовчуванням — просто лог."""

    def notify(self, outcome: Outcome) -> None:
        log.log(
            _LOG_LEVELS.get(outcome.level, logging.INFO),
            "%s%s",
            outcome.title,
            f": {outcome.description}" if outcome.description else "",
            extra={"outcome_level": outcome.level.value},
        )


class RecordingNotifier:
    """Збирає всі outcome-и в список (зручно для headless-клієнтів і тестів)."""

    def __init__(self) -> None:
        self.outcomes: list[Outcome] = []

    def notify(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)

    @property
    def last(self) -> Optional[Outcome]:
        return self.outcomes[-1] if self.outcomes else None
