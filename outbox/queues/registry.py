from __future__ import annotations

from typing import Iterator, Sequence

from outbox.core.errors import ConfigurationError
from outbox.queues.base import QueueConfig


class QueueRegistry:
    """Ordered, name-unique set of queue registrations. Sync runs in this order."""

    def __init__(self, queues: Sequence[QueueConfig] = ()):
        self._queues: dict[str, QueueConfig] = {}
        for q in queues:
            self.register(q)

    def register(self, config: QueueConfig) -> None:
        if config.queue_name in self._queues:
            raise ConfigurationError(f"Duplicate queue registration for queue_name={config.queue_name}")
        self._queues[config.queue_name] = config

    def get(self, queue_name: str) -> QueueConfig:
        if queue_name not in self._queues:
            raise ConfigurationError(
                f"No QueueConfig registered for queue_name={queue_name}"
            )
        return self._queues[queue_name]

    def names(self) -> list[str]:
        return list(self._queues.keys())

    def __iter__(self) -> Iterator[QueueConfig]:
        return iter(self._queues.values())

    def __len__(self) -> int:
        return len(self._queues)

    def __contains__(self, queue_name: object) -> bool:
        return queue_name in self._queues
