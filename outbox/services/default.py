"""
Process-wide default client, for apps that want one global handle.
Everything here delegates to an explicitly constructed OutboxClient.
"""
from __future__ import annotations

from typing import Any

from outbox.core.errors import ConfigurationError
from outbox.services.client import OutboxClient
from outbox.services.context import SyncConfig


_CLIENT: OutboxClient | None = None


async def configure(config: SyncConfig, **kwargs: Any) -> OutboxClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    _CLIENT = await OutboxClient.open(config, **kwargs)
    return _CLIENT


def get_client() -> OutboxClient:
    if _CLIENT is None:
        raise ConfigurationError("outbox is not configured; call configure() first")
    return _CLIENT


async def shutdown() -> None:
    global _CLIENT
    if _CLIENT is not None:
        await _CLIENT.aclose()
        _CLIENT = None
