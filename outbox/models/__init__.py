from outbox.models.base import Base  # noqa: F401

from outbox.models.entry import OutboxEntry  # noqa: F401
from outbox.models.signal import LifecycleSignal  # noqa: F401
