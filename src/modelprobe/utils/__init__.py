from .buffers import BoundedLog
from .events import ALL_EVENTS, BusEvent, EventBus, EventCallback
from .functions import round_half_up, safe_divide, safe_getattr

__all__ = [
    "ALL_EVENTS",
    "BoundedLog",
    "BusEvent",
    "EventBus",
    "EventCallback",
    "round_half_up",
    "safe_divide",
    "safe_getattr",
]
