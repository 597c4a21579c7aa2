from .event import Event, TRANSPORT_TYPES
from .registrant import Registrant
from .reserved_number import ReservedNumber
from .fixed_binding import FixedNumberBinding
from .chat import Chat, EventChat

__all__ = [
    "Event",
    "TRANSPORT_TYPES",
    "Registrant",
    "ReservedNumber",
    "FixedNumberBinding",
    "Chat",
    "EventChat",
]
