from .registration import (
    confirm_leave_kb,
    events_kb,
    my_registration_kb,
    reuse_profile_kb,
    transport_kb,
)

__all__ = [
    "confirm_leave_kb",
    "events_kb",
    "my_registration_kb",
    "reuse_profile_kb",
    "transport_kb",
]
