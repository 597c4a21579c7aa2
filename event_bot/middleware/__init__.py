from .db import DbSessionMiddleware
from .registration_timeout import RegistrationTimeoutMiddleware

__all__ = [
    "DbSessionMiddleware",
    "RegistrationTimeoutMiddleware",
]
