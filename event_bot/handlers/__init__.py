from .common import router as common_router
from .errors import errors_router
from .group import router as group_router
from .my_registrations import router as my_registrations_router

__all__ = [
    "common_router",
    "errors_router",
    "group_router",
    "my_registrations_router",
]
