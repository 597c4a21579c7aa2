import logging

from aiogram import Router
from aiogram.types.error_event import ErrorEvent

logger = logging.getLogger(__name__)

errors_router = Router()


@errors_router.errors()
async def handle_errors(event: ErrorEvent):
    """Logs unhandled exceptions together with the update that caused them."""
    logger.exception(
        "Unhandled exception: %s, on update: %s",
        event.exception,
        event.update.model_dump_json(indent=2, exclude_none=True),
    )
