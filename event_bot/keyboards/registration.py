from typing import Iterable, Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from event_bot.models import Event, Registrant
from event_bot.utils.time import format_datetime
from event_bot.utils.transport import TRANSPORT_EMOJI, TRANSPORT_LABELS


def events_kb(events: Iterable[Event]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=f"{ev.name} – {format_datetime(ev.starts_at)}", callback_data=f"reg:event:{ev.id}")]
            for ev in events
        ]
    )


def transport_kb(allowed: Sequence[str], prefix: str = "reg:transport") -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=f"{TRANSPORT_EMOJI.get(t, '')} {TRANSPORT_LABELS.get(t, t)}", callback_data=f"{prefix}:{t}")]
            for t in allowed
        ]
    )


reuse_profile_kb = InlineKeyboardMarkup(
    inline_keyboard=[[
        InlineKeyboardButton(text="✅ Да, использовать", callback_data="reg:reuse:yes"),
        InlineKeyboardButton(text="✏️ Изменить данные", callback_data="reg:reuse:no"),
    ]]
)


def my_registration_kb(registrant: Registrant) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="Изменить тип транспорта", callback_data=f"my:transport:{registrant.id}")],
            [InlineKeyboardButton(text="❌ Отказаться от участия", callback_data=f"my:leave:{registrant.id}")],
        ]
    )


def confirm_leave_kb(registrant_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[
            InlineKeyboardButton(text="Да, отказаться", callback_data=f"my:leave_ok:{registrant_id}"),
            InlineKeyboardButton(text="Нет", callback_data="my:leave_cancel"),
        ]]
    )
