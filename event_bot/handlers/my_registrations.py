from html import escape

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from event_bot.errors import NumberingError
from event_bot.keyboards import confirm_leave_kb, my_registration_kb, transport_kb
from event_bot.models import Registrant
from event_bot.services.broadcasts import notify_reassignments
from event_bot.services.events import get_event
from event_bot.services.registrations import (
    deactivate_registrant,
    list_registrations_by_telegram_id,
    update_registrant,
)
from event_bot.utils.time import format_datetime
from event_bot.utils.transport import VEHICLE_TYPES, transport_label

router = Router()
router.message.filter(F.chat.type == "private")


class ChangeTransportState(StatesGroup):
    waiting_for_type = State()
    waiting_for_model = State()


async def _own_registrant(session: AsyncSession, registrant_id: int, telegram_id: int) -> Registrant | None:
    registrant = await session.get(Registrant, registrant_id)
    if not registrant or registrant.telegram_id != str(telegram_id):
        return None
    return registrant


@router.message(Command("my"))
async def cmd_my(message: Message, session: AsyncSession, state: FSMContext):
    await state.clear()
    registrations = [
        r for r in await list_registrations_by_telegram_id(session, str(message.from_user.id))  # type: ignore[union-attr]
        if r.is_active
    ]
    if not registrations:
        await message.answer("У вас нет активных регистраций. Нажмите /start, чтобы записаться.")
        return
    for r in registrations:
        event = await get_event(session, r.event_id)
        await message.answer(
            f"📅 <b>{escape(event.name)}</b> ({format_datetime(event.starts_at)})\n"
            f"Номер: <b>{r.participant_number}</b>\n"
            f"Транспорт: {escape(transport_label(r.transport_type, r.transport_model))}",
            reply_markup=my_registration_kb(r),
        )


@router.callback_query(F.data.startswith("my:transport:"))
async def change_transport_start(call: CallbackQuery, session: AsyncSession, state: FSMContext):
    await call.answer()
    registrant = await _own_registrant(session, int(call.data.split(":")[2]), call.from_user.id)  # type: ignore[union-attr]
    if not registrant or not registrant.is_active:
        await call.message.answer("Регистрация не найдена.")  # type: ignore[union-attr]
        return
    event = await get_event(session, registrant.event_id)
    await state.set_state(ChangeTransportState.waiting_for_type)
    await state.update_data(registrant_id=registrant.id)
    await call.message.answer(  # type: ignore[union-attr]
        "Выберите новый тип транспорта:",
        reply_markup=transport_kb(event.allowed_transport_types or [], prefix="my:set_transport"),
    )


@router.callback_query(ChangeTransportState.waiting_for_type, F.data.startswith("my:set_transport:"))
async def change_transport_type(call: CallbackQuery, session: AsyncSession, state: FSMContext, bot: Bot):
    await call.answer()
    await call.message.edit_reply_markup(reply_markup=None)  # type: ignore[union-attr]
    transport_type = call.data.split(":")[2]  # type: ignore[union-attr]
    if transport_type in VEHICLE_TYPES:
        await state.update_data(transport_type=transport_type)
        await call.message.answer("Какая у вас модель?")  # type: ignore[union-attr]
        await state.set_state(ChangeTransportState.waiting_for_model)
        return
    await _save_transport(call.message, session, state, bot, transport_type, None)  # type: ignore[arg-type]


@router.message(ChangeTransportState.waiting_for_model)
async def change_transport_model(message: Message, session: AsyncSession, state: FSMContext, bot: Bot):
    model = (message.text or "").strip()
    if not model:
        await message.answer("Пожалуйста, укажите модель текстом.")
        return
    data = await state.get_data()
    await _save_transport(message, session, state, bot, data["transport_type"], model)


async def _save_transport(
    message: Message,
    session: AsyncSession,
    state: FSMContext,
    bot: Bot,
    transport_type: str,
    model: str | None,
):
    data = await state.get_data()
    await state.clear()
    try:
        outcome = await update_registrant(
            session,
            data["registrant_id"],
            {"transport_type": transport_type, "transport_model": model},
        )
    except (NumberingError, ValueError) as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        return
    registrant = outcome.registrant
    await message.answer(
        f"✅ Транспорт изменён: {escape(transport_label(registrant.transport_type, registrant.transport_model))}"
    )
    if outcome.evictions:
        await notify_reassignments(bot, session, outcome.evictions)


@router.callback_query(F.data.startswith("my:leave:"))
async def leave_ask(call: CallbackQuery, session: AsyncSession):
    await call.answer()
    registrant = await _own_registrant(session, int(call.data.split(":")[2]), call.from_user.id)  # type: ignore[union-attr]
    if not registrant or not registrant.is_active:
        await call.message.answer("Регистрация не найдена.")  # type: ignore[union-attr]
        return
    await call.message.answer(  # type: ignore[union-attr]
        "Точно отказаться от участия? Ваш номер освободится.",
        reply_markup=confirm_leave_kb(registrant.id),  # type: ignore[arg-type]
    )


@router.callback_query(F.data.startswith("my:leave_ok:"))
async def leave_confirm(call: CallbackQuery, session: AsyncSession):
    await call.answer()
    registrant = await _own_registrant(session, int(call.data.split(":")[2]), call.from_user.id)  # type: ignore[union-attr]
    if not registrant or not registrant.is_active:
        await call.message.edit_text("Регистрация не найдена.")  # type: ignore[union-attr]
        return
    await deactivate_registrant(session, registrant.id)  # type: ignore[arg-type]
    await call.message.edit_text("Вы отказались от участия. Чтобы зарегистрироваться снова, нажмите /start.")  # type: ignore[union-attr]


@router.callback_query(F.data == "my:leave_cancel")
async def leave_cancel(call: CallbackQuery):
    await call.answer("Отменено")
    await call.message.edit_text("Вы остаётесь участником 👍")  # type: ignore[union-attr]
