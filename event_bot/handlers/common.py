from html import escape

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, KeyboardButton, Message, ReplyKeyboardMarkup, ReplyKeyboardRemove
from sqlalchemy.ext.asyncio import AsyncSession

from event_bot.errors import NumberingError
from event_bot.keyboards import events_kb, my_registration_kb, reuse_profile_kb, transport_kb
from event_bot.services.broadcasts import notify_reassignments
from event_bot.services.events import get_active_events, get_event
from event_bot.services.registrations import (
    get_registration,
    list_registrations_by_telegram_id,
    register_participant,
)
from event_bot.utils.phone import normalize_phone
from event_bot.utils.time import format_datetime
from event_bot.utils.transport import VEHICLE_TYPES

router = Router()
router.message.filter(F.chat.type == "private")


class RegistrationState(StatesGroup):
    waiting_for_reuse = State()
    waiting_for_full_name = State()
    waiting_for_phone = State()
    waiting_for_transport = State()
    waiting_for_model = State()


contact_kb = ReplyKeyboardMarkup(
    keyboard=[[KeyboardButton(text="📱 Поделиться контактом", request_contact=True)]],
    resize_keyboard=True,
    one_time_keyboard=True,
)


@router.message(Command("start"))
async def cmd_start(message: Message, session: AsyncSession, state: FSMContext):
    await state.clear()
    events = await get_active_events(session)
    if not events:
        await message.answer("Сейчас нет активных мероприятий для регистрации. Загляните позже!")
        return
    await message.answer(
        "Привет! Я помогу зарегистрироваться на покатушку.\n\nВыберите мероприятие:",
        reply_markup=events_kb(events),
    )


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(
        "<b>Что умеет бот:</b>\n"
        "• /start - регистрация на мероприятие\n"
        "• /my - мои регистрации, смена транспорта и отказ от участия\n\n"
        "Номер участника выдаётся автоматически после регистрации."
    )


@router.callback_query(F.data.startswith("reg:event:"))
async def pick_event(call: CallbackQuery, session: AsyncSession, state: FSMContext):
    await call.answer()
    event_id = int(call.data.split(":")[2])  # type: ignore[union-attr]
    try:
        event = await get_event(session, event_id)
    except NumberingError as exc:
        await call.message.answer(str(exc))  # type: ignore[union-attr]
        return
    if not event.is_active:
        await call.message.answer("Регистрация на это мероприятие закрыта.")  # type: ignore[union-attr]
        return

    telegram_id = str(call.from_user.id)
    existing = await get_registration(session, telegram_id, event_id)
    if existing and existing.is_active:
        await state.clear()
        await call.message.answer(  # type: ignore[union-attr]
            f"Вы уже зарегистрированы на «{escape(event.name)}». Ваш номер: <b>{existing.participant_number}</b>",
            reply_markup=my_registration_kb(existing),
        )
        return

    await state.update_data(event_id=event_id)
    info = f"📅 <b>{escape(event.name)}</b>\n📍 {escape(event.location)}\n🕐 {format_datetime(event.starts_at)}"
    if event.description:
        info += f"\n\n{escape(event.description)}"
    await call.message.answer(info, disable_web_page_preview=event.disable_link_previews)  # type: ignore[union-attr]

    previous = await list_registrations_by_telegram_id(session, telegram_id)
    if previous:
        last = previous[-1]
        await state.update_data(full_name=last.full_name, phone=last.phone)
        await call.message.answer(  # type: ignore[union-attr]
            f"Использовать данные из прошлой регистрации?\n\nФИО: {escape(last.full_name)}\nТелефон: {last.phone}",
            reply_markup=reuse_profile_kb,
        )
        await state.set_state(RegistrationState.waiting_for_reuse)
        return

    await call.message.answer("Введите ваше ФИО:", reply_markup=ReplyKeyboardRemove())  # type: ignore[union-attr]
    await state.set_state(RegistrationState.waiting_for_full_name)


@router.callback_query(RegistrationState.waiting_for_reuse, F.data.startswith("reg:reuse:"))
async def reuse_profile(call: CallbackQuery, session: AsyncSession, state: FSMContext):
    await call.answer()
    await call.message.edit_reply_markup(reply_markup=None)  # type: ignore[union-attr]
    if call.data == "reg:reuse:yes":
        await _ask_transport(call.message, session, state)  # type: ignore[arg-type]
        return
    await call.message.answer("Введите ваше ФИО:")  # type: ignore[union-attr]
    await state.set_state(RegistrationState.waiting_for_full_name)


@router.message(RegistrationState.waiting_for_full_name)
async def process_full_name(message: Message, state: FSMContext):
    full_name = " ".join((message.text or "").split())
    if len(full_name) < 2:
        await message.answer("ФИО должно содержать минимум 2 символа. Попробуйте ещё раз.")
        return
    await state.update_data(full_name=full_name)
    await message.answer(
        "Отправьте номер телефона в формате +7 (XXX) XXX-XX-XX или поделитесь контактом:",
        reply_markup=contact_kb,
    )
    await state.set_state(RegistrationState.waiting_for_phone)


@router.message(RegistrationState.waiting_for_phone)
async def process_phone(message: Message, session: AsyncSession, state: FSMContext):
    raw_phone = message.contact.phone_number if message.contact else (message.text or "")
    phone = normalize_phone(raw_phone)
    if phone is None:
        await message.answer("Неверный формат телефона. Используйте: +7 (XXX) XXX-XX-XX")
        return
    await state.update_data(phone=phone)
    await message.answer(f"Телефон: {phone}", reply_markup=ReplyKeyboardRemove())
    await _ask_transport(message, session, state)


async def _ask_transport(message: Message, session: AsyncSession, state: FSMContext):
    data = await state.get_data()
    event = await get_event(session, data["event_id"])
    await message.answer(
        "Выберите тип транспорта:",
        reply_markup=transport_kb(event.allowed_transport_types or []),
    )
    await state.set_state(RegistrationState.waiting_for_transport)


@router.callback_query(RegistrationState.waiting_for_transport, F.data.startswith("reg:transport:"))
async def process_transport(call: CallbackQuery, session: AsyncSession, state: FSMContext, bot: Bot):
    await call.answer()
    transport_type = call.data.split(":")[2]  # type: ignore[union-attr]
    await call.message.edit_reply_markup(reply_markup=None)  # type: ignore[union-attr]
    await state.update_data(transport_type=transport_type)
    if transport_type in VEHICLE_TYPES:
        await call.message.answer("Какая у вас модель?")  # type: ignore[union-attr]
        await state.set_state(RegistrationState.waiting_for_model)
        return
    await _finish_registration(call.message, call.from_user.id, call.from_user.username, session, state, bot)  # type: ignore[arg-type]


@router.message(RegistrationState.waiting_for_model)
async def process_model(message: Message, session: AsyncSession, state: FSMContext, bot: Bot):
    model = (message.text or "").strip()
    if not model:
        await message.answer("Пожалуйста, укажите модель текстом.")
        return
    await state.update_data(transport_model=model)
    await _finish_registration(message, message.from_user.id, message.from_user.username, session, state, bot)  # type: ignore[union-attr]


async def _finish_registration(
    message: Message,
    telegram_id: int,
    username: str | None,
    session: AsyncSession,
    state: FSMContext,
    bot: Bot,
):
    data = await state.get_data()
    try:
        outcome = await register_participant(
            session,
            event_id=data["event_id"],
            telegram_id=str(telegram_id),
            full_name=data["full_name"],
            phone=data["phone"],
            transport_type=data["transport_type"],
            transport_model=data.get("transport_model"),
            telegram_nickname=username,
        )
    except (NumberingError, ValueError) as exc:
        await message.answer(f"❌ {escape(str(exc))}")
        await state.clear()
        return

    await state.clear()
    registrant = outcome.registrant
    await message.answer(
        f"✅ Регистрация завершена!\n\nВаш номер участника: <b>{registrant.participant_number}</b>",
        reply_markup=my_registration_kb(registrant),
    )
    if outcome.evictions:
        await notify_reassignments(bot, session, outcome.evictions)
