"""Errors raised by the participant-number services.

Every error carries the data the admin UI needs to show the operator what
went wrong (the conflicting owner, the exhausted event and so on).
Plain input validation problems are reported with ``ValueError``.
"""


class NumberingError(Exception):
    """Base class for allocation and registry failures."""

    def details(self) -> dict:
        return {}


class AllocationExhausted(NumberingError):
    def __init__(self, event_id: int, max_number: int):
        self.event_id = event_id
        self.max_number = max_number
        super().__init__(f"Все номера участников заняты (1–{max_number}) для мероприятия {event_id}.")

    def details(self) -> dict:
        return {"eventId": self.event_id, "maxNumber": self.max_number}


class DuplicateIdentifier(NumberingError):
    def __init__(self, nickname: str, existing_number: int):
        self.nickname = nickname
        self.existing_number = existing_number
        super().__init__(
            f"У пользователя @{nickname} уже есть постоянный номер {existing_number}. "
            "Один пользователь может иметь только один постоянный номер."
        )

    def details(self) -> dict:
        return {"existingNumber": self.existing_number}


class DuplicateNumber(NumberingError):
    def __init__(self, number: int, owner_nickname: str):
        self.number = number
        self.owner_nickname = owner_nickname
        super().__init__(
            f"Номер {number} уже закреплён за пользователем @{owner_nickname}. "
            "Выберите другой номер или удалите существующую привязку."
        )

    def details(self) -> dict:
        return {"conflictWith": self.owner_nickname}


class NotFound(NumberingError):
    _LABELS = {
        "event": "Мероприятие",
        "registrant": "Участник",
        "binding": "Привязка номера",
        "chat": "Чат",
    }

    def __init__(self, entity: str, key, message: str | None = None):
        self.entity = entity
        self.key = key
        label = self._LABELS.get(entity, entity)
        super().__init__(message or f"{label} не найден(о): {key}")


class AlreadyRegistered(NumberingError):
    def __init__(self, telegram_id: str, event_id: int):
        self.telegram_id = telegram_id
        self.event_id = event_id
        super().__init__("Вы уже зарегистрированы на это мероприятие.")


class DuplicateChat(NumberingError):
    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        super().__init__(f"Чат {chat_id} уже добавлен.")

    def details(self) -> dict:
        return {"chatId": self.chat_id}
