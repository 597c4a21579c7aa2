from event_bot.models.event import TRANSPORT_TYPES

TRANSPORT_LABELS: dict[str, str] = {
    "monowheel": "Моноколесо",
    "scooter": "Самокат",
    "eboard": "Электро-борд",
    "spectator": "Зритель",
}

TRANSPORT_EMOJI: dict[str, str] = {
    "monowheel": "🛞",
    "scooter": "🛴",
    "eboard": "🛹",
    "spectator": "👀",
}

# Types that need a model name ("какая модель?")
VEHICLE_TYPES: frozenset[str] = frozenset({"monowheel", "scooter", "eboard"})

_ALIASES: dict[str, str] = {
    "моноколесо": "monowheel",
    "самокат": "scooter",
    "электро-борд": "eboard",
    "электроборд": "eboard",
    "e-board": "eboard",
    "зритель": "spectator",
}


def normalize_transport_type(raw: str | None) -> str | None:
    """Return the canonical transport type for *raw* or ``None`` if it is unknown.

    Matching is case-insensitive and accepts Russian labels.
    """
    if not raw:
        return None
    cleaned = " ".join(raw.lower().split())
    if cleaned in TRANSPORT_TYPES:
        return cleaned
    return _ALIASES.get(cleaned)


def transport_label(transport_type: str, model: str | None = None) -> str:
    label = TRANSPORT_LABELS.get(transport_type, transport_type)
    return f"{label} ({model})" if model else label
