import re

_DIGITS_RE = re.compile(r"\D")


def normalize_phone(raw: str) -> str | None:
    """Приводим номер к виду +7 (XXX) XXX-XX-XX.

    Допустимы +7XXXXXXXXXX, 8XXXXXXXXXX и уже отформатированный ввод.
    Возвращает ``None``, если номер не похож на российский мобильный.
    """
    if not raw:
        return None
    digits = _DIGITS_RE.sub("", raw)
    if len(digits) != 11 or digits[0] not in "78":
        return None
    if digits[0] == "8" and raw.strip().startswith("+"):
        return None
    d = "7" + digits[1:]
    return f"+7 ({d[1:4]}) {d[4:7]}-{d[7:9]}-{d[9:11]}"
