"""Phone number canonicalization."""

import re

_E164_RE = re.compile(r"^\+\d{8,15}$")
_DOMESTIC_RE = re.compile(r"^\d{10}$")
_STRIP_RE = re.compile(r"[^\d+]")


def normalize_phone(raw: object, default_country_code: str = "91") -> str | None:
    """
    Canonicalize free-form phone input to ``+<digits>``.

    Keeps digits and a single leading ``+`` (handles fancy hyphens and spaces
    pasted from phones), turns a ``00`` international prefix into ``+`` and
    treats a bare 10-digit number as a domestic mobile in
    ``default_country_code``. Returns None when the result is not 8 to 15
    digits after the ``+``.
    """
    if not isinstance(raw, str):
        return None

    value = raw.strip()
    has_plus = "+" in value
    value = _STRIP_RE.sub("", value)

    if has_plus:
        value = "+" + value.replace("+", "")
    elif value.startswith("00"):
        value = "+" + value[2:]
    elif _DOMESTIC_RE.match(value):
        value = f"+{default_country_code}{value}"

    if not _E164_RE.match(value):
        return None
    return value


def mask_phone(phone: str | None) -> str:
    """Shorten a phone number for log output."""
    if not phone:
        return "-"
    return f"{phone[:6]}***"
