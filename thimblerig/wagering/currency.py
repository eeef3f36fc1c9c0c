from __future__ import annotations

import math

# ISO 4217 numeric -> alphabetic codes for the currencies providers commonly send as numbers.
NUMERIC_CURRENCY_CODES: dict[int, str] = {
    36: "AUD",
    124: "CAD",
    156: "CNY",
    356: "INR",
    392: "JPY",
    643: "RUB",
    756: "CHF",
    826: "GBP",
    840: "USD",
    949: "TRY",
    978: "EUR",
    986: "BRL",
}


def currency_name(code: int) -> str:
    return NUMERIC_CURRENCY_CODES.get(code, str(code))


def normalize_currency_code(value: object) -> str | None:
    """Normalize a currency identifier coming from an identity provider.

    - None / blank strings -> None (caller keeps its current currency).
    - ints and all-digit strings are treated as ISO 4217 numeric codes.
    - any other string is returned trimmed, as-is.
    """

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return currency_name(value)

    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return currency_name(int(value))
        return None

    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        if trimmed.isdigit():
            return currency_name(int(trimmed))
        return trimmed

    return None
