# competitor_prices/services/price_parser.py

"""Turn raw scraped price text into a decimal amount."""

import re
from decimal import Decimal, InvalidOperation

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


class PriceParseError(ValueError):
    """Raised when scraped text cannot be read as a price."""


def parse_price_value(raw: str | None) -> Decimal:
    """Parse text such as ``"S$1,428.90"`` into ``Decimal("1428.90")``.

    Every character other than digits and ``.`` is stripped first. Text
    that leaves nothing parsable raises :class:`PriceParseError` rather
    than coming back as zero, so garbage never overwrites a good price.
    """
    if not raw:
        raise PriceParseError("empty price text")
    numeric = _NON_NUMERIC_RE.sub("", raw)
    if not numeric or numeric == ".":
        raise PriceParseError(f"no digits in {raw!r}")
    try:
        value = Decimal(numeric)
    except InvalidOperation as exc:
        raise PriceParseError(
            f"cannot parse {raw!r} as a price"
        ) from exc
    if not value.is_finite() or value < 0:
        raise PriceParseError(f"price out of range: {raw!r}")
    return value
