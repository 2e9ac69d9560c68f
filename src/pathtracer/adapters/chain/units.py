from decimal import Decimal
from typing import Any

WEI_PER_NATIVE = Decimal("1000000000000000000")
WEI_PER_GWEI = Decimal("1000000000")


def decimal_str(x: Decimal) -> str:
    # plain notation, no trailing zeros ("10", "0.5")
    if x == 0:
        return "0"
    return format(x.normalize(), "f")


def hex_to_int(v: Any, default: int = 0) -> int:
    if v is None or v == "":
        return default
    try:
        return int(str(v), 16)
    except ValueError:
        return default


def dec_to_int(v: Any, default: int = 0) -> int:
    try:
        return int(str(v))
    except (TypeError, ValueError):
        return default


def wei_to_native(wei: int) -> str:
    return decimal_str(Decimal(wei) / WEI_PER_NATIVE)


def wei_to_gwei(wei: int) -> str:
    return decimal_str(Decimal(wei) / WEI_PER_GWEI)
