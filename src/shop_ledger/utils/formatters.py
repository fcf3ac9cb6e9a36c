"""Formatting utilities for display values."""


def format_currency(value: float) -> str:
    """Format a float as USD currency."""
    return f"${value:,.2f}"


def format_quantity(value: float, reorder_level: int = 0) -> str:
    """Format quantity, flagging stock below the reorder level."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if reorder_level > 0 and value < reorder_level:
        return f"{value} (LOW)"
    return str(value)


def short_id(value) -> str:
    """First eight characters of an id, as shown on receipts."""
    return str(value)[:8] if value is not None else ""
