"""Validation rules for import data."""


def _check_number(row: dict, key: str, row_num: int, errors: list,
                  integer: bool = False):
    value = str(row.get(key, "") or "").strip()
    if value == "":
        return
    kind = "an integer" if integer else "a number"
    try:
        number = float(value)
        if integer and not number.is_integer():
            raise ValueError(value)
    except (ValueError, TypeError):
        errors.append(f"Row {row_num}: {key} must be {kind}")
        return
    if number < 0:
        errors.append(f"Row {row_num}: {key} cannot be negative")


def validate_part_row(row: dict, row_num: int) -> list[str]:
    """Validate a single row of part import data. Returns list of error strings."""
    errors = []

    name = str(row.get("name", "") or "").strip()
    if not name:
        errors.append(f"Row {row_num}: name is required")

    pn = str(row.get("part_number", "") or "").strip()
    if len(pn) > 50:
        errors.append(f"Row {row_num}: part_number exceeds 50 chars")

    _check_number(row, "price", row_num, errors)
    _check_number(row, "quantity", row_num, errors)
    _check_number(row, "reorder_level", row_num, errors, integer=True)

    return errors
