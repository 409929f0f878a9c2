from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict


def json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def serialize_row(row: Dict[str, Any] | None, *, hide: tuple = ()) -> Dict[str, Any] | None:
    if row is None:
        return None
    return {k: json_safe(v) for k, v in row.items() if k not in hide}
