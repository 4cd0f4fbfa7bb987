from __future__ import annotations
import math
import random
import string
import time
import uuid
from typing import Any, Optional


def gen_id() -> str:
    return str(uuid.uuid4())


def temp_id(prefix: str) -> str:
    """Identifiant de ligne côté UI (jamais persisté)."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"temp-{prefix}-{int(time.time() * 1000)}-{suffix}"


def to_number(value: Any) -> Optional[float]:
    """Nombre fini ou None ("12,5" -> 12.5 ; "", None, "abc", NaN -> None)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        v = float(value)
    else:
        s = str(value).strip()
        for sep in (" ", "\xa0", "\u202f"):
            s = s.replace(sep, "")
        s = s.replace(",", ".")
        if not s:
            return None
        try:
            v = float(s)
        except ValueError:
            return None
    return v if math.isfinite(v) else None


def num_or_zero(value: Any) -> float:
    v = to_number(value)
    return 0.0 if v is None else v


def text_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
