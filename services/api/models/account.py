from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Account:
    """An authenticated account as issued by the external identity provider."""
    account_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
