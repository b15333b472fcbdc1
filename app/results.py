"""Outcome object returned by every account workflow."""
from dataclasses import dataclass
from typing import Any, Optional

from .errors import AccountError


@dataclass
class Result:
    """Either a value (``ok``) or a classified :class:`AccountError`.

    ``state`` is only set by workflows that expose a state machine (the
    email change coordinator records its terminal state there).
    """

    ok: bool
    value: Any = None
    error: Optional[AccountError] = None
    state: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None, state: Optional[str] = None) -> 'Result':
        return cls(ok=True, value=value, state=state)

    @classmethod
    def failure(cls, error: AccountError, state: Optional[str] = None) -> 'Result':
        return cls(ok=False, error=error, state=state)

    @property
    def kind(self) -> Optional[str]:
        """The error kind, or ``None`` on success."""
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None
