"""
Tagged outcome of a check-then-act admission decision.

Both the upload quota check and the premium capacity check return one of
these instead of a bare boolean, so callers see why a request was refused and
against which numbers (`used` out of `limit`).
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Admitted:
    used: int = 0
    limit: int = 0

    @property
    def admitted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: str
    used: int = 0
    limit: int = 0

    @property
    def admitted(self) -> bool:
        return False


Admission = Union[Admitted, Rejected]
