"""Result types for stages whose failures are tolerated."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ReservationOutcome(str, enum.Enum):
    ADDED = 'added'
    EXISTS = 'exists'
    FAILED_IGNORED = 'failed_ignored'


@dataclass(frozen=True)
class ReservationResult:
    outcome: ReservationOutcome
    mac: str
    ip: str
    detail: str = ''

    @property
    def ok(self) -> bool:
        return self.outcome is not ReservationOutcome.FAILED_IGNORED

    def as_dict(self) -> dict[str, str]:
        return {
            'outcome': self.outcome.value,
            'mac': self.mac,
            'ip': self.ip,
            'detail': self.detail,
        }
