"""
Status derivation.

Reduces a DrugRecord plus the current date to the trust label shown to a
scanner and the set of alert flags behind it. Pure: no I/O, no clock reads,
no randomness, never raises for a validated record.

Label precedence: Recalled > Expired > Counterfeit > Authentic. A batch that
is both recalled and expired is shown as Recalled.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from registry.domain.model import DrugRecord, DrugStatus

DEFAULT_THRESHOLD_DAYS = 90

RecallPredicate = Callable[[str], bool]


class EffectiveStatus(Enum):
    RECALLED = "Recalled"
    EXPIRED = "Expired"
    COUNTERFEIT = "Counterfeit"
    UNKNOWN = "Unknown"
    AUTHENTIC = "Authentic"


@dataclass(frozen=True)
class StatusReport:
    effective_status: EffectiveStatus
    is_recalled: bool
    is_expired: bool
    is_expiring_soon: bool
    is_counterfeit_suspected: bool

    @property
    def alerts(self) -> List[str]:
        """Names of the raised alert flags, most urgent first."""
        flags = [
            ("recalled", self.is_recalled),
            ("expired", self.is_expired),
            ("counterfeit_suspected", self.is_counterfeit_suspected),
            ("expiring_soon", self.is_expiring_soon),
        ]
        return [name for name, raised in flags if raised]


def code_marker_predicate(marker: str) -> RecallPredicate:
    """
    Legacy rule: a code containing ``marker`` (case-insensitive) is treated as recalled.

    Only kept so codes printed under the old convention keep alerting until
    their batches get an explicit Recalled status.
    """
    needle = marker.upper()

    def is_marked(code: str) -> bool:
        return needle in code.upper()

    return is_marked


def is_expired(expiry_date: date, today: date) -> bool:
    # expiry day itself counts as expired
    return expiry_date <= today


def is_expiring_soon(expiry_date: date, today: date, threshold_days: int = DEFAULT_THRESHOLD_DAYS) -> bool:
    horizon = today + timedelta(days=max(threshold_days, 0))
    return today < expiry_date <= horizon


def derive_status(
    record: DrugRecord,
    today: date,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
    recall_predicate: Optional[RecallPredicate] = None,
) -> StatusReport:
    """Derive the effective status and alert flags of ``record`` as of ``today``."""
    if isinstance(today, datetime):
        today = today.date()

    recalled = record.status == DrugStatus.RECALLED or bool(
        recall_predicate is not None and recall_predicate(record.code)
    )
    expired = is_expired(record.expiry_date, today)
    expiring_soon = is_expiring_soon(record.expiry_date, today, threshold_days)
    counterfeit = record.status == DrugStatus.COUNTERFEIT

    if recalled:
        label = EffectiveStatus.RECALLED
    elif expired:
        label = EffectiveStatus.EXPIRED
    elif counterfeit:
        label = EffectiveStatus.COUNTERFEIT
    elif record.status == DrugStatus.UNKNOWN:
        label = EffectiveStatus.UNKNOWN
    else:
        label = EffectiveStatus.AUTHENTIC

    return StatusReport(
        effective_status=label,
        is_recalled=recalled,
        is_expired=expired,
        is_expiring_soon=expiring_soon,
        is_counterfeit_suspected=counterfeit,
    )
