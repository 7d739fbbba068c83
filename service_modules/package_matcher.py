"""
Package matcher - picks the package credit that pays for a session booking.
"""
from typing import Iterable, Optional

from models import PackageCredit, SessionSlot


def match_package_credit(credits: Iterable[PackageCredit], session: SessionSlot) -> Optional[PackageCredit]:
    """
    Return the first credit whose type equals the session's required type and
    that still has sessions remaining. Input order is the only tie-break.

    None means the member may not book this session.
    """
    for credit in credits:
        if credit.type == session.type and credit.remaining > 0:
            return credit
    return None


def can_book(credits: Iterable[PackageCredit], session: SessionSlot) -> bool:
    """True when the member holds a usable credit and the session has a free spot."""
    if session.status != "scheduled" or session.current_bookings >= session.max_capacity:
        return False
    return match_package_credit(credits, session) is not None
