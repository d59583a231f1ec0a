"""Decide whether a member belongs on the device and for which window.

Pure functions only: callers pass ``now`` and the site timezone so the
decision is reproducible in tests and identical across reconciliation passes.
"""

from datetime import datetime, timedelta, tzinfo

from libs.common.datetime_utils import end_of_day, to_site_time
from services.bridge_service.models import AccessDecision, Member

# Open-ended memberships get a rolling one-year window.
OPEN_ENDED_WINDOW = timedelta(days=365)
ONE_DAY = timedelta(hours=24)


def has_access(member: Member, now: datetime, tz: tzinfo) -> bool:
    """True unless the member is blocked, inactive, or past their validity day."""
    if member.blocked or not member.active:
        return False
    if member.validity is not None:
        if end_of_day(member.validity, tz) < to_site_time(now, tz):
            return False
    return True


def resolve(member: Member, now: datetime, tz: tzinfo) -> AccessDecision:
    """Compute the AccessDecision for ``member`` at ``now``."""
    now = to_site_time(now, tz)
    present = has_access(member, now, tz)

    if not present:
        # End of yesterday forces the device to treat the user as expired.
        end_time = end_of_day(now.date() - timedelta(days=1), tz)
        begin_time = end_time - ONE_DAY
    elif member.validity is not None:
        end_time = end_of_day(member.validity, tz)
        begin_time = now
    else:
        end_time = now + OPEN_ENDED_WINDOW
        begin_time = now

    # The device rejects windows that begin after they end.
    if begin_time > end_time:
        begin_time = end_time - ONE_DAY

    return AccessDecision(present=present, begin_time=begin_time, end_time=end_time)
