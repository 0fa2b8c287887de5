"""
API throttling classes.
"""

from rest_framework.throttling import UserRateThrottle


class AuditThrottle(UserRateThrottle):
    """
    Throttle for read-only audit endpoints.

    Rate: 600 requests per hour per user.
    Applied to: /api/v1/crawl/errors/, /api/v1/crawl/fetch-logs/, /api/v1/crawl/stats/
    """

    rate = '600/hour'
    scope = 'audit'


class GroupOverrideThrottle(UserRateThrottle):
    """
    Throttle for manual dedup overrides.

    Rate: 60 requests per hour per user.
    Applied to: /api/v1/groups/<group_id>/split/
    """

    rate = '60/hour'
    scope = 'group_override'
