"""
REST API endpoints for crawl auditing and dedup overrides.

This module provides endpoints for:
- Listing terminal crawl errors per domain
- Browsing the fetch log
- Queue statistics per status and domain
- Manually splitting a listing out of its dedup group

All endpoints require authentication and have rate limiting.
"""

import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db.models import Count
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from ingestion.api.throttling import AuditThrottle, GroupOverrideThrottle
from ingestion.exceptions import GroupMembershipError
from ingestion.models import CanonicalListing, CrawlJob, DedupGroup, FetchLog
from ingestion.queue import crawl_queue
from ingestion.services.dedup_resolver import split_from_group

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def _parse_limit(request) -> int:
    try:
        limit = int(request.query_params.get('limit', DEFAULT_LIMIT))
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(limit, MAX_LIMIT))


def _iso(value):
    return value.isoformat() if value else None


# ============================================================
# Crawl Audit Endpoints
# ============================================================

@extend_schema(
    tags=['Crawl'],
    summary='List terminal crawl errors',
    description='Jobs that reached the terminal error state, newest first.',
    parameters=[
        OpenApiParameter('domain', OpenApiTypes.STR, description='Filter by domain'),
        OpenApiParameter('limit', OpenApiTypes.INT, description=f'Max rows (default {DEFAULT_LIMIT})'),
    ],
    responses={200: {'description': 'Terminal errors'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([AuditThrottle])
def crawl_errors(request):
    """
    Terminal crawl errors.

    Jobs in ``error`` state are never retried automatically; this is the
    list operators work through.
    """
    domain = request.query_params.get('domain') or None
    jobs = crawl_queue.terminal_errors(domain)[:_parse_limit(request)]

    return Response({
        'count': len(jobs),
        'errors': [
            {
                'job_id': str(job.id),
                'url': job.url,
                'domain': job.domain,
                'kind': job.kind,
                'tries': job.tries,
                'last_error': job.last_error,
                'updated_at': _iso(job.updated_at),
            }
            for job in jobs
        ],
    })


@extend_schema(
    tags=['Crawl'],
    summary='List fetch log entries',
    parameters=[
        OpenApiParameter('domain', OpenApiTypes.STR, description='Filter by domain'),
        OpenApiParameter('status_code', OpenApiTypes.INT, description='Filter by HTTP status'),
        OpenApiParameter('limit', OpenApiTypes.INT, description=f'Max rows (default {DEFAULT_LIMIT})'),
    ],
    responses={200: {'description': 'Fetch log entries, newest first'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([AuditThrottle])
def fetch_logs(request):
    """Fetch log entries, newest first."""
    logs = FetchLog.objects.order_by('-fetched_at')

    domain = request.query_params.get('domain')
    if domain:
        logs = logs.filter(domain=domain)

    status_code = request.query_params.get('status_code')
    if status_code:
        try:
            logs = logs.filter(status_code=int(status_code))
        except ValueError:
            return Response(
                {'error': 'status_code must be an integer'},
                status=status.HTTP_400_BAD_REQUEST
            )

    logs = logs[:_parse_limit(request)]

    return Response({
        'count': len(logs),
        'logs': [
            {
                'url': log.url,
                'domain': log.domain,
                'status_code': log.status_code,
                'byte_size': log.byte_size,
                'etag': log.etag,
                'last_modified': log.last_modified,
                'error': log.error,
                'fetched_at': _iso(log.fetched_at),
            }
            for log in logs
        ],
    })


@extend_schema(
    tags=['Crawl'],
    summary='Crawl queue statistics',
    description='Job counts per status, overall and per domain, plus 24h fetch volume.',
    responses={200: {'description': 'Queue statistics'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([AuditThrottle])
def crawl_stats(request):
    """Job counts per status and per domain."""
    by_status = {
        row['status']: row['total']
        for row in CrawlJob.objects.values('status').annotate(total=Count('id'))
    }

    domains = {}
    for row in CrawlJob.objects.values('domain', 'status').annotate(total=Count('id')):
        domains.setdefault(row['domain'], {})[row['status']] = row['total']

    since = timezone.now() - timedelta(hours=24)
    fetches_24h = FetchLog.objects.filter(fetched_at__gte=since).count()

    return Response({
        'by_status': by_status,
        'by_domain': domains,
        'fetches_24h': fetches_24h,
        'listings': CanonicalListing.objects.count(),
        'groups': DedupGroup.objects.count(),
    })


# ============================================================
# Dedup Override Endpoints
# ============================================================

@extend_schema(
    tags=['Dedup'],
    summary='Split a listing out of a dedup group',
    description='''
    Moves the listing into a new singleton group and pins it there, so later
    automatic resolution passes leave it alone.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'listing_id': {'type': 'string', 'format': 'uuid'},
            },
            'required': ['listing_id'],
        }
    },
    responses={
        200: {'description': 'Listing moved to a new group'},
        400: {'description': 'Missing listing_id or listing not in group'},
        404: {'description': 'Group or listing not found'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([GroupOverrideThrottle])
def split_group_member(request, group_id):
    """
    Split a listing out of a dedup group.

    Request body:
    {
        "listing_id": "<uuid>"
    }
    """
    listing_id = request.data.get('listing_id')
    if not listing_id:
        return Response(
            {'error': 'listing_id is required'},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        group = DedupGroup.objects.get(pk=group_id)
    except DedupGroup.DoesNotExist:
        return Response(
            {'error': 'Group not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    try:
        listing = CanonicalListing.objects.get(pk=listing_id)
    except (CanonicalListing.DoesNotExist, ValidationError):
        return Response(
            {'error': 'Listing not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    try:
        new_group = split_from_group(listing, group)
    except GroupMembershipError as e:
        return Response(
            {'error': str(e)},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.info(f"User {request.user} split listing {listing.id} from group {group.id}")

    return Response({
        'success': True,
        'listing_id': str(listing.id),
        'from_group': str(group.id),
        'group_id': str(new_group.id),
    })
