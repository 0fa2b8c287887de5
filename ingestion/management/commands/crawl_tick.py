"""
Management command to run crawl batches from the shell.

Usage:
    python manage.py crawl_tick
    python manage.py crawl_tick --batch-size=5
    python manage.py crawl_tick --loops=10 --release-stale
"""

import logging

from django.core.management.base import BaseCommand

from ingestion.queue import crawl_queue
from ingestion.services.scheduler import CrawlScheduler

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Claim and process crawl batches outside Celery."""

    help = 'Claim and process one or more batches of crawl jobs'

    def add_arguments(self, parser):
        parser.add_argument(
            '--batch-size',
            type=int,
            default=None,
            help='Jobs per batch (default: INGESTION_BATCH_SIZE)',
        )
        parser.add_argument(
            '--loops',
            type=int,
            default=1,
            help='Number of batches to run; stops early when the queue is empty (default: 1)',
        )
        parser.add_argument(
            '--release-stale',
            action='store_true',
            help='Return abandoned fetching jobs to the queue first',
        )
        parser.add_argument(
            '--no-resolve',
            action='store_true',
            help='Do not dispatch dedup resolution for ingested listings',
        )

    def handle(self, *args, **options):
        if options['release_stale']:
            released = crawl_queue.release_stale_claims()
            self.stdout.write(f'Released {released} stale claim(s)')

        scheduler = CrawlScheduler(dispatch_resolution=not options['no_resolve'])

        for loop in range(options['loops']):
            counts = scheduler.run_batch(options['batch_size'])
            if not counts.get('claimed'):
                self.stdout.write(self.style.SUCCESS('Queue is empty'))
                return

            summary = ', '.join(f'{k}={v}' for k, v in sorted(counts.items()))
            self.stdout.write(f'Batch {loop + 1}: {summary}')

        self.stdout.write(self.style.SUCCESS('Done'))
