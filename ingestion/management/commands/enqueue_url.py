"""
Management command to put URLs on the crawl queue.

Usage:
    python manage.py enqueue_url https://www.example.ro/anunt/123
    python manage.py enqueue_url https://www.example.ro/vanzare --kind=discover --priority=10
"""

from django.core.management.base import BaseCommand, CommandError

from ingestion.models import CrawlJobKind
from ingestion.queue import crawl_queue


class Command(BaseCommand):
    """Enqueue one or more URLs."""

    help = 'Enqueue URLs as crawl jobs (idempotent per normalized URL)'

    def add_arguments(self, parser):
        parser.add_argument('urls', nargs='+', help='URLs to enqueue')
        parser.add_argument(
            '--kind',
            choices=CrawlJobKind.values,
            default=CrawlJobKind.DETAIL,
            help='Job kind (default: detail)',
        )
        parser.add_argument(
            '--priority',
            type=int,
            default=0,
            help='Higher priority is fetched first (default: 0)',
        )

    def handle(self, *args, **options):
        failed = 0
        for url in options['urls']:
            result = crawl_queue.enqueue_url(url, kind=options['kind'], priority=options['priority'])
            if result.status == 'invalid':
                failed += 1
                self.stderr.write(self.style.ERROR(f'  {url}: {result.error}'))
            else:
                self.stdout.write(f'  {result.status}: {result.normalized_url}')

        if failed == len(options['urls']):
            raise CommandError('No URL could be enqueued')
