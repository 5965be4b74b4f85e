"""
Management command running the RQ correction worker.
"""
from django.core.management.base import BaseCommand
from django.db import connections

from exams.services.worker import run_worker


class Command(BaseCommand):
    help = 'Run the correction worker until interrupted'

    def add_arguments(self, parser):
        parser.add_argument('--burst', action='store_true', help='Process queued corrections and exit')

    def handle(self, *args, **options):
        # Work horses are forked; they must not inherit this process's connections.
        connections.close_all()
        self.stdout.write(self.style.NOTICE('Correction worker started, press Ctrl+C to stop'))
        try:
            run_worker(burst=options['burst'])
        except KeyboardInterrupt:
            pass
        self.stdout.write(self.style.SUCCESS('Correction worker stopped'))
