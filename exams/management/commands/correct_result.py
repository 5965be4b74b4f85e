"""
Management command to correct a finished test result.
"""
from django.core.management.base import BaseCommand, CommandError

from exams.exceptions import CorrectionError
from exams.services.correction import CorrectionOrchestrator
from exams.services.worker import enqueue_correction


class Command(BaseCommand):
    help = 'Correct the answers of a test result and notify the candidate'

    def add_arguments(self, parser):
        parser.add_argument('result_id', type=int)
        parser.add_argument(
            '--async',
            action='store_true',
            dest='run_async',
            help='Enqueue the correction for the correction worker instead of running it here'
        )

    def handle(self, *args, **options):
        result_id = options['result_id']

        if options['run_async']:
            job = enqueue_correction(result_id)
            self.stdout.write(self.style.SUCCESS(f'Correction of result {result_id} queued as job {job.id}'))
            return

        try:
            outcome = CorrectionOrchestrator().correct_result(result_id)
        except CorrectionError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(
            f'Result {outcome.result_id}: {outcome.score:g}/{outcome.max_score:g} ({outcome.percentage}%)'
        ))
        for category in outcome.scores_by_category:
            self.stdout.write(f"  category {category['categoryId']}: {category['score']:g}/{category['maxScore']:g}")
        if outcome.skipped:
            self.stdout.write(self.style.WARNING(f'  {outcome.skipped} answer(s) skipped, question not found'))
