"""
Correction trigger.

``correction_requested`` is sent once a candidate has answered every question
of a test. The receiver either corrects the result inline (when
``CORRECTION['EAGER']`` is set) or enqueues it for the correction worker.
"""
import logging

from django.conf import settings
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# Provides: result_id, payload (optional correction request)
correction_requested = Signal()


def is_eager():
    return bool(getattr(settings, 'CORRECTION', {}).get('EAGER', False))


@receiver(correction_requested, dispatch_uid='exams.request_correction')
def request_correction(sender, result_id, payload=None, **kwargs):
    if is_eager():
        from exams.services.correction import CorrectionOrchestrator
        logger.info(f"Correcting result {result_id} inline")
        return CorrectionOrchestrator().correct_result(result_id, payload)

    from exams.services.worker import enqueue_correction
    return enqueue_correction(result_id, payload)
