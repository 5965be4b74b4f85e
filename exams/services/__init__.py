from .correction import CorrectionOrchestrator, CorrectionOutcome
from .notification import NotificationGateway
from .result_store import ResultStore
from .worker import enqueue_correction, get_correction_queue, process_correction, result_lock, run_worker
from .answers import record_answer
from .statistics import get_max_score, get_category_stats

__all__ = [
    'CorrectionOrchestrator', 'CorrectionOutcome', 'NotificationGateway', 'ResultStore',
    'enqueue_correction', 'get_correction_queue', 'process_correction', 'result_lock', 'run_worker',
    'record_answer', 'get_max_score', 'get_category_stats'
]
