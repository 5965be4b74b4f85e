from .base import Scorer, ScoringResult, NOT_APPLICABLE
from .rule_scorer import RuleScorer
from .ai_scorer import AiScorerClient
from .aggregation import ScoreAggregator, AggregateScore, CategoryScore, compute_percentage
from .live_message import LiveMessageClient, Generation, SENTINEL, is_sentinel
from .factory import get_ai_scorer, get_text_backend

__all__ = [
    'Scorer', 'ScoringResult', 'NOT_APPLICABLE', 'RuleScorer', 'AiScorerClient',
    'ScoreAggregator', 'AggregateScore', 'CategoryScore', 'compute_percentage',
    'LiveMessageClient', 'Generation', 'SENTINEL', 'is_sentinel',
    'get_ai_scorer', 'get_text_backend'
]
