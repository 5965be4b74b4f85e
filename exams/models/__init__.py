from .test import Test, TestCategory
from .question import Question
from .candidate import Contact, Candidate
from .result import TestResult
from .answer import Answer

__all__ = [
    'Test', 'TestCategory', 'Question',
    'Contact', 'Candidate',
    'TestResult', 'Answer'
]
