"""
Domain exceptions for the correction pipeline.

``CorrectionError`` subclasses are fatal: they propagate to whoever triggered
the correction and nothing is written. ``ScoringError`` subclasses are raised
inside a single scoring attempt and are absorbed by the retry envelope.
"""


class CorrectionError(Exception):
    """Base class for errors that abort a correction."""


class CorrectionRequestError(CorrectionError):
    """The correction request does not have the expected shape."""

    def __init__(self, message, errors=None):
        self.errors = errors or {}
        super().__init__(message)


class ResultNotFound(CorrectionError):
    def __init__(self, result_id):
        self.result_id = result_id
        super().__init__(f"Test result '{result_id}' not found")


class CorrectionInProgress(CorrectionError):
    """Another correction of the same result holds its lock."""

    def __init__(self, result_id):
        self.result_id = result_id
        super().__init__(f"Test result '{result_id}' is already being corrected")


class AnswerRejected(CorrectionError):
    """An answer cannot be recorded against this result."""


class ResultAlreadyFinished(AnswerRejected):
    def __init__(self, result_id):
        self.result_id = result_id
        super().__init__(f"Test result '{result_id}' is already finished")


class QuestionNotInTest(AnswerRejected):
    def __init__(self, result_id, question_id):
        self.result_id = result_id
        self.question_id = question_id
        super().__init__(f"Question '{question_id}' is not part of the test of result '{result_id}'")


class QuestionAlreadyAnswered(AnswerRejected):
    def __init__(self, result_id, question_id):
        self.result_id = result_id
        self.question_id = question_id
        super().__init__(f"Question '{question_id}' was already answered on result '{result_id}'")


class ScoringError(Exception):
    """A single scoring attempt failed."""


class InvalidVerdict(ScoringError):
    """The AI reply was empty or not a JSON object."""


class ScoringTimeout(ScoringError):
    def __init__(self, seconds):
        self.seconds = seconds
        super().__init__(f"Scoring did not complete within {seconds}s")
