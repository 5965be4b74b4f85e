from .base import Scorer, ScoringResult, NOT_APPLICABLE, finite_or_zero


class RuleScorer(Scorer):
    """
    Deterministic scorer for multiple-choice questions with a single correct option.

    The submitted text is trimmed and compared, case-sensitively, with the valid
    option's text or with that option's zero-based index.
    """

    def get_service_name(self) -> str:
        return "rule_mcq"

    def is_applicable(self, question) -> bool:
        return len(question.options or []) >= 1 and len(question.valid_options) == 1

    def score(self, question, answer_text: str):
        if not self.is_applicable(question):
            return NOT_APPLICABLE

        valid_option = question.valid_options[0]
        valid_index = question.options.index(valid_option)
        expected = str(valid_option.get('text', '')).strip()
        submitted = (answer_text or '').strip()
        is_correct = submitted == expected or submitted == str(valid_index)

        return ScoringResult(
            score=finite_or_zero(question.max_score) if is_correct else 0.0,
            comment='',
            grading_method=self.get_service_name()
        )
