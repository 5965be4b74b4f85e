from dataclasses import dataclass
from typing import Tuple

from rest_framework import serializers

from exams.exceptions import CorrectionRequestError
from exams.models import TestResult

# Trigger payloads come from several producers; accept both spellings.
FIELD_ALIASES = {
    '_id': 'result_id',
    'id': 'result_id',
    'resultId': 'result_id',
    'testId': 'test_id',
    'questionId': 'question_id',
    'responses': 'answers',
    'response': 'text',
}


def normalize_keys(payload):
    if isinstance(payload, dict):
        normalized = {}
        for key, value in payload.items():
            normalized[FIELD_ALIASES.get(key, key)] = normalize_keys(value)
        return normalized
    if isinstance(payload, (list, tuple)):
        return [normalize_keys(item) for item in payload]
    return payload


class AnswerToCorrectSerializer(serializers.Serializer):
    question_id = serializers.CharField()
    text = serializers.CharField(required=False, allow_blank=True, default='', trim_whitespace=False)


class CorrectionRequestSerializer(serializers.Serializer):
    result_id = serializers.CharField()
    test_id = serializers.CharField()
    answers = AnswerToCorrectSerializer(many=True, allow_empty=False)
    state = serializers.ChoiceField(choices=TestResult.State.choices)


@dataclass(frozen=True)
class AnswerToCorrect:
    question_id: str
    text: str


@dataclass(frozen=True)
class CorrectionRequest:
    result_id: str
    test_id: str
    answers: Tuple[AnswerToCorrect, ...]
    state: str

    @property
    def question_ids(self):
        return {answer.question_id for answer in self.answers}

    @classmethod
    def from_payload(cls, payload) -> 'CorrectionRequest':
        """Validate a raw trigger payload; raise CorrectionRequestError on any mismatch."""
        if not isinstance(payload, dict):
            raise CorrectionRequestError(
                f"Correction request must be an object, got {type(payload).__name__}"
            )

        serializer = CorrectionRequestSerializer(data=normalize_keys(payload))
        if not serializer.is_valid():
            raise CorrectionRequestError("Invalid correction request", errors=serializer.errors)

        data = serializer.validated_data
        return cls(
            result_id=data['result_id'],
            test_id=data['test_id'],
            answers=tuple(
                AnswerToCorrect(question_id=item['question_id'], text=item.get('text', ''))
                for item in data['answers']
            ),
            state=data['state']
        )

    @classmethod
    def for_result(cls, result, answers) -> 'CorrectionRequest':
        """Request covering every answer stored on ``result``."""
        return cls.from_payload({
            'result_id': str(result.pk),
            'test_id': str(result.test_id),
            'answers': [
                {'question_id': str(answer.question_id), 'text': answer.text}
                for answer in answers
            ],
            'state': result.state,
        })
