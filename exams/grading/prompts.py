from django.template.loader import render_to_string

from .base import finite_or_zero

CORRECT_QUESTION_TEMPLATE = 'exams/prompts/correct_question.txt'


def render_options(options) -> str:
    """Render options as ``response N = <text> (correct|incorrect)``, N starting at 1."""
    lines = []
    for index, option in enumerate(options or [], start=1):
        verdict = 'correct' if option.get('valid') else 'incorrect'
        lines.append(f"response {index} = {option.get('text', '')} ({verdict})")
    return '\n'.join(lines)


def format_max_score(value) -> str:
    number = finite_or_zero(value)
    return str(int(number)) if number.is_integer() else str(number)


def render_correction_prompt(question, answer_text: str) -> str:
    context = {
        'instruction': question.instruction,
        'response': answer_text or '',
        'max_score': format_max_score(question.max_score),
        'question_type': question.question_type,
        'possible_responses': render_options(question.options),
    }
    return render_to_string(CORRECT_QUESTION_TEMPLATE, context).strip()
