from django.conf import settings

from .ai_scorer import AiScorerClient
from .backends import OpenAIAssistantBackend, OpenAIChatBackend, TextGenerationBackend


def get_text_backend(backend: str = None) -> TextGenerationBackend:
    config = settings.CORRECTION
    if backend is None:
        backend = config.get('AI_BACKEND', 'chat')

    if backend == 'assistant':
        return OpenAIAssistantBackend(
            api_key=config.get('LLM_API_KEY', ''),
            assistant_id=config.get('ASSISTANT_ID', ''),
            poll_interval=config.get('POLL_INTERVAL', 1),
            timeout=config.get('ANSWER_TIMEOUT')
        )
    return OpenAIChatBackend(
        api_key=config.get('LLM_API_KEY', ''),
        model=config.get('LLM_MODEL', 'gpt-4-1106-preview'),
        temperature=config.get('LLM_TEMPERATURE', 0.7),
        timeout=config.get('ANSWER_TIMEOUT')
    )


def get_ai_scorer(backend: str = None) -> AiScorerClient:
    return AiScorerClient(
        backend=get_text_backend(backend),
        max_attempts=settings.CORRECTION.get('MAX_ATTEMPTS', 3)
    )
