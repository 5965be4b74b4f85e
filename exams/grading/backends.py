"""
Text-generation backends used by the AI scorer.

Two call shapes are supported: a single chat completion, and the run protocol
where a remote job is created, polled until it leaves the queued/in-progress
states, and its first produced message is read back.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from openai import OpenAI

from exams.exceptions import ScoringError, ScoringTimeout

logger = logging.getLogger(__name__)


class TextGenerationBackend(ABC):
    @abstractmethod
    def complete(self, instructions: str, json_output: bool = True) -> str:
        """Submit ``instructions`` and return the raw reply text."""

    @abstractmethod
    def get_service_name(self) -> str:
        pass


@dataclass(frozen=True)
class RunHandle:
    thread_id: str
    run_id: str


class RunProtocolBackend(TextGenerationBackend):
    """Create a remote run, poll it until done, then read its first message."""

    PENDING_STATUSES = ('queued', 'in_progress')
    COMPLETED_STATUS = 'completed'

    def __init__(self, poll_interval: float = 1.0, timeout: float = None, sleep=time.sleep, clock=time.monotonic):
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    def create_run(self, instructions: str, json_output: bool) -> RunHandle:
        pass

    @abstractmethod
    def get_run_status(self, handle: RunHandle) -> str:
        pass

    @abstractmethod
    def read_first_message(self, handle: RunHandle) -> str:
        pass

    def complete(self, instructions: str, json_output: bool = True) -> str:
        handle = self.create_run(instructions, json_output)
        started = self._clock()

        status = self.get_run_status(handle)
        while status in self.PENDING_STATUSES:
            if self.timeout and self._clock() - started >= self.timeout:
                raise ScoringTimeout(self.timeout)
            self._sleep(self.poll_interval)
            status = self.get_run_status(handle)

        if status != self.COMPLETED_STATUS:
            raise ScoringError(f"Run {handle.run_id} ended with status '{status}'")
        return self.read_first_message(handle)


class OpenAIChatBackend(TextGenerationBackend):
    """Single chat completion with the rendered prompt as the system message."""

    def __init__(self, api_key: str, model: str, temperature: float = 0.7, timeout: float = None):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._client = None

    def get_service_name(self) -> str:
        return f"llm_{self.model}"

    @property
    def client(self):
        if self._client is None:
            # Retries are owned by the scorer's retry envelope.
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, instructions: str, json_output: bool = True) -> str:
        params = {
            'model': self.model,
            'temperature': self.temperature,
            'messages': [{"role": "system", "content": instructions}],
        }
        if json_output:
            params['response_format'] = {"type": "json_object"}

        response = self.client.chat.completions.create(**params)
        return response.choices[0].message.content or ''


class OpenAIAssistantBackend(RunProtocolBackend):
    """Run protocol on top of the OpenAI assistants threads/runs API."""

    def __init__(self, api_key: str, assistant_id: str, poll_interval: float = 1.0, timeout: float = None, **kwargs):
        super().__init__(poll_interval=poll_interval, timeout=timeout, **kwargs)
        self.api_key = api_key
        self.assistant_id = assistant_id
        self._client = None

    def get_service_name(self) -> str:
        return f"assistant_{self.assistant_id}"

    @property
    def client(self):
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def create_run(self, instructions: str, json_output: bool) -> RunHandle:
        params = {
            'assistant_id': self.assistant_id,
            'thread': {"messages": [{"role": "user", "content": instructions}]},
        }
        if json_output:
            params['response_format'] = {"type": "json_object"}

        run = self.client.beta.threads.create_and_run(**params)
        logger.debug(f"Created run {run.id} on thread {run.thread_id}")
        return RunHandle(thread_id=run.thread_id, run_id=run.id)

    def get_run_status(self, handle: RunHandle) -> str:
        run = self.client.beta.threads.runs.retrieve(handle.run_id, thread_id=handle.thread_id)
        return run.status

    def read_first_message(self, handle: RunHandle) -> str:
        messages = self.client.beta.threads.messages.list(thread_id=handle.thread_id)
        if not messages.data:
            return ''
        first = messages.data[0]
        return ''.join(part.text.value for part in first.content if part.type == 'text')
