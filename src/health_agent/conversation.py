"""Conversation orchestration: authorization, aggregation and completion.

All state transitions and history appends happen on a single consumer task
that reads events from a queue in arrival order. Effects (authorization,
aggregation, the remote completion) run as separate tasks and report back
by posting events, so state is never mutated concurrently. Events that do
not match the current state are ignored, and a failing handler abandons the
question in flight and returns to idle.

State machine (no terminal state, one cycle per question)::

    idle --submit--> authorizing --granted--> aggregating --> requesting --> idle
                          |                        ^
                          +--denied--> idle        |
    idle --submit (already authorized)-------------+
"""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

import structlog

from .aggregation import HealthAggregator
from .completion import CompletionClient
from .executor import MetricQueryExecutor
from .metrics import QUESTIONS
from .models import ChatMessage, ConversationState, MetricKey
from .prompts import build_user_prompt
from .serializer import error_document, serialize_summary
from .sources.base import HealthDataSource

logger = structlog.get_logger(__name__)

UNEXPECTED_ERROR_MESSAGE = "Something went wrong while preparing an answer. Please try again."


@dataclass(frozen=True)
class _Submitted:
    question: str
    accepted: asyncio.Future[bool]


@dataclass(frozen=True)
class _AuthorizationResolved:
    granted: bool


@dataclass(frozen=True)
class _SummaryReady:
    health_data: str


@dataclass(frozen=True)
class _AnswerReady:
    text: str


@dataclass(frozen=True)
class _LatestWeightRead:
    kilograms: float


_Event = _Submitted | _AuthorizationResolved | _SummaryReady | _AnswerReady | _LatestWeightRead


def _resolve(future: asyncio.Future[bool], accepted: bool) -> None:
    # The submitter may have been cancelled while the event was queued
    if not future.done():
        future.set_result(accepted)


class ConversationOrchestrator:
    """Owns the conversation state machine and message history.

    Only one question is in flight at a time: a submission is accepted only
    while idle, anything else is dropped without queueing.
    """

    def __init__(
        self,
        source: HealthDataSource,
        aggregator: HealthAggregator,
        completion_client: CompletionClient,
    ) -> None:
        self._source = source
        self._aggregator = aggregator
        self._completion_client = completion_client
        self._state = ConversationState.IDLE
        self._history: list[ChatMessage] = []
        self._authorized = False
        self._pending_question: str | None = None
        self._latest_weight_kg: float | None = None
        self._events: asyncio.Queue[_Event] = asyncio.Queue()
        self._idle = asyncio.Event()
        self._idle.set()
        self._consumer_task: asyncio.Task | None = None
        self._effect_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def pending_question(self) -> str | None:
        return self._pending_question

    @property
    def latest_weight_kg(self) -> float | None:
        """Newest body weight, read once access is granted."""
        return self._latest_weight_kg

    async def start(self) -> None:
        """Start the event consumer."""
        if self._consumer_task is None:
            self._consumer_task = asyncio.create_task(self._consume())
            logger.debug("conversation_started")

    async def stop(self) -> None:
        """Stop the event consumer and outstanding effects."""
        tasks = list(self._effect_tasks)
        if self._consumer_task is not None:
            tasks.append(self._consumer_task)
            self._consumer_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("conversation_stopped")

    async def submit(self, question: str) -> bool:
        """Submit a question.

        Returns:
            True if the question was accepted, False if it was dropped
            because it was blank or another question is in flight.
        """
        await self.start()
        accepted: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        await self._events.put(_Submitted(question=question, accepted=accepted))
        return await accepted

    async def wait_until_idle(self) -> None:
        """Wait until no question is in flight."""
        await self._idle.wait()

    async def ask(self, question: str) -> ChatMessage | None:
        """Submit a question and wait for the assistant reply.

        Returns:
            The assistant message, or None if the question was dropped or
            access to the health data was denied.
        """
        history_length = len(self._history)
        if not await self.submit(question):
            return None
        await self.wait_until_idle()
        replies = [message for message in self._history[history_length:] if not message.is_user]
        return replies[-1] if replies else None

    async def _consume(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self._handle(event)
            except Exception as e:
                logger.error(
                    "conversation_event_failed",
                    event=type(event).__name__,
                    state=self._state.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._recover()
                if isinstance(event, _Submitted):
                    _resolve(event.accepted, False)
            finally:
                self._events.task_done()

    def _handle(self, event: _Event) -> None:
        match event:
            case _Submitted():
                self._on_submitted(event)
            case _AuthorizationResolved() if self._state == ConversationState.AUTHORIZING:
                self._on_authorization(event.granted)
            case _SummaryReady() if self._state == ConversationState.AGGREGATING:
                self._on_summary_ready(event.health_data)
            case _AnswerReady() if self._state == ConversationState.REQUESTING:
                self._on_answer_ready(event.text)
            case _LatestWeightRead():
                self._latest_weight_kg = event.kilograms
            case _:
                logger.debug(
                    "stale_event_ignored",
                    event=type(event).__name__,
                    state=self._state.value,
                )

    def _recover(self) -> None:
        """Abandon the question in flight and return to idle."""
        for task in self._effect_tasks:
            task.cancel()
        if self._history and self._history[-1].is_user:
            self._history.append(ChatMessage(text=UNEXPECTED_ERROR_MESSAGE, is_user=False))
        self._pending_question = None
        if self._state != ConversationState.IDLE:
            self._transition(ConversationState.IDLE)

    def _transition(self, state: ConversationState) -> None:
        logger.debug("conversation_transition", from_state=self._state.value, to_state=state.value)
        self._state = state
        if state == ConversationState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._effect_tasks.add(task)
        task.add_done_callback(self._effect_tasks.discard)

    def _on_submitted(self, event: _Submitted) -> None:
        if self._state != ConversationState.IDLE or not event.question.strip():
            logger.info(
                "question_dropped",
                state=self._state.value,
                blank=not event.question.strip(),
            )
            QUESTIONS.labels(status="dropped").inc()
            _resolve(event.accepted, False)
            return

        self._pending_question = event.question
        QUESTIONS.labels(status="accepted").inc()
        if self._authorized:
            self._start_aggregation()
        else:
            self._transition(ConversationState.AUTHORIZING)
            self._spawn(self._authorize())
        _resolve(event.accepted, True)

    def _on_authorization(self, granted: bool) -> None:
        if not granted:
            logger.warning("health_access_denied", source=self._source.name)
            self._pending_question = None
            self._transition(ConversationState.IDLE)
            return

        self._authorized = True
        logger.info("health_access_granted", source=self._source.name)
        self._spawn(self._prime_latest_weight())
        self._start_aggregation()

    def _start_aggregation(self) -> None:
        self._transition(ConversationState.AGGREGATING)
        self._spawn(self._aggregate())

    def _on_summary_ready(self, health_data: str) -> None:
        question = self._pending_question or ""
        self._history.append(ChatMessage(text=question, is_user=True))
        self._transition(ConversationState.REQUESTING)
        self._spawn(self._request_answer(build_user_prompt(health_data, question)))

    def _on_answer_ready(self, text: str) -> None:
        self._history.append(ChatMessage(text=text, is_user=False))
        self._pending_question = None
        self._transition(ConversationState.IDLE)

    async def _authorize(self) -> None:
        try:
            granted = await self._source.request_authorization()
        except Exception as e:
            logger.warning("health_authorization_failed", error=str(e))
            granted = False
        await self._events.put(_AuthorizationResolved(granted=granted))

    async def _prime_latest_weight(self) -> None:
        try:
            sample = await MetricQueryExecutor(self._source, MetricKey.WEIGHT).read_latest()
        except Exception as e:
            logger.debug("latest_weight_unavailable", error=str(e))
            return
        if sample is not None:
            await self._events.put(_LatestWeightRead(kilograms=sample.value))

    async def _aggregate(self) -> None:
        try:
            document = await self._aggregator.collect()
            health_data = serialize_summary(document)
        except Exception as e:
            logger.error("health_summary_failed", error=str(e), error_type=type(e).__name__)
            health_data = error_document()
        await self._events.put(_SummaryReady(health_data=health_data))

    async def _request_answer(self, prompt: str) -> None:
        try:
            answer = await self._completion_client.complete(prompt)
        except Exception as e:
            logger.error("completion_failed", error=str(e), error_type=type(e).__name__)
            answer = UNEXPECTED_ERROR_MESSAGE
        await self._events.put(_AnswerReady(text=answer))
