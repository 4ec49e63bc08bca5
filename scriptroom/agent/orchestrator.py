import asyncio
import logging
import random
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from scriptroom.realtime.events import Error, Info, OrchestrationEvent, TextChunk
from scriptroom.store.models import ConversationTurn, TurnRole
from scriptroom.store.service import ProjectRepository
from scriptroom.tools.executor import EventSink, ToolExecutor
from scriptroom.tools.schema import TOOL_SCHEMAS
from scriptroom.utils.logging_setup import log_context

from .fallback import DEGRADED_NOTICE, fallback_response
from .model_client import ChatMessage, ModelClient, ModelReply, ToolCallRequest
from .prompts import system_prompt as default_system_prompt
from .retry import RetryPolicy, RetryState

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Failed to generate response. Please try again."
EMPTY_PROMPT_ERROR = "Prompt must not be empty."
NO_RESPONSE_TEXT = "No response generated."
ACTION_COMPLETED_TEXT = "Action completed successfully."


@dataclass
class _ProjectSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class Orchestrator:
    """
    Runs one cycle per user prompt: persist, ask the model, run tools, summarise.

    Cycles for the same project are serialised; different projects run concurrently.
    Every outcome ends in an emitted event, never in an exception for the caller.
    """

    def __init__(
        self,
        repository: ProjectRepository,
        model_client: ModelClient,
        executor: ToolExecutor,
        sink: EventSink,
        retry_policy: Optional[RetryPolicy] = None,
        system_prompt: Optional[str] = None,
        history_limit: int = 0,
        rng: Optional[random.Random] = None,
    ):
        self.repository = repository
        self.model_client = model_client
        self.executor = executor
        self.sink = sink
        self.retry_policy = retry_policy or RetryPolicy()
        self.system_prompt = system_prompt if system_prompt is not None else default_system_prompt()
        self.history_limit = history_limit
        self.rng = rng or random.Random()
        self._project_locks: Dict[str, _ProjectSlot] = {}
        self._pending: Set[asyncio.Task] = set()

    @asynccontextmanager
    async def _project_turn(self, project_id: str) -> AsyncIterator[None]:
        """Hold the project's lock; the lock is forgotten once no cycle holds or awaits it."""
        slot = self._project_locks.get(project_id)
        if slot is None:
            slot = self._project_locks[project_id] = _ProjectSlot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._project_locks[project_id]

    def _emit(self, project_id: str, event: OrchestrationEvent) -> None:
        self.sink.emit(project_id, event)

    def on_prompt(self, project_id: str, prompt_text: str) -> asyncio.Task:
        """Schedule a cycle without waiting for it. Must be called from a running loop."""
        task = asyncio.get_running_loop().create_task(self.handle_prompt(project_id, prompt_text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def handle_prompt(self, project_id: str, prompt_text: str) -> None:
        cycle_id = uuid.uuid4().hex[:12]
        with log_context(cycle_id=cycle_id, project_id=project_id):
            if not prompt_text or not prompt_text.strip():
                logger.warning("Rejected empty prompt")
                self._emit(project_id, Error(message=EMPTY_PROMPT_ERROR))
                return

            async with self._project_turn(project_id):
                logger.info(f"Cycle started: {prompt_text[:80]!r}")
                try:
                    await self._run_cycle(project_id, prompt_text)
                except Exception:
                    logger.exception("Cycle failed")
                    self._emit(project_id, Error(message=GENERIC_ERROR))
                    return
                logger.info("Cycle finished")

    def build_context(self, turns: Sequence[ConversationTurn]) -> List[ChatMessage]:
        if self.history_limit and self.history_limit > 0:
            turns = list(turns)[-self.history_limit:]
        return [
            ChatMessage(role="assistant" if t.role == TurnRole.ASSISTANT else "user", content=t.content)
            for t in turns
        ]

    async def _run_cycle(self, project_id: str, prompt_text: str) -> None:
        self.repository.append_turn(project_id, TurnRole.USER, prompt_text)
        context = self.build_context(self.repository.list_turns(project_id))

        outcome = await self.retry_policy.run(
            lambda: self.model_client.complete(self.system_prompt, context, tools=TOOL_SCHEMAS, tool_choice="auto")
        )

        if outcome.state is RetryState.DEGRADED:
            logger.info("Using fallback response due to rate limits")
            text = fallback_response(prompt_text, self.rng)
            self.repository.append_turn(project_id, TurnRole.ASSISTANT, text)
            self._emit(project_id, TextChunk(content=text))
            self._emit(project_id, Info(message=DEGRADED_NOTICE))
            return
        if outcome.state is RetryState.FAILED:
            raise outcome.error

        reply: ModelReply = outcome.value
        if not reply.tool_calls:
            text = reply.text or NO_RESPONSE_TEXT
            self.repository.append_turn(project_id, TurnRole.ASSISTANT, text)
            self._emit(project_id, TextChunk(content=text))
            return

        results = await self._execute_tools(project_id, reply.tool_calls)

        follow_up = list(context)
        follow_up.append(ChatMessage(role="assistant", content=reply.text, tool_calls=list(reply.tool_calls)))
        for call, result in zip(reply.tool_calls, results):
            follow_up.append(ChatMessage(role="tool", content=result, tool_call_id=call.call_id))

        # Summarisation has no retry budget; any failure here is reported as an error.
        summary = await self.model_client.complete(self.system_prompt, follow_up)
        text = summary.text or ACTION_COMPLETED_TEXT
        record = [
            {"id": call.call_id, "name": call.name, "arguments": call.arguments_json(), "result": result}
            for call, result in zip(reply.tool_calls, results)
        ]
        self.repository.append_turn(project_id, TurnRole.ASSISTANT, text, tool_calls=record)
        self._emit(project_id, TextChunk(content=text))

    async def _execute_tools(self, project_id: str, calls: Sequence[ToolCallRequest]) -> List[str]:
        results: List[str] = []
        # Strictly sequential: later calls observe earlier calls' elements and spend.
        for call in calls:
            results.append(await self.executor.execute(project_id, call.name, call.arguments, call_id=call.call_id))
        return results
