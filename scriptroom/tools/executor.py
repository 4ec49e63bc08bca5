import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Protocol, Type, Union
from uuid import uuid4

from scriptroom.assets.publisher import AssetPublisher
from scriptroom.budget.costs import VideoCostModel, zero_cost
from scriptroom.budget.ledger import BudgetLedger
from scriptroom.errors import BudgetExceeded, GeneratorFailure, InvalidArguments, PublishFailure
from scriptroom.realtime.events import (
    ElementAdded,
    GenerationCompleted,
    GenerationStarted,
    Info,
    OrchestrationEvent,
)
from scriptroom.store.models import ElementType
from scriptroom.store.service import ProjectRepository
from scriptroom.utils.logging_setup import log_context

from .image_gen import ImageGenerator
from .schema import (
    TOOL_CALL_VARIANTS,
    AddScriptElementCall,
    GenerateImageCall,
    GenerateVideoCall,
    ToolCall,
    parse_tool_call,
)
from .video_gen import VideoGenerator

logger = logging.getLogger(__name__)

_FAILURE_PREFIX = {
    "add_script_element": "Failed to add script element",
    "generate_image": "Failed to generate image",
    "generate_video": "Failed to generate video",
}


class EventSink(Protocol):
    def emit(self, project_id: str, event: OrchestrationEvent) -> None: ...


@dataclass
class _Pending:
    element_id: str
    asset_url: Optional[str] = None


class _MonotonicStamp:
    """Millisecond timestamps that never repeat or go backwards within a process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            self._last = max(now, self._last + 1)
            return self._last


class ToolExecutor:
    """
    Runs one model-requested tool call and reports the outcome as text.

    Errors never propagate: schema violations, generator and publish failures and
    budget refusals all come back as a result string for the model to narrate.
    Each handler persists its Element as the final step, after every remote call.
    """

    def __init__(
        self,
        repository: ProjectRepository,
        sink: EventSink,
        ledger: BudgetLedger,
        image_generator: ImageGenerator,
        video_generator: VideoGenerator,
        publisher: AssetPublisher,
        video_cost: VideoCostModel = zero_cost,
        stamp: Optional[Callable[[], int]] = None,
    ):
        self.repository = repository
        self.sink = sink
        self.ledger = ledger
        self.image_generator = image_generator
        self.video_generator = video_generator
        self.publisher = publisher
        self.video_cost = video_cost
        self._stamp = stamp or _MonotonicStamp()

        self._handlers: Dict[Type[Any], Callable[[str, Any], Awaitable[str]]] = {
            AddScriptElementCall: self._add_script_element,
            GenerateImageCall: self._generate_image,
            GenerateVideoCall: self._generate_video,
        }
        missing = [v.__name__ for v in TOOL_CALL_VARIANTS if v not in self._handlers]
        if missing:
            raise TypeError(f"No handler registered for tool call variants: {missing}")

    @property
    def handlers(self) -> Dict[Type[Any], Callable[[str, Any], Awaitable[str]]]:
        return dict(self._handlers)

    async def execute(
        self,
        project_id: str,
        tool_name: str,
        raw_arguments: Union[str, Dict[str, Any], None],
        call_id: str = "",
    ) -> str:
        with log_context(tool=tool_name):
            try:
                call = parse_tool_call(tool_name, raw_arguments, call_id=call_id)
            except InvalidArguments as e:
                logger.warning(f"Rejected tool call: {e}")
                return str(e)
            return await self.dispatch(project_id, call)

    async def dispatch(self, project_id: str, call: ToolCall) -> str:
        handler = self._handlers[type(call)]
        logger.info(f"Executing {call.name} (call_id={call.call_id or '-'})")
        try:
            result = await handler(project_id, call)
        except BudgetExceeded as e:
            logger.info(f"Budget refusal: {e}")
            return str(e)
        except Exception as e:
            logger.exception(f"Tool {call.name} failed")
            return f"{_FAILURE_PREFIX[call.name]}: {e}"
        logger.info(f"{call.name} result: {result}")
        return result

    def _emit(self, project_id: str, event: OrchestrationEvent) -> None:
        self.sink.emit(project_id, event)

    # --- handlers ---
    async def _add_script_element(self, project_id: str, call: AddScriptElementCall) -> str:
        args = call.args
        element = self.repository.append_element(
            project_id,
            type=args.element_type,
            content=args.content,
            is_generating=False,
        )
        self._emit(project_id, ElementAdded(element=element.to_dict()))
        return f"Script element added successfully: {args.element_type.value}"

    @contextmanager
    def _pending_generation(self, project_id: str, element_type: ElementType) -> Iterator[_Pending]:
        """Emit GenerationStarted; the matching GenerationCompleted follows however the block exits."""
        pending = _Pending(element_id=str(uuid4()))
        self._emit(project_id, GenerationStarted(element_id=pending.element_id, element_type=element_type.value))
        try:
            yield pending
        finally:
            self._emit(project_id, GenerationCompleted(element_id=pending.element_id, asset_url=pending.asset_url))

    async def _generate_image(self, project_id: str, call: GenerateImageCall) -> str:
        args = call.args
        self._emit(project_id, Info(message="Generating image..."))

        with self._pending_generation(project_id, ElementType.IMAGE) as pending:
            try:
                source_url = await self.image_generator.generate(args.description)
                asset_url = await self.publisher.publish(source_url, f"image-{self._stamp()}")
            except (GeneratorFailure, PublishFailure) as e:
                return f"Failed to generate image: {e}"

            element = self.repository.append_element(
                project_id,
                type=ElementType.IMAGE,
                content=args.scene_context or args.description,
                asset_url=asset_url,
                element_id=pending.element_id,
            )
            pending.asset_url = asset_url

        self._emit(project_id, ElementAdded(element=element.to_dict()))
        return f"Image generated and saved successfully. The image shows: {args.description}"

    async def _generate_video(self, project_id: str, call: GenerateVideoCall) -> str:
        args = call.args
        cost = float(self.video_cost(args.duration))

        # Check-then-record must not interleave with another cycle's video call.
        async with self.ledger.lock:
            remaining = self.ledger.remaining_daily()
            if remaining < cost:
                raise BudgetExceeded(
                    f"Cannot generate video: Daily budget limit reached. Remaining: ${remaining:.2f}, Need: ${cost:.2f}"
                )
            decision = self.ledger.can_afford(cost)
            if not decision.ok:
                raise BudgetExceeded(f"Cannot generate video: {decision.reason}")

            self._emit(project_id, Info(message="Generating video..."))
            with self._pending_generation(project_id, ElementType.VIDEO) as pending:
                try:
                    result = await self.video_generator.generate(args.image_url, args.description, args.duration)
                except GeneratorFailure as e:
                    return f"Failed to generate video: {e}"
                self.ledger.record(cost)

                try:
                    asset_url = await self.publisher.publish(result.asset_url, f"video-{self._stamp()}")
                except PublishFailure as e:
                    logger.warning(f"Failed to republish video, using original URL: {e}")
                    asset_url = result.asset_url

                element = self.repository.append_element(
                    project_id,
                    type=ElementType.VIDEO,
                    content=args.description,
                    asset_url=asset_url,
                    metadata={"duration": args.duration, "sourceImageUrl": args.image_url},
                    element_id=pending.element_id,
                )
                pending.asset_url = asset_url

        self._emit(project_id, ElementAdded(element=element.to_dict()))

        status = (
            f"Video generated successfully ({args.duration}s). "
            f"Daily budget remaining: ${self.ledger.remaining_daily():.2f}"
        )
        if result.note:
            status = f"{status}. {result.note}"
        return status
