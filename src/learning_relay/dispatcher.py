"""Tool dispatcher: routes batches of tool invocations to their handlers."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from learning_relay import config, discovery
from learning_relay.errors import NotFoundError, ToolError, ValidationError
from learning_relay.models import (
    CatalogEntry,
    FunctionCall,
    FunctionResponse,
    GenerateLearningJourneyArgs,
    LearningConcept,
    SearchLearningContentArgs,
    StartLabArgs,
)
from learning_relay.session import Session
from learning_relay.tools import (
    GENERATE_LEARNING_JOURNEY,
    GET_SKILLS,
    SEARCH_LEARNING_CONTENT,
    START_LAB,
    TOOL_ARGS,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "No learning content found"

# Hands an accepted launch URL to whoever can open it
ResourceOpener = Callable[[Session, CatalogEntry], Awaitable[None]]


class LearningPathGenerator(Protocol):
    async def generate(self, goal: str) -> list[LearningConcept]: ...


class ToolDispatcher:
    """Dispatches tool invocations for a session.

    Holds no state between batches; everything session-scoped lives on the
    Session passed to handle_batch.
    """

    def __init__(
        self,
        learning_paths: LearningPathGenerator,
        opener: Optional[ResourceOpener] = None,
        skills: Optional[Sequence[str]] = None,
        timeout: Optional[float] = config.TOOL_TIMEOUT,
        launch_threshold: float = config.LAUNCH_THRESHOLD,
        max_results: int = config.SEARCH_MAX_RESULTS,
        max_labs: int = config.SEARCH_MAX_LABS,
    ):
        self.learning_paths = learning_paths
        self.opener = opener
        self.skills = list(config.SKILLS if skills is None else skills)
        self.timeout = timeout
        self.launch_threshold = launch_threshold
        self.max_results = max_results
        self.max_labs = max_labs

        self._handlers: dict[str, Callable[[Session, Any], Awaitable[Any]]] = {
            GET_SKILLS: self._get_skills,
            GENERATE_LEARNING_JOURNEY: self._generate_learning_journey,
            SEARCH_LEARNING_CONTENT: self._search_learning_content,
            START_LAB: self._start_lab,
        }

    async def handle_batch(
        self, session: Session, calls: Sequence[FunctionCall]
    ) -> list[FunctionResponse]:
        """Handle a batch, returning exactly one response per invocation.

        Invocations run concurrently; the batch completes when all of them do.
        """
        async with session.batch_lock:
            responses = await asyncio.gather(
                *(self._dispatch(session, call) for call in calls)
            )
        return list(responses)

    async def _dispatch(self, session: Session, call: FunctionCall) -> FunctionResponse:
        logger.debug(f"Tool call: name={call.name}, id={call.id}")
        try:
            args = self._validate(call)
            handler = self._handlers[call.name]
            if self.timeout:
                output = await asyncio.wait_for(
                    handler(session, args), timeout=self.timeout
                )
            else:
                output = await handler(session, args)
            return FunctionResponse.output(call.id, output)
        except asyncio.TimeoutError:
            logger.warning(f"Tool call timed out: {call.name} ({call.id})")
            return FunctionResponse.error(call.id, f"{call.name} timed out")
        except ToolError as e:
            return FunctionResponse.error(call.id, e.message)
        except Exception as e:
            logger.error(f"Tool call failed: {call.name} ({call.id}): {e}")
            return FunctionResponse.error(call.id, str(e))

    def _validate(self, call: FunctionCall) -> BaseModel:
        if not isinstance(call.name, str) or not call.name:
            raise ValidationError("Missing tool name")
        args_model = TOOL_ARGS.get(call.name)
        if args_model is None:
            raise ValidationError(f"Unknown tool: {call.name}")
        args = {} if call.args is None else call.args
        if not isinstance(args, Mapping):
            raise ValidationError(
                f"Invalid arguments for {call.name}: args must be an object"
            )
        try:
            return args_model.model_validate(args)
        except PydanticValidationError as e:
            fields = ", ".join(
                ".".join(str(loc) for loc in err["loc"]) or "args" for err in e.errors()
            )
            raise ValidationError(f"Invalid arguments for {call.name}: {fields}") from e

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _get_skills(self, session: Session, args: BaseModel) -> list[str]:
        return list(self.skills)

    async def _generate_learning_journey(
        self, session: Session, args: GenerateLearningJourneyArgs
    ) -> list[dict[str, Any]]:
        concepts = await self.learning_paths.generate(args.goal)
        return [c.model_dump() for c in concepts]

    async def _search_learning_content(
        self, session: Session, args: SearchLearningContentArgs
    ) -> list[dict[str, Any]]:
        catalog = await session.catalog.get()
        results = discovery.search(
            args.concept,
            catalog,
            max_total=self.max_results,
            max_labs=self.max_labs,
        )
        session.history.record(args.concept, results)
        logger.info(f"Search {args.concept!r}: {len(results)} results")
        return [entry.model_dump() for entry in results]

    async def _start_lab(self, session: Session, args: StartLabArgs) -> dict[str, Any]:
        catalog = await session.catalog.get()
        decision = discovery.resolve(args.name, catalog, threshold=self.launch_threshold)
        if isinstance(decision, discovery.Rejected):
            logger.warning(
                f"Launch rejected for {args.name!r} (best score {decision.score:.2f})"
            )
            raise NotFoundError(NOT_FOUND_MESSAGE)

        entry = decision.entry
        if self.opener is not None:
            await self.opener(session, entry)
        logger.info(f"Launching {entry.title!r} ({decision.score:.2f})")
        return {
            "message": f"Successfully open the learning content: {entry.title}",
            "title": entry.title,
            "url": entry.url,
        }
