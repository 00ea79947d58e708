"""Tool-mediated ingestion agent.

The runner owns the transcript and executes whatever tool calls the
controller issues, up to ``max_turns``. Two controllers are available:

- ``ModelController`` asks an Anthropic model which tool to call next.
- ``StagedController`` walks a fixed context -> parse -> confirm -> apply
  pipeline and never applies a parse that needs review.

Tool definitions are immutable values. Everything a tool needs at call
time (session, user id, services) arrives in a ``ToolContext``, so the
user id never comes from model-supplied arguments.
"""

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

import anthropic
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.models.enums import AuditActionType, ToolInvocationStatus
from pantry_ingest.models.ingestion_job import ToolInvocation
from pantry_ingest.schemas.inventory import UpdateRecord
from pantry_ingest.schemas.tools import (
    ApplyInventoryUpdatesArgs,
    ContextGroceryList,
    ContextInventoryItem,
    FetchUserContextArgs,
    FetchUserContextResult,
    ParseGroceryTextArgs,
    ParseGroceryTextResult,
    ToolError,
)
from pantry_ingest.services.errors import AgentConfigurationError, AgentTurnLimitError
from pantry_ingest.services.extraction import ExtractionService
from pantry_ingest.services.inventory_service import InventoryService
from pantry_ingest.services.llm_prompts import AGENT_SYSTEM_PROMPT, get_agent_prompt

logger = logging.getLogger(__name__)

FETCH_USER_CONTEXT = "fetch_user_context"
PARSE_GROCERY_TEXT = "parse_grocery_text"
APPLY_INVENTORY_UPDATES = "apply_inventory_updates"


# --- Tools ---------------------------------------------------------------


@dataclass(frozen=True)
class ToolContext:
    """Per-run dependencies handed to every tool call."""

    db: Session
    user_id: str
    run_id: str
    inventory: InventoryService
    extraction: ExtractionService
    audit_action: AuditActionType = AuditActionType.AGENT


ToolHandler = Callable[[ToolContext, Any], BaseModel]


@dataclass(frozen=True)
class ToolSpec:
    """A callable tool: name, argument model and handler."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> dict[str, Any]:
        return self.args_model.model_json_schema()

    def invoke(self, context: ToolContext, arguments: dict[str, Any] | None) -> dict[str, Any]:
        """Validate arguments and run the handler.

        Never raises: invalid arguments and handler exceptions come back as
        a ``{"error": ...}`` payload the controller can react to.
        """
        try:
            args = self.args_model.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning(f"Invalid arguments for tool {self.name}: {e}")
            message = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            return ToolError(error=f"Invalid arguments for {self.name}: {message}").model_dump()

        try:
            return self.handler(context, args).model_dump(mode="json")
        except Exception as e:
            logger.error(f"Tool {self.name} failed for run {context.run_id}: {e}", exc_info=True)
            context.db.rollback()
            return ToolError(error=str(e) or f"{self.name} failed").model_dump()


def fetch_user_context(context: ToolContext, args: FetchUserContextArgs) -> FetchUserContextResult:
    snapshot = context.inventory.fetch_context(context.user_id, include_lists=args.include_lists)
    return FetchUserContextResult(
        inventory=[ContextInventoryItem.model_validate(i) for i in snapshot["inventory"]],
        low_stock=[ContextInventoryItem.model_validate(i) for i in snapshot["low_stock"]],
        active_lists=[ContextGroceryList.model_validate(g) for g in snapshot["active_lists"]],
    )


def parse_grocery_text(context: ToolContext, args: ParseGroceryTextArgs) -> ParseGroceryTextResult:
    result = context.extraction.parse_text(args.text)
    return ParseGroceryTextResult(
        items=result.items,
        confidence=result.overall_confidence,
        needs_review=result.needs_review,
        used_fallback=result.used_fallback,
        original_text=result.original_text,
        warnings=result.error,
    )


def apply_inventory_updates(context: ToolContext, args: ApplyInventoryUpdatesArgs) -> BaseModel:
    updates = [
        UpdateRecord.model_validate(update.model_dump(exclude_unset=True))
        for update in args.updates
    ]
    return context.inventory.apply_updates(
        context.user_id, updates, args.action_type or context.audit_action
    )


DEFAULT_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=FETCH_USER_CONTEXT,
        description="Fetch the user's recent inventory, low-stock items and optionally active grocery lists",
        args_model=FetchUserContextArgs,
        handler=fetch_user_context,
    ),
    ToolSpec(
        name=PARSE_GROCERY_TEXT,
        description="Parse grocery-related natural language into structured, normalized updates",
        args_model=ParseGroceryTextArgs,
        handler=parse_grocery_text,
    ),
    ToolSpec(
        name=APPLY_INVENTORY_UPDATES,
        description="Apply structured inventory updates to the user's inventory",
        args_model=ApplyInventoryUpdatesArgs,
        handler=apply_inventory_updates,
    ),
)


@dataclass(frozen=True)
class AgentConfig:
    """Immutable agent configuration, built once and passed to each run."""

    model: str
    max_turns: int
    system_prompt: str = AGENT_SYSTEM_PROMPT
    tools: tuple[ToolSpec, ...] = DEFAULT_TOOLS

    def tool(self, name: str) -> ToolSpec | None:
        return next((spec for spec in self.tools if spec.name == name), None)


def build_agent_config(settings: Settings | None = None) -> AgentConfig:
    settings = settings or get_settings()
    return AgentConfig(model=settings.agent_model, max_turns=settings.agent_max_turns)


# --- Transcript ----------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class UserMessage:
    text: str  # Raw user text
    prompt: str  # What the model sees


@dataclass(frozen=True)
class AssistantTurn:
    text: str
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    name: str
    output: dict[str, Any]

    @property
    def is_error(self) -> bool:
        return "error" in self.output


TranscriptEntry = UserMessage | AssistantTurn | ToolResult


class AgentController(Protocol):
    """Decides the next assistant turn from the transcript so far."""

    def next_turn(self, transcript: list[TranscriptEntry], config: AgentConfig) -> AssistantTurn: ...


# --- Controllers ---------------------------------------------------------


class ModelController:
    """Controller backed by the Anthropic Messages API with tool use."""

    def __init__(self, client: anthropic.Anthropic) -> None:
        self.client = client

    @staticmethod
    def to_messages(transcript: list[TranscriptEntry]) -> list[dict[str, Any]]:
        """Convert the transcript into alternating user/assistant messages."""
        messages: list[dict[str, Any]] = []
        pending_results: list[dict[str, Any]] = []

        def flush_results() -> None:
            if pending_results:
                messages.append({"role": "user", "content": list(pending_results)})
                pending_results.clear()

        for entry in transcript:
            if isinstance(entry, ToolResult):
                pending_results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": entry.call_id,
                        "content": json.dumps(entry.output, default=str),
                        "is_error": entry.is_error,
                    }
                )
                continue
            flush_results()
            if isinstance(entry, UserMessage):
                messages.append({"role": "user", "content": entry.prompt})
            else:
                content: list[dict[str, Any]] = []
                if entry.text:
                    content.append({"type": "text", "text": entry.text})
                for call in entry.tool_calls:
                    content.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
                messages.append({"role": "assistant", "content": content})
        flush_results()
        return messages

    def next_turn(self, transcript: list[TranscriptEntry], config: AgentConfig) -> AssistantTurn:
        message = self.client.messages.create(
            model=config.model,
            max_tokens=4096,
            system=config.system_prompt,
            tools=[
                {
                    "name": spec.name,
                    "description": spec.description,
                    "input_schema": spec.input_schema(),
                }
                for spec in config.tools
            ],
            messages=self.to_messages(transcript),
        )

        text_parts = []
        calls = []
        for block in message.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(arguments)))
        return AssistantTurn(text="\n".join(text_parts).strip(), tool_calls=tuple(calls))


class Stage(StrEnum):
    CONTEXT = "context"
    PARSE = "parse"
    APPLY = "apply"
    DONE = "done"


class StagedController:
    """Deterministic context -> parse -> confirm -> apply pipeline.

    Each stage only issues the one tool valid for it, and its input is the
    previous stage's output. A parse that needs review (or found nothing)
    ends the run without applying anything.
    """

    def __init__(self, include_lists: bool = False) -> None:
        self.include_lists = include_lists

    @staticmethod
    def _call(name: str, arguments: dict[str, Any]) -> ToolCall:
        return ToolCall(id=f"call_{uuid.uuid4().hex}", name=name, arguments=arguments)

    @staticmethod
    def _results(transcript: list[TranscriptEntry]) -> dict[str, ToolResult]:
        return {entry.name: entry for entry in transcript if isinstance(entry, ToolResult)}

    @classmethod
    def stage(cls, transcript: list[TranscriptEntry]) -> Stage:
        results = cls._results(transcript)
        if APPLY_INVENTORY_UPDATES in results:
            return Stage.DONE
        if PARSE_GROCERY_TEXT in results:
            return Stage.APPLY
        if FETCH_USER_CONTEXT in results:
            return Stage.PARSE
        return Stage.CONTEXT

    @staticmethod
    def _to_update(item: dict[str, Any]) -> dict[str, Any]:
        update = {
            key: item[key]
            for key in ("name", "quantity", "action", "unit", "category", "location", "brand", "notes")
            if item.get(key) is not None
        }
        if "expiration" in item:
            update["expiration"] = item["expiration"]
        return update

    def next_turn(self, transcript: list[TranscriptEntry], config: AgentConfig) -> AssistantTurn:
        user = next(entry for entry in transcript if isinstance(entry, UserMessage))
        results = self._results(transcript)
        stage = self.stage(transcript)

        if stage == Stage.CONTEXT:
            return AssistantTurn(
                text="Checking your current inventory.",
                tool_calls=(self._call(FETCH_USER_CONTEXT, {"include_lists": self.include_lists}),),
            )

        if stage == Stage.PARSE:
            return AssistantTurn(
                text="Parsing your grocery text.",
                tool_calls=(self._call(PARSE_GROCERY_TEXT, {"text": user.text}),),
            )

        if stage == Stage.APPLY:
            parsed = results[PARSE_GROCERY_TEXT].output
            if "error" in parsed:
                return AssistantTurn(text=f"Could not parse the text: {parsed['error']}")
            items = parsed.get("items") or []
            if not items:
                return AssistantTurn(text="No grocery items were recognized, so nothing was changed.")
            listing = ", ".join(
                " ".join(
                    part
                    for part in (
                        item["action"],
                        f"{item['quantity']:g}",
                        item.get("unit"),
                        item["name"],
                    )
                    if part
                )
                for item in items
            )
            if parsed.get("needs_review"):
                return AssistantTurn(
                    text=(
                        f"Parsed {len(items)} item(s) ({listing}) but they need review "
                        f"(confidence {parsed.get('confidence', 0):.2f}). Nothing was applied."
                    )
                )
            return AssistantTurn(
                text=f"Applying {len(items)} update(s): {listing}.",
                tool_calls=(
                    self._call(
                        APPLY_INVENTORY_UPDATES,
                        {"updates": [self._to_update(item) for item in items]},
                    ),
                ),
            )

        applied = results[APPLY_INVENTORY_UPDATES].output
        if "error" in applied:
            return AssistantTurn(text=f"Failed to apply updates: {applied['error']}")
        summary = applied.get("summary", {})
        messages = [o.get("message") or o.get("error") for o in applied.get("outcomes", [])]
        detail = "; ".join(m for m in messages if m)
        return AssistantTurn(
            text=(
                f"Applied {summary.get('successful', 0)}/{summary.get('total', 0)} "
                f"inventory updates. {detail}"
            ).strip()
        )


def build_controller(
    settings: Settings | None = None,
    client: anthropic.Anthropic | None = None,
) -> AgentController:
    """Select a controller from ``agent_controller``.

    ``auto`` uses the model when an Anthropic key is configured and falls
    back to the staged pipeline otherwise.

    Raises:
        AgentConfigurationError: If ``model`` is requested without a key.
    """
    settings = settings or get_settings()
    mode = settings.agent_controller
    if mode == "staged" or (mode == "auto" and not settings.anthropic_api_key and client is None):
        return StagedController()
    if client is None:
        if not settings.anthropic_api_key:
            raise AgentConfigurationError("agent_controller=model requires ANTHROPIC_API_KEY")
        client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
    return ModelController(client)


# --- Runner --------------------------------------------------------------


@dataclass
class AgentRunResult:
    response: str
    turns: int
    tool_results: list[ToolResult] = field(default_factory=list)

    def _last(self, name: str) -> dict[str, Any] | None:
        for result in reversed(self.tool_results):
            if result.name == name and not result.is_error:
                return result.output
        return None

    @property
    def used_fallback(self) -> bool:
        return any(
            r.name == PARSE_GROCERY_TEXT and r.output.get("used_fallback")
            for r in self.tool_results
        )

    @property
    def confidence(self) -> float | None:
        parsed = self._last(PARSE_GROCERY_TEXT)
        return parsed.get("confidence") if parsed else None

    def summary(self) -> dict[str, Any]:
        parsed = self._last(PARSE_GROCERY_TEXT)
        applied = self._last(APPLY_INVENTORY_UPDATES)
        return {
            "turns": self.turns,
            "tool_calls": len(self.tool_results),
            "tool_errors": sum(1 for r in self.tool_results if r.is_error),
            "used_fallback": self.used_fallback,
            "confidence": self.confidence,
            "needs_review": parsed.get("needs_review") if parsed else None,
            "applied": applied.get("summary") if applied else None,
        }


class AgentRunner:
    """Runs a controller against the tools and records every call."""

    def __init__(self, config: AgentConfig, controller: AgentController) -> None:
        self.config = config
        self.controller = controller

    def _record_start(
        self, context: ToolContext, call: ToolCall, sequence: int
    ) -> ToolInvocation | None:
        try:
            record = ToolInvocation(
                id=call.id,
                run_id=context.run_id,
                user_id=context.user_id,
                name=call.name,
                sequence=sequence,
                status=ToolInvocationStatus.IN_PROGRESS.value,
                arguments=call.arguments,
            )
            context.db.add(record)
            context.db.commit()
            return record
        except SQLAlchemyError as e:
            logger.error(f"Failed to record tool call {call.id}: {e}")
            context.db.rollback()
            return None

    def _record_finish(
        self, context: ToolContext, record: ToolInvocation | None, output: dict[str, Any]
    ) -> None:
        if record is None:
            return
        try:
            record.status = ToolInvocationStatus.COMPLETED.value
            record.output = output
            context.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record tool result {record.id}: {e}")
            context.db.rollback()

    def execute(self, context: ToolContext, call: ToolCall, sequence: int = 0) -> ToolResult:
        record = self._record_start(context, call, sequence)
        spec = self.config.tool(call.name)
        if spec is None:
            output = ToolError(error=f"Unknown tool: {call.name}").model_dump()
        else:
            output = spec.invoke(context, call.arguments)
        self._record_finish(context, record, output)
        return ToolResult(call_id=call.id, name=call.name, output=output)

    def run(self, context: ToolContext, text: str, metadata: dict | None = None) -> AgentRunResult:
        """Drive the controller until it answers without tool calls.

        Raises:
            AgentTurnLimitError: If it is still calling tools after
                ``max_turns`` turns.
        """
        transcript: list[TranscriptEntry] = [
            UserMessage(text=text, prompt=get_agent_prompt(text, metadata))
        ]
        results: list[ToolResult] = []

        for turn in range(1, self.config.max_turns + 1):
            assistant = self.controller.next_turn(transcript, self.config)
            transcript.append(assistant)
            if not assistant.tool_calls:
                logger.info(f"Agent run {context.run_id} finished after {turn} turn(s)")
                return AgentRunResult(response=assistant.text, turns=turn, tool_results=results)

            for call in assistant.tool_calls:
                logger.info(f"Agent run {context.run_id} calling {call.name} ({call.id})")
                result = self.execute(context, call, sequence=len(results))
                results.append(result)
                transcript.append(result)

        raise AgentTurnLimitError(self.config.max_turns)
