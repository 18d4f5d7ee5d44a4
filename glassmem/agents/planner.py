"""
Tool planners: turn a recognition context into a reply and a list of tool calls.
RuleBasedPlanner is a deterministic stand-in for an on-device model;
OllamaToolPlanner asks a local Ollama model with native tool calling.
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import ollama

from util.logging import emit_event

from ..core.values import ValueMap

# Tool schema advertised to planners
TOOL_DEFINITIONS = {
    "store_memory": {
        "description": "Store information in the memory index for future retrieval",
        "parameters": {
            "content": {"type": "string", "required": True, "description": "Content to store"},
            "category": {"type": "string", "required": False, "description": "Category of the content"},
            "priority": {"type": "string", "required": False, "description": "Priority level: low, medium, high"},
        },
    },
    "retrieve_memory": {
        "description": "Retrieve relevant information from the memory index",
        "parameters": {
            "query": {"type": "string", "required": True, "description": "Search query"},
            "limit": {"type": "integer", "required": False, "description": "Maximum number of results"},
        },
    },
    "update_memory": {
        "description": "Update existing information in the memory index",
        "parameters": {
            "id": {"type": "string", "required": True, "description": "ID of the entry to update"},
            "content": {"type": "string", "required": True, "description": "Updated content"},
        },
    },
    "analyze_content": {
        "description": "Analyze content for insights and patterns",
        "parameters": {
            "content_type": {"type": "string", "required": False, "description": "Type of content: text, image, audio"},
            "analysis_type": {"type": "string", "required": False, "description": "Type of analysis: semantic, sentiment, topic"},
        },
    },
}

STOP_WORDS = {
    'the', 'and', 'for', 'are', 'but', 'not', 'you', 'all', 'can', 'had', 'was', 'one', 'our', 'out',
    'day', 'get', 'has', 'him', 'his', 'how', 'its', 'may', 'new', 'now', 'old', 'see', 'two', 'way',
    'who', 'did', 'her', 'she', 'use', 'each', 'make', 'most', 'over', 'said', 'some', 'time', 'very',
    'what', 'with', 'have', 'from', 'they', 'know', 'want', 'been', 'good', 'much', 'when', 'come',
    'here', 'just', 'like', 'long', 'many', 'such', 'take', 'than', 'them', 'well', 'were',
}


@dataclass(frozen=True)
class ToolCall:
    """A named action requested by a planner."""
    name: str
    parameters: ValueMap = field(default_factory=ValueMap)
    id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.parameters, ValueMap):
            object.__setattr__(self, "parameters", ValueMap(self.parameters or {}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(name=data.get("name") or "unknown",
                   parameters=ValueMap(data.get("parameters") or {}),
                   id=data.get("id"))


@dataclass
class PlannerResponse:
    """Planner reply with requested tool calls."""
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    processing_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class IToolPlanner(ABC):
    """Abstract interface for tool planners."""

    async def initialize(self) -> bool:
        return True

    @property
    def is_ready(self) -> bool:
        return True

    @abstractmethod
    async def plan(self, context: str, available_tools: List[str]) -> Optional[PlannerResponse]:
        """Return a reply and tool calls for ``context``, or None on failure."""
        pass


def extract_search_query(context: str, max_words: int = 5) -> str:
    """Keep the first few informative words of ``context``."""
    words = context.lower().split()
    important = [w for w in words if len(w) > 3 and w not in STOP_WORDS]
    return " ".join(important[:max_words])


def summarize_content(context: str) -> str:
    if len(context) <= 100:
        return context
    first_sentence = context.split(". ")[0]
    if len(first_sentence) <= 150:
        return first_sentence
    return context[:100] + "..."


class RuleBasedPlanner(IToolPlanner):
    """
    Keyword-rule planner that needs no model.
    Used for testing, development, and when Ollama is unavailable.
    Its store_memory calls carry no content, so the dispatcher stores the output text.
    """

    def __init__(self):
        self._ready = False

    async def initialize(self) -> bool:
        self._ready = True
        return True

    @property
    def is_ready(self) -> bool:
        return self._ready

    def _rules(self, context: str) -> Dict[str, Any]:
        lowered = context.lower()
        if "asr" in lowered and "speech" in lowered:
            return {
                "content": "I detected speech content that should be stored for future reference.",
                "tool_calls": [
                    {"name": "store_memory", "parameters": {"category": "speech_interaction"}},
                ],
            }
        if "ocr" in lowered and "text" in lowered:
            return {
                "content": "I found text in the visual content that might be useful.",
                "tool_calls": [
                    {"name": "store_memory", "parameters": {"category": "visual_text"}},
                    {"name": "analyze_content", "parameters": {
                        "content_type": "text",
                        "analysis_type": "semantic",
                    }},
                ],
            }
        if "confidence" in lowered and "high" in lowered:
            return {
                "content": "This seems like important information worth remembering.",
                "tool_calls": [
                    {"name": "store_memory", "parameters": {"priority": "high"}},
                    {"name": "retrieve_memory", "parameters": {"query": "similar important information"}},
                ],
            }
        if "query" in lowered or "search" in lowered:
            return {
                "content": "Let me search for relevant information in memory.",
                "tool_calls": [
                    {"name": "retrieve_memory", "parameters": {"query": extract_search_query(context)}},
                ],
            }
        return {
            "content": "I've processed this information and determined it should be stored.",
            "tool_calls": [
                {"name": "store_memory", "parameters": {"content": summarize_content(context)}},
            ],
        }

    async def plan(self, context: str, available_tools: List[str]) -> Optional[PlannerResponse]:
        if not self._ready:
            return None

        start = time.perf_counter()
        decision = self._rules(context)
        calls = [ToolCall.from_dict(call) for call in decision["tool_calls"]]
        if available_tools:
            calls = [call for call in calls if call.name in available_tools]

        return PlannerResponse(
            content=decision["content"],
            tool_calls=calls,
            processing_time=time.perf_counter() - start,
            metadata={
                "planner": "rule_based",
                "context_length": len(context),
                "available_tools": list(available_tools),
            },
        )


def _field(obj: Any, key: str) -> Any:
    # ollama responses are subscriptable models; tests may pass plain dicts
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, None)


class OllamaToolPlanner(IToolPlanner):
    """
    Planner backed by a local Ollama model using native tool calling.
    Ollama errors are logged and produce no plan for that cycle.
    """

    SYSTEM_PROMPT = (
        "You are the memory agent of a pair of smart glasses. You receive speech and "
        "text recognized from the wearer's surroundings. Reply briefly and call tools "
        "to store or retrieve memories when useful."
    )

    def __init__(self, model_name: str = "llama3.2", host: str = None, client: Any = None,
                 sink: Any = None):
        self.model_name = model_name
        self.host = host
        self.client = client or ollama.Client(host=host)
        self.sink = sink
        self._ready = False

    async def initialize(self) -> bool:
        """Check that the Ollama server answers."""
        try:
            await asyncio.to_thread(self.client.list)
            self._ready = True
        except Exception as e:
            emit_event(self.sink, "planner.unavailable", "failed", planner="ollama", error=str(e))
            self._ready = False
        return self._ready

    @property
    def is_ready(self) -> bool:
        return self._ready

    @staticmethod
    def build_tool_schema(available_tools: List[str]) -> List[Dict[str, Any]]:
        """Tool definitions in the function-calling format Ollama expects."""
        schema = []
        for name in available_tools:
            definition = TOOL_DEFINITIONS.get(name)
            if definition is None:
                continue
            properties = {
                param: {"type": spec["type"], "description": spec["description"]}
                for param, spec in definition["parameters"].items()
            }
            required = [param for param, spec in definition["parameters"].items() if spec.get("required")]
            schema.append({
                "type": "function",
                "function": {
                    "name": name,
                    "description": definition["description"],
                    "parameters": {"type": "object", "properties": properties, "required": required},
                },
            })
        return schema

    @staticmethod
    def parse_tool_calls(message: Any) -> List[ToolCall]:
        calls = []
        for raw in _field(message, "tool_calls") or []:
            function = _field(raw, "function")
            name = _field(function, "name")
            if not name:
                continue
            arguments = _field(function, "arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except ValueError:
                    arguments = {}
            calls.append(ToolCall(name=name, parameters=ValueMap(dict(arguments)),
                                  id=str(uuid.uuid4())))
        return calls

    async def plan(self, context: str, available_tools: List[str]) -> Optional[PlannerResponse]:
        messages = [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {"role": "user", "content": context},
        ]
        start = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.chat,
                model=self.model_name,
                messages=messages,
                tools=self.build_tool_schema(available_tools),
            )
        except ollama.ResponseError as e:
            emit_event(self.sink, "planner.failed", "failed", planner="ollama", model_error=True, error=str(e))
            return None
        except Exception as e:
            emit_event(self.sink, "planner.failed", "failed", planner="ollama", error=str(e))
            return None

        message = _field(response, "message")
        return PlannerResponse(
            content=_field(message, "content") or "",
            tool_calls=self.parse_tool_calls(message),
            processing_time=time.perf_counter() - start,
            metadata={
                "planner": "ollama",
                "model": self.model_name,
                "context_length": len(context),
                "available_tools": list(available_tools),
            },
        )
