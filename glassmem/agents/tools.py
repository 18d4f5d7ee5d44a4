"""
Tool dispatcher - executes planner tool calls against the output log and memory.

The tool set is closed:
- store_memory - embed and index content
- retrieve_memory - similarity search over stored memories
- update_memory - accepted and logged only; records are not modified
- analyze_content - store an analysis note for the originating output

Unknown tool names are logged and ignored. Every known tool call is recorded in
the OutputStore as a tool_call output carrying its tool_name.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from util.logging import emit_event, preview, sanitize_payload

from ..core.config import SEARCH_TOP_K
from ..core.models import AgentOutput, OutputKind
from ..core.output_store import OutputStore
from ..vector.memory_service import MemoryService
from .planner import TOOL_DEFINITIONS, ToolCall


class ToolResult:
    """Result of a tool execution."""

    def __init__(self, tool: str, data: List[Dict[str, Any]] = None, success: bool = True,
                 error: Optional[str] = None):
        self.tool = tool
        self.data = data if data is not None else []
        self.success = success
        self.error = error
        self.execution_time = datetime.now()
        self.data_count = len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "data": self.data,
            "success": self.success,
            "error": self.error,
            "data_count": self.data_count,
        }


class ToolDispatcher:
    """
    Routes tool calls to their handlers.

    Handlers never raise into the pipeline: failures become a ToolResult with
    success=False and a failed tool.dispatched event.
    """

    def __init__(self, memory: MemoryService, outputs: OutputStore, sink: Any = None,
                 clock: Callable[[], datetime] = None):
        self.memory = memory
        self.outputs = outputs
        self.sink = sink
        self.clock = clock or datetime.now
        self.tools = {}
        self._register_tools()

    def _register_tools(self):
        """Register all available tools."""
        handlers = {
            "store_memory": self._store_memory,
            "retrieve_memory": self._retrieve_memory,
            "update_memory": self._update_memory,
            "analyze_content": self._analyze_content,
        }
        self.tools = {
            name: {
                "function": handlers[name],
                "description": definition["description"],
                "parameters": definition["parameters"],
            }
            for name, definition in TOOL_DEFINITIONS.items()
        }

    def list_available_tools(self) -> List[str]:
        return list(self.tools)

    def describe_tools(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"description": config["description"], "parameters": config["parameters"]}
            for name, config in self.tools.items()
        }

    async def dispatch(self, call: ToolCall, origin: AgentOutput) -> Optional[ToolResult]:
        """Execute ``call`` on behalf of ``origin``. Returns None for unknown tools."""
        tool_config = self.tools.get(call.name)
        if tool_config is None:
            emit_event(self.sink, "tool.unknown", "ignored", tool=call.name,
                       origin=origin.id)
            return None

        try:
            data = await tool_config["function"](call, origin)
            result = ToolResult(call.name, data)
        except Exception as e:
            result = ToolResult(call.name, success=False, error=str(e))

        emit_event(self.sink, "tool.dispatched", "success" if result.success else "failed",
                   tool=call.name, origin=origin.id, results=result.data_count,
                   parameters=sanitize_payload(call.parameters.to_dict()),
                   error=result.error)

        self.outputs.append(AgentOutput.create(
            kind=OutputKind.TOOL_CALL,
            text=self._describe(call, result),
            confidence=1.0 if result.success else 0.0,
            correlated_timestamps=origin.correlated_timestamps,
            produced_at=self.clock(),
            metadata={
                "tool_name": call.name,
                "tool_call_id": call.id or "",
                "original_output_id": origin.id,
                "success": result.success,
                "result_count": result.data_count,
            },
        ))
        return result

    @staticmethod
    def _describe(call: ToolCall, result: ToolResult) -> str:
        if not result.success:
            return f"{call.name} failed: {result.error}"
        if call.name == "retrieve_memory":
            return f"retrieve_memory returned {result.data_count} memories"
        if call.name == "update_memory":
            return "update_memory requested (not applied)"
        return f"{call.name} completed"

    # Tool implementations

    async def _store_memory(self, call: ToolCall, origin: AgentOutput) -> List[Dict[str, Any]]:
        content = call.parameters.get_str("content") or origin.text
        metadata = {
            "source": f"agent_{origin.kind.value}",
            "timestamp": (origin.produced_at or self.clock()).isoformat(),
            "confidence": f"{origin.confidence:.3f}",
            "original_output_id": origin.id,
        }
        for optional in ("category", "priority"):
            if optional in call.parameters:
                metadata[optional] = call.parameters.get_str(optional)

        record_id = await self.memory.store_memory(content, metadata)
        if record_id is None:
            return []
        return [{"record_id": record_id, "content": preview(content)}]

    async def _retrieve_memory(self, call: ToolCall, origin: AgentOutput) -> List[Dict[str, Any]]:
        query = call.parameters.get_str("query") or origin.text
        limit = call.parameters.get_int("limit", SEARCH_TOP_K)
        hits = await self.memory.retrieve_memory(query, limit=limit)
        return [{"id": hit.id, "text": hit.text, "score": hit.score} for hit in hits]

    async def _update_memory(self, call: ToolCall, origin: AgentOutput) -> List[Dict[str, Any]]:
        emit_event(self.sink, "tool.update_requested", "ignored",
                   record=call.parameters.get_str("id"), origin=origin.id)
        return []

    async def _analyze_content(self, call: ToolCall, origin: AgentOutput) -> List[Dict[str, Any]]:
        content = f"Analysis: {origin.text}"
        record_id = await self.memory.store_memory(content, {
            "source": "agent_analysis",
            "type": "llm_analysis",
            "timestamp": self.clock().isoformat(),
            "original_type": origin.kind.value,
            "content_type": call.parameters.get_str("content_type", "text"),
            "analysis_type": call.parameters.get_str("analysis_type", "semantic"),
        })
        if record_id is None:
            return []
        return [{"record_id": record_id, "content": preview(content)}]
