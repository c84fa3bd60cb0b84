"""Pydantic models matching the dashboard's shared TypeScript types."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    Tag,
    TypeAdapter,
)

# ── Transcript content blocks ──────────────────────────────────────

_BLOCK_TAGS = {"text", "tool_use", "tool_result"}
_RECORD_TAGS = {"user", "assistant", "queue-operation"}


def _tag_of(value: Any, known: set[str]) -> str:
    tag = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return tag if isinstance(tag, str) and tag in known else "other"


def _block_tag(value: Any) -> str:
    return _tag_of(value, _BLOCK_TAGS)


def _record_tag(value: Any) -> str:
    return _tag_of(value, _RECORD_TAGS)


class TextBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: Any = None
    is_error: Optional[bool] = None


class OtherBlock(BaseModel):
    """Block kinds we carry through untouched (thinking, image, ...)."""

    model_config = ConfigDict(extra="allow")

    type: Any = None


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[ToolUseBlock, Tag("tool_use")],
        Annotated[ToolResultBlock, Tag("tool_result")],
        Annotated[OtherBlock, Tag("other")],
    ],
    Discriminator(_block_tag),
]


class UserMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str = "user"
    content: Union[str, list[ContentBlock]] = ""


class AssistantMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str = "assistant"
    content: Union[str, list[ContentBlock]] = Field(default_factory=list)
    model: Optional[str] = None
    id: Optional[str] = None


# ── Transcript records ─────────────────────────────────────────────

class _RecordBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    timestamp: Optional[str] = None
    sessionId: Optional[str] = None


class _MessageRecord(_RecordBase):
    uuid: Optional[str] = None
    parentUuid: Optional[str] = None
    isSidechain: bool = False
    cwd: Optional[str] = None
    gitBranch: Optional[str] = None
    slug: Optional[str] = None
    agentId: Optional[str] = None


class UserRecord(_MessageRecord):
    type: Literal["user"] = "user"
    message: UserMessage = Field(default_factory=UserMessage)


class AssistantRecord(_MessageRecord):
    type: Literal["assistant"] = "assistant"
    message: AssistantMessage = Field(default_factory=AssistantMessage)


class QueueOperationRecord(_RecordBase):
    type: Literal["queue-operation"] = "queue-operation"
    operation: Optional[str] = None
    content: Optional[str] = None


class OtherRecord(_MessageRecord):
    """Record kinds the analyzers do not interpret (summary, system, ...)."""

    type: Any = None


Record = Annotated[
    Union[
        Annotated[UserRecord, Tag("user")],
        Annotated[AssistantRecord, Tag("assistant")],
        Annotated[QueueOperationRecord, Tag("queue-operation")],
        Annotated[OtherRecord, Tag("other")],
    ],
    Discriminator(_record_tag),
]

record_adapter: TypeAdapter[Record] = TypeAdapter(Record)


def record_to_dict(record: BaseModel) -> dict[str, Any]:
    """Serialize a record back to its on-disk JSON shape."""
    return record.model_dump(mode="json", exclude_unset=True)


# ── Hook events ────────────────────────────────────────────────────

Number = Union[StrictInt, StrictFloat]


class _HookEventBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    sessionId: StrictStr
    timestamp: StrictStr
    cwd: StrictStr
    gitBranch: Optional[StrictStr] = None


class SessionStartEvent(_HookEventBase):
    type: Literal["SessionStart"]
    slug: Optional[StrictStr] = None


class SessionEndEvent(_HookEventBase):
    type: Literal["SessionEnd"]
    messageCount: Number
    duration: Number


class PreToolUseEvent(_HookEventBase):
    type: Literal["PreToolUse"]
    toolName: StrictStr
    toolInput: dict[str, Any]
    messageUuid: StrictStr


class PostToolUseEvent(_HookEventBase):
    type: Literal["PostToolUse"]
    toolName: StrictStr
    toolOutput: Any
    success: StrictBool
    duration: Number
    messageUuid: StrictStr


HookEvent = Annotated[
    Union[SessionStartEvent, SessionEndEvent, PreToolUseEvent, PostToolUseEvent],
    Field(discriminator="type"),
]

hook_event_adapter: TypeAdapter[HookEvent] = TypeAdapter(HookEvent)


# ── Session-related models ──────────────────────────────────────────

SessionStatus = Literal["active", "idle"]
SubagentStatus = Literal["running", "completed", "error"]


class Subagent(BaseModel):
    agentId: str
    sessionId: str = ""
    task: str = "Unknown task"
    status: SubagentStatus = "completed"
    startTime: str = ""
    endTime: Optional[str] = None
    duration: Optional[int] = None
    messageCount: int = 0
    toolCallCount: int = 0
    currentTool: Optional[str] = None
    parentAgentId: Optional[str] = None


class Session(BaseModel):
    id: str
    project: str
    projectPath: str
    status: SessionStatus = "idle"
    lastActivity: str = ""
    messageCount: int = 0
    toolCallCount: int = 0
    subagentCount: int = 0
    model: Optional[str] = None
    cwd: Optional[str] = None
    gitBranch: Optional[str] = None
    slug: Optional[str] = None
    createdAt: Optional[str] = None
    subagents: Optional[list[Subagent]] = None


class SessionDetail(Session):
    transcript: list[dict[str, Any]] = Field(default_factory=list)


class Project(BaseModel):
    id: str
    name: str = ""
    fullPath: str = ""
    sessions: list[Session] = Field(default_factory=list)
    sessionCount: int = 0
    activeSessionCount: int = 0
    lastActivity: str = ""
    totalMessages: int = 0
    totalToolCalls: int = 0
    totalSubagents: int = 0


class ProjectsResponse(BaseModel):
    projects: list[Project] = Field(default_factory=list)
    totalProjects: int = 0
    totalSessions: int = 0
    activeSessionCount: int = 0


class ProjectDetailResponse(BaseModel):
    project: Project


class TranscriptResponse(BaseModel):
    sessionId: str
    transcript: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


class SubagentsResponse(BaseModel):
    sessionId: str
    subagents: list[Subagent] = Field(default_factory=list)


# ── Stats models ────────────────────────────────────────────────────

class DailyActivity(BaseModel):
    date: str
    messageCount: int = 0
    sessionCount: int = 0
    toolCallCount: int = 0


class DailyModelTokens(BaseModel):
    date: str
    tokensByModel: dict[str, int] = Field(default_factory=dict)


class ModelUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    inputTokens: int = 0
    outputTokens: int = 0
    cacheReadInputTokens: int = 0
    cacheCreationInputTokens: int = 0
    webSearchRequests: int = 0
    costUSD: float = 0.0
    contextWindow: int = 0


class LongestSession(BaseModel):
    sessionId: str = ""
    duration: int = 0
    messageCount: int = 0
    timestamp: str = ""


class StatsCache(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: int = 0
    lastComputedDate: str = ""
    dailyActivity: list[DailyActivity] = Field(default_factory=list)
    dailyModelTokens: list[DailyModelTokens] = Field(default_factory=list)
    modelUsage: dict[str, ModelUsage] = Field(default_factory=dict)
    totalSessions: int = 0
    totalMessages: int = 0
    longestSession: LongestSession = Field(default_factory=LongestSession)
    firstSessionDate: str = ""
    hourCounts: dict[str, int] = Field(default_factory=dict)


class Stats(BaseModel):
    totalSessions: int = 0
    totalMessages: int = 0
    messagesToday: int = 0
    sessionsToday: int = 0
    toolCallsToday: int = 0
    totalTokens: int = 0
    modelUsage: dict[str, ModelUsage] = Field(default_factory=dict)
    dailyActivity: list[DailyActivity] = Field(default_factory=list)
    firstSessionDate: str = ""
    longestSession: LongestSession = Field(default_factory=LongestSession)


class StatsResponse(BaseModel):
    stats: Stats
