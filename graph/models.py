"""Request-scoped value types shared by the router, providers and the API."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Page = Literal["Smart Lessons", "Assignment", "Dashboard", "Ask FalkeAI"]
RequestType = Literal["teach", "question", "review", "hint", "explanation"]

MAX_MESSAGE_LENGTH = 10000


# ---------- Incoming (validated on construction) ----------
class ChatContext(BaseModel):
    userId: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    page: Page = "Ask FalkeAI"
    course: Optional[str] = None


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    context: ChatContext
    # When present, used verbatim: the caller includes the current turn.
    history: Optional[List[HistoryMessage]] = None

    @field_validator("message")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message is required and must be a non-empty string")
        return v

    def history_dicts(self) -> Optional[List[Dict[str, str]]]:
        if not self.history:
            return None
        return [m.model_dump() for m in self.history]


class EnhancedChatRequest(ChatRequest):
    requestType: Optional[RequestType] = None
    userLearningContext: Optional[Dict[str, Any]] = None


# ---------- Routing ----------
@dataclass(frozen=True)
class SelectedModel:
    """One candidate: a provider-specific model id plus routing metadata."""
    key: str
    id: str
    display_name: str
    category: str  # fast | balanced | smart | expert | fallback
    provider: str
    system_role: bool = False


@dataclass(frozen=True)
class RoutingMeta:
    category: str = "balanced"  # coding | reasoning | balanced | fast
    complexity: str = "low"  # low | medium | high
    matched_keyword: Optional[str] = None


@dataclass(frozen=True)
class ProviderReply:
    text: str
    provider: str
    model_id: str


# ---------- Outgoing ----------
@dataclass
class ChatResponse:
    reply_text: str
    provider_used: str
    model_used: str
    model_category: str
    latency_ms: int
    timestamp: str = ""
    attempts: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape returned by the HTTP API."""
        return {
            "reply": self.reply_text,
            "timestamp": self.timestamp,
            "provider": self.provider_used,
            "model": self.model_used,
            "modelType": self.model_category,
            "latencyMs": self.latency_ms,
            "attempts": [dict(a) for a in self.attempts],
        }


@dataclass
class EnhancedChatResponse(ChatResponse):
    request_type: str = "question"
    refined: Optional[Any] = None  # services.response_refiner.RefinedResponse
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["requestType"] = self.request_type
        out["degraded"] = self.degraded
        if self.refined is not None:
            out["refined"] = self.refined.to_dict()
        return out
