"""Shared models used across the page agent."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ClickRect(BaseModel):
    """Bounding box expressed as fractions of the viewport."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    w: float = Field(ge=0.0, le=1.0)
    h: float = Field(ge=0.0, le=1.0)


class Clickable(BaseModel):
    """An element on the page that the agent may interact with."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: str
    label: str = ""
    rect: ClickRect
    href: Optional[str] = None
    tag: str
    disabled: bool = False


class PageSnapshot(BaseModel):
    """Point-in-time view of the interactive elements on a page."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ""
    clickables: tuple[Clickable, ...] = ()

    @model_validator(mode="after")
    def _ids_are_unique(self) -> "PageSnapshot":
        seen: set[str] = set()
        for clickable in self.clickables:
            if clickable.id in seen:
                raise ValueError(f"duplicate clickable id {clickable.id!r}")
            seen.add(clickable.id)
        return self

    def find(self, element_id: str) -> Optional[Clickable]:
        for clickable in self.clickables:
            if clickable.id == element_id:
                return clickable
        return None

    def ids(self) -> set[str]:
        return {clickable.id for clickable in self.clickables}


class ActionType(str, enum.Enum):
    """Discriminant for :data:`AgentAction`."""

    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    WAIT = "wait"
    NAVIGATE = "navigate"
    ASK_USER = "ask_user"
    DONE = "done"


class ScrollDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ClickAction(_Action):
    type: Literal["click"] = "click"
    id: str


class TypeAction(_Action):
    type: Literal["type"] = "type"
    id: Optional[str] = None
    selector: Optional[str] = None
    text: str


class ScrollAction(_Action):
    type: Literal["scroll"] = "scroll"
    direction: ScrollDirection
    amount: int = Field(ge=50, le=2000)

    @property
    def delta(self) -> int:
        """Vertical pixel delta (positive scrolls down)."""

        return self.amount if self.direction is ScrollDirection.DOWN else -self.amount


class WaitAction(_Action):
    type: Literal["wait"] = "wait"
    ms: int = Field(default=1000, ge=50, le=15000)


class NavigateAction(_Action):
    type: Literal["navigate"] = "navigate"
    url: str


class AskUserAction(_Action):
    type: Literal["ask_user"] = "ask_user"
    question: str


class DoneAction(_Action):
    type: Literal["done"] = "done"
    summary: str = ""


AgentAction = Annotated[
    Union[
        ClickAction,
        TypeAction,
        ScrollAction,
        WaitAction,
        NavigateAction,
        AskUserAction,
        DoneAction,
    ],
    Field(discriminator="type"),
]


class ActionPlan(BaseModel):
    """The model's proposed actions plus optional metadata."""

    model_config = ConfigDict(frozen=True)

    actions: tuple[AgentAction, ...] = ()
    notes: Optional[str] = None
    reasoning: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return bool(self.error and self.error.strip())


class LogKind(str, enum.Enum):
    """Category of an audit log entry."""

    INFO = "info"
    MODEL = "model"
    ACTION = "action"
    RESULT = "result"
    ERROR = "error"
    WARNING = "warning"


class AgentLogEntry(BaseModel):
    """Immutable record in a run's audit trail."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    kind: LogKind
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class ScrollPosition(BaseModel):
    x: float = 0.0
    y: float = 0.0


class ScrollBounds(BaseModel):
    max_x: float = Field(default=0.0, alias="maxX")
    max_y: float = Field(default=0.0, alias="maxY")

    model_config = ConfigDict(populate_by_name=True)


class ScrollResult(BaseModel):
    """Window scroll position reported by the page after scrolling."""

    model_config = ConfigDict(populate_by_name=True)

    did_scroll: bool = Field(alias="didScroll")
    position: ScrollPosition = Field(default_factory=ScrollPosition)
    bounds: ScrollBounds = Field(default_factory=ScrollBounds)
    at_top: bool = Field(default=False, alias="atTop")
    at_bottom: bool = Field(default=False, alias="atBottom")


class ResponseMetadata(BaseModel):
    """Transport details recorded for every provider call."""

    request_id: str
    status_code: int = 200
    latency_ms: int = 0
    byte_count: int = 0


class ProviderResponse(BaseModel):
    """Raw model output returned by a plan provider."""

    raw_text: str
    metadata: ResponseMetadata
