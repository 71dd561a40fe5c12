"""Pydantic models for API requests and responses."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .notices import Notice

GoalLevel = Literal["empresa", "oficina", "individual"]
PeriodType = Literal["monthly", "quarterly", "annual"]
Channel = Literal["whatsapp", "instagram", "facebook", "web", "email"]
ConversationStatus = Literal["open", "pending", "resolved", "archived"]
MessageStatus = Literal["sent", "delivered", "read", "failed"]

# =============================================================================
# Goal Models
# =============================================================================


class GoalCreate(BaseModel):
    """Request to create a goal at any level of the cascade."""

    metric_type: str = Field(..., min_length=1, max_length=64)
    target_value: float = Field(..., gt=0)
    period_type: PeriodType = "monthly"
    period_start: date
    period_end: date
    description: str | None = None
    goal_level: GoalLevel = "empresa"
    office: str | None = None
    assigned_to: str | None = None
    parent_goal_id: str | None = None
    weight: float = Field(default=1, gt=0)

    @model_validator(mode="after")
    def check_level_and_period(self) -> "GoalCreate":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        if self.goal_level == "oficina" and not self.office:
            raise ValueError("Office goals need an office")
        if self.goal_level == "individual" and not self.assigned_to:
            raise ValueError("Individual goals need an assignee")
        return self


class Goal(BaseModel):
    """A goal row."""

    id: str
    metric_type: str
    target_value: float
    period_type: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    description: str | None = None
    assigned_to: str | None = None
    goal_level: str | None = None
    office: str | None = None
    parent_goal_id: str | None = None
    weight: float = 1
    contributes_to_parent: bool = True
    created_by: str | None = None
    organization_id: str | None = None
    created_at: datetime | None = None


class GoalListResponse(BaseModel):
    goals: list[Goal]
    total: int


class GoalMutationResponse(BaseModel):
    goal: Goal
    notices: list[Notice] = []


class DistributionResponse(BaseModel):
    """Children created by cascading a goal one level down."""

    parent_goal_id: str
    created: list[Goal]
    share: float
    notices: list[Notice] = []


class GoalProgress(BaseModel):
    goal: Goal
    current: float
    percentage: float
    status: str


class PersonalProgressResponse(BaseModel):
    items: list[GoalProgress]


class MonthlyProgress(BaseModel):
    month: str
    revenue: float
    revenue_target: float
    affiliation: float
    affiliation_target: float
    commission: float
    commission_target: float
    revenue_progress: float
    affiliation_progress: float
    commission_progress: float


class GoalHistoryResponse(BaseModel):
    months: list[MonthlyProgress]
    trends: dict[str, float]


# =============================================================================
# Visit Sheet Models
# =============================================================================


class VisitSheet(BaseModel):
    id: str
    visit_id: str | None = None
    company_id: str | None = None
    fecha: date
    hora: str | None = None
    duracion: int | None = None
    canal: str | None = None
    tipo_visita: str | None = None
    gestor_id: str
    notas_gestor: str | None = None
    created_at: datetime | None = None


class GestorOption(BaseModel):
    id: str
    name: str


class VisitSheetListResponse(BaseModel):
    sheets: list[VisitSheet]
    gestores: list[GestorOption]
    total: int


class AutosaveRequest(BaseModel):
    """Partial edit of a visit sheet, written after input pauses."""

    fields: dict[str, Any] = Field(..., min_length=1)


class AutosaveState(BaseModel):
    sheet_id: str
    pending: bool
    fields: list[str]
    last_error: str | None = None


# =============================================================================
# Omnichannel Models
# =============================================================================


class Contact(BaseModel):
    id: str
    name: str
    avatar: str | None = None
    phone: str | None = None
    email: str | None = None


class LastMessage(BaseModel):
    content: str
    timestamp: datetime
    is_from_contact: bool


class Conversation(BaseModel):
    id: str
    contact: Contact
    channel: Channel
    status: ConversationStatus
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    assignee_id: str | None = None
    last_message: LastMessage | None = None
    unread_count: int = 0
    sla_deadline: datetime | None = None
    sla_status: Literal["breached", "at_risk", "on_track"] | None = None
    tags: list[str] = []
    company_id: str | None = None


class ConversationListResponse(BaseModel):
    conversations: list[Conversation]
    total: int


class Message(BaseModel):
    id: str
    conversation_id: str
    content: str
    timestamp: datetime
    is_from_contact: bool
    status: MessageStatus
    is_automated: bool = False


class MessageListResponse(BaseModel):
    messages: list[Message]


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4096)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content cannot be empty")
        return v


class SendMessageResponse(BaseModel):
    message: Message
    notices: list[Notice] = []


class AssignRequest(BaseModel):
    assignee_id: str


class StatusUpdateRequest(BaseModel):
    status: ConversationStatus


class TagRequest(BaseModel):
    tag: str = Field(..., min_length=1, max_length=64)


class ConversationMutationResponse(BaseModel):
    conversation: Conversation
    notices: list[Notice] = []


# =============================================================================
# Report Models
# =============================================================================


class TrendPoint(BaseModel):
    month: str
    month_short: str
    current: float
    previous: float
    accumulated: float
    tam: float
    variation: float


class TrendResponse(BaseModel):
    company_id: str
    category: str
    metric: str
    points: list[TrendPoint]


# =============================================================================
# Panel Models
# =============================================================================


class PanelInfo(BaseModel):
    name: str
    title: str
    function: str
    default_action: str
    actions: list[str]
    refresh_seconds: float


class PanelListResponse(BaseModel):
    panels: list[PanelInfo]
    watching: list[str] = []


class PanelRunRequest(BaseModel):
    """Run one panel action; ``action`` defaults to the panel's default."""

    action: str | None = None
    params: dict[str, Any] = {}


class PanelSnapshotResponse(BaseModel):
    panel: str
    action: str
    data: dict[str, Any]
    fetched_at: datetime
    accepted: bool = True
    notices: list[Notice] = []


class WatchRequest(BaseModel):
    params: dict[str, Any] = {}


class WatchResponse(BaseModel):
    panel: str
    watching: bool
    refresh_seconds: float | None = None


# =============================================================================
# Audit Models
# =============================================================================


class AuditStats(BaseModel):
    total_actions: int
    inserts: int
    updates: int
    deletes: int
    unique_users: int
    unique_tables: int
    today_actions: int
    week_actions: int


class TableActivity(BaseModel):
    table_name: str | None
    count: int
    inserts: int
    updates: int
    deletes: int


class UserActivity(BaseModel):
    user_id: str
    user_email: str
    action_count: int
    last_action: datetime


class TimelineDay(BaseModel):
    date: str
    inserts: int
    updates: int
    deletes: int
    total: int


class AuditSummaryResponse(BaseModel):
    stats: AuditStats
    tables: list[TableActivity]
    users: list[UserActivity]
    timeline: list[TimelineDay]
