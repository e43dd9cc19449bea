"""
Pydantic Schemas for the Voice Command Pipeline

Domain types flowing between the normalizer, classifier, extractor,
context engine and dispatcher, plus the request/response shapes of the
HTTP layer.

Version: 1.0.0
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class ContextLayer(IntEnum):
    """Specificity tier of a context record (higher wins when merging)."""
    GLOBAL = 0
    SESSION = 1
    PAGE = 2
    TASK = 3
    IMMEDIATE = 4


class ContextType(str, Enum):
    USER = "user"
    LOCATION = "location"
    TEMPORAL = "temporal"
    BUSINESS = "business"
    SYSTEM = "system"
    INTERACTION = "interaction"


class PriorityCategory(str, Enum):
    """Command priority categories controlling timeout, retries and queue order."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


class ExecutionStrategy(str, Enum):
    IMMEDIATE = "immediate"
    QUEUED = "queued"
    BATCH = "batch"
    SCHEDULED = "scheduled"


class TransactionStatus(str, Enum):
    """Checkout transaction lifecycle."""
    PENDING = "pending"
    COMMITTED = "committed"
    EXPIRED = "expired"


class SuggestionType(str, Enum):
    CLARIFICATION = "clarification"
    HELP = "help"
    ALTERNATIVE = "alternative"


# =============================================================================
# INTERPRETATION
# =============================================================================

class Intent(BaseModel):
    """Classified purpose of an utterance. Produced fresh per utterance."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, examples=["order"])
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    category: str = Field(default="", examples=["ORDER"])


class Span(BaseModel):
    """Half-open character range [start, end) in the normalized text."""
    model_config = ConfigDict(frozen=True)

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_order(self) -> "Span":
        if self.end < self.start:
            raise ValueError("span end must not precede its start")
        return self

    def overlaps(self, other: "Span") -> bool:
        # Overlap iff neither ends before the other starts
        return not (self.end <= other.start or other.end <= self.start)


class Entity(BaseModel):
    """A typed value extracted from (or inferred for) an utterance."""
    type: str = Field(..., examples=["product"])
    category: str = Field(default="", examples=["pizza"])
    raw_value: str = Field(default="", examples=["pizza"])
    normalized_value: str = Field(..., examples=["pizza"])
    span: Optional[Span] = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    inferred: bool = False

    def overlaps(self, other: "Entity") -> bool:
        if self.span is None or other.span is None:
            return False
        return self.span.overlaps(other.span)


class Suggestion(BaseModel):
    """Prompt offered to the user when an utterance needs restating."""
    type: SuggestionType
    message: str
    actions: list[str] = Field(default_factory=list)


class Interpretation(BaseModel):
    """Result of interpreting one utterance."""
    intent: Intent
    ranked_intents: list[Intent] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    normalized_text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    suggestions: list[Suggestion] = Field(default_factory=list)


# =============================================================================
# DOMAIN CONTEXT (read-only per call)
# =============================================================================

class Product(BaseModel):
    """Catalog entry supplied by the host application."""
    id: str = Field(default="", examples=["pizza_margherita"])
    name: str = Field(..., examples=["Pizza Margherita"])
    price: float = Field(default=0.0, ge=0, examples=[18.50])
    category: Optional[str] = Field(None, examples=["pizza"])
    description: Optional[str] = None
    available: bool = True
    stock: Optional[int] = Field(None, ge=0)
    allergens: list[str] = Field(default_factory=list)
    ingredients: list[str] = Field(default_factory=list)


class Modifier(BaseModel):
    type: str
    value: str
    price_adjustment: float = 0.0


class CartItem(BaseModel):
    """Single line in the cart. `price` is the line total."""
    product: Optional[Product] = None
    quantity: int = Field(default=1, ge=1, le=99)
    modifiers: list[Modifier] = Field(default_factory=list)
    price: float = Field(default=0.0, ge=0)

    @property
    def name(self) -> str:
        return self.product.name if self.product else ""


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> float:
        return round(sum(item.price for item in self.items), 2)


class Location(BaseModel):
    city: Optional[str] = Field(None, examples=["Zurich"])
    country: Optional[str] = Field(None, examples=["CH"])
    zip_code: Optional[str] = Field(None, examples=["8001"])


class DomainContext(BaseModel):
    """
    Situational data supplied by the host on every call.

    Example:
        {
            "session_id": "client_42",
            "language": "de-CH",
            "current_page": "/menu",
            "products": [{"id": "p1", "name": "Pizza Margherita", "price": 18.5}],
            "cart": {"items": []},
            "location": {"city": "Zurich"}
        }
    """
    model_config = ConfigDict(extra="allow")

    session_id: Optional[str] = None
    user_id: Optional[str] = None
    language: Optional[str] = None
    current_page: Optional[str] = None
    previous_page: Optional[str] = None
    products: list[Product] = Field(default_factory=list)
    cart: Cart = Field(default_factory=Cart)
    location: Location = Field(default_factory=Location)
    schedule_at: Optional[datetime] = None


# =============================================================================
# CONTEXT ENGINE
# =============================================================================

class ContextRecord(BaseModel):
    """A situational fact owned by the context engine."""
    id: str
    type: ContextType
    layer: ContextLayer = ContextLayer.IMMEDIATE
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    expires_at: datetime
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    active: bool = True
    session_id: Optional[str] = None
    sequence: int = 0

    @model_validator(mode="after")
    def check_expiry(self) -> "ContextRecord":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        return self

    def is_visible(self, now: datetime) -> bool:
        return self.active and now < self.expires_at


class Session(BaseModel):
    id: str
    client_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    context_ids: list[str] = Field(default_factory=list)
    event_ids: list[str] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class DetectedPattern(BaseModel):
    """A pattern recognized while analysing a new context record."""
    name: str
    kind: Literal["trigger", "temporal", "sequential"]
    confidence: float = Field(..., ge=0.0, le=1.0)
    vocabulary: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class Prediction(BaseModel):
    """Short-horizon guess about the next context or action."""
    source: Literal["pattern", "behavior", "temporal"]
    pattern: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    predicted: list[str] = Field(default_factory=list)
    reasoning: str = ""
    time_frame: str = "immediate"


# =============================================================================
# DISPATCH
# =============================================================================

class OrderTotals(BaseModel):
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    currency: str = "CHF"


class Command(BaseModel):
    """Transient unit of work created per dispatch call."""
    id: str
    intent: Intent
    entities: list[Entity] = Field(default_factory=list)
    context: DomainContext = Field(default_factory=DomainContext)
    context_snapshot: dict[str, Any] = Field(default_factory=dict)
    priority_category: PriorityCategory = PriorityCategory.NORMAL
    strategy: ExecutionStrategy = ExecutionStrategy.IMMEDIATE
    created_at: datetime
    scheduled_for: Optional[datetime] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.context.session_id


class Transaction(BaseModel):
    """A pending checkout grouping cart items awaiting commit or expiry."""
    id: str
    session_id: Optional[str] = None
    items: list[CartItem] = Field(default_factory=list)
    totals: Optional[OrderTotals] = None
    payment_method: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime
    committed_at: Optional[datetime] = None


class CommandResult(BaseModel):
    """Successful (or clarification) outcome of a command."""
    success: Literal[True] = True
    action: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    suggestions: list[Suggestion] = Field(default_factory=list)
    execution_time: float = 0.0
    from_cache: bool = False
    command_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class ErrorResult(BaseModel):
    """Failed outcome of a command."""
    success: Literal[False] = False
    action: str
    error: str
    code: str
    retryable: bool = False
    execution_time: float = 0.0
    command_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


Result = Union[CommandResult, ErrorResult]


# =============================================================================
# LEARNING
# =============================================================================

class BehaviorStats(BaseModel):
    total_commands: int = 0
    successful_commands: int = 0
    intent_counts: dict[str, int] = Field(default_factory=dict)
    preferred_intents: list[str] = Field(default_factory=list)
    average_order_value: float = 0.0
    completed_orders: int = 0


class UserProfile(BaseModel):
    """Per-user preferences and learned behaviour, persisted in the store."""
    id: str
    preferences: dict[str, Any] = Field(default_factory=dict)
    behavior_stats: BehaviorStats = Field(default_factory=BehaviorStats)
    learned_adjustments: dict[str, float] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class AdaptationRule(BaseModel):
    """
    Learned confidence adjustment.

    The rule fires when every condition equals the corresponding context
    feature; `intent=None` applies it to every intent.
    """
    id: str
    intent: Optional[str] = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    confidence_delta: float = Field(default=0.1, ge=-1.0, le=1.0)
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.now)

    def matches(self, features: dict[str, Any]) -> bool:
        return all(features.get(key) == value for key, value in self.conditions.items())

    def applies_to(self, intent_name: str) -> bool:
        return self.intent is None or self.intent == intent_name


class PredictionFeedback(BaseModel):
    """One entry of the correct/incorrect prediction log."""
    text: str
    predicted_intent: str
    expected_intent: str
    features: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=datetime.now)

    @property
    def correct(self) -> bool:
        return self.predicted_intent == self.expected_intent


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class InterpretRequest(BaseModel):
    """Request schema for interpreting a transcribed utterance."""
    text: str = Field(..., max_length=500, examples=["Ich möchte zwei Pizza bestellen"])
    context: DomainContext = Field(default_factory=DomainContext)

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class ExecuteRequest(BaseModel):
    """Request schema for executing an already classified intent."""
    intent: Intent
    entities: list[Entity] = Field(default_factory=list)
    context: DomainContext = Field(default_factory=DomainContext)
    strategy: Optional[ExecutionStrategy] = None


class FeedbackRequest(BaseModel):
    """Explicit correctness feedback for a previous interpretation."""
    text: str
    predicted_intent: str
    expected_intent: str
    context: DomainContext = Field(default_factory=DomainContext)


class CommitRequest(BaseModel):
    transaction_id: str


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class ProcessResponse(BaseModel):
    """Interpretation plus the outcome of executing its top intent."""
    interpretation: Interpretation
    result: Result


class FeedbackResponse(BaseModel):
    success: bool
    correct: bool
    rules_created: int = 0


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    queue_size: int
    active_transactions: int
    timestamp: datetime
