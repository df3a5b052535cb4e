"""
Data Models Package

This package contains all Pydantic models used in the Fingrow Assistant.
All data flowing through the system must conform to these schemas.
"""

from src.models.assistant import (
    TRANSACTION_CATEGORIES,
    AssistantReply,
    Confirmation,
    ExtractedTransaction,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from src.models.conversation import (
    ContextMessage,
    ConversationSession,
    ConversationStats,
    Message,
    Role,
)
from src.models.finance import (
    Account,
    AccountKind,
    AggregatedSummary,
    Debt,
    Fundamentals,
    Holding,
    Lot,
    LotSide,
    Portfolio,
    Position,
    Quote,
    Transaction,
    TransactionType,
)
from src.models.intent import Confidence, Intent, IntentParams, IntentType
from src.models.provider import (
    ChatMessage,
    ContentBlock,
    ProviderError,
    ProviderErrorType,
    ProviderRequest,
    ProviderResponse,
    ProviderResult,
    TextBlock,
    ToolResultBlock,
    ToolSpec,
    ToolUseBlock,
    Usage,
)
from src.models.tools import ToolCall, ToolResult

__all__ = [
    # Assistant output
    "TRANSACTION_CATEGORIES",
    "AssistantReply",
    "Confirmation",
    "ExtractedTransaction",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Conversation
    "ContextMessage",
    "ConversationSession",
    "ConversationStats",
    "Message",
    "Role",
    # Finance
    "Account",
    "AccountKind",
    "AggregatedSummary",
    "Debt",
    "Fundamentals",
    "Holding",
    "Lot",
    "LotSide",
    "Portfolio",
    "Position",
    "Quote",
    "Transaction",
    "TransactionType",
    # Intent
    "Confidence",
    "Intent",
    "IntentParams",
    "IntentType",
    # Provider wire
    "ChatMessage",
    "ContentBlock",
    "ProviderError",
    "ProviderErrorType",
    "ProviderRequest",
    "ProviderResponse",
    "ProviderResult",
    "TextBlock",
    "ToolResultBlock",
    "ToolSpec",
    "ToolUseBlock",
    "Usage",
    # Tools
    "ToolCall",
    "ToolResult",
]
