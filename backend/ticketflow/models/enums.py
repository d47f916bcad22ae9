"""Enumerated values stored as strings on tickets and activity entries."""

from enum import Enum


class TicketStatus(str, Enum):
    NEW = "new"
    TRIAGED = "triaged"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    USER_REVIEW = "user_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketSource(str, Enum):
    SDK = "sdk"
    PORTAL = "portal"
    MCP = "mcp"
    API = "api"
    ADMIN = "admin"


class TicketType(str, Enum):
    BUG = "bug"
    FEATURE = "feature"
    SUGGESTION = "suggestion"
    TASK = "task"
    ENHANCEMENT = "enhancement"


class TicketPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Resolution(str, Enum):
    FIXED = "fixed"
    WONT_FIX = "wont_fix"
    DUPLICATE = "duplicate"
    DEFERRED = "deferred"
    INVALID = "invalid"
    CANNOT_REPRODUCE = "cannot_reproduce"


class TestingResult(str, Enum):
    PENDING = "pending"
    PASS = "pass"
    FAIL = "fail"
    PARTIAL = "partial"


class ActivityType(str, Enum):
    COMMENT = "comment"
    MESSAGE = "message"
    STATUS_CHANGE = "status_change"
    FIELD_CHANGE = "field_change"
    DECISION = "decision"
    TEST_RESULT = "test_result"
    ASSIGNMENT = "assignment"
    RESOLUTION = "resolution"
    SYSTEM = "system"


class AuthorType(str, Enum):
    USER = "user"
    ADMIN = "admin"
    AGENT = "agent"
    SYSTEM = "system"


class Visibility(str, Enum):
    INTERNAL = "internal"
    USER_VISIBLE = "user_visible"
