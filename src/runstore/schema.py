"""
Schema definitions for runstore.

This module defines the Pydantic models persisted by the store:
- Run: one recorded invocation of the external coding agent
- RunLog: one line of streamed output attributed to a run

Design Decisions:
    - Timestamps are integer epoch milliseconds, as reported by the caller
    - Runs are frozen: they are inserted once and never mutated
    - tools_used is stored as JSON text; a list is accepted on construction
    - Unknown fields are rejected so GUI payload typos fail loudly
"""

import json
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Range of an SQLite INTEGER column.
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1


# =============================================================================
# Enums
# =============================================================================


class LogType(str, Enum):
    """Category tag of a run log line."""

    INFO = "info"
    ERROR = "error"
    WARNING = "warning"
    TOOL_CALL = "tool_call"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Record Models
# =============================================================================


class Run(BaseModel):
    """
    One invocation of the external agent.

    A run is recorded exactly once, when the agent invocation completes.

    Attributes:
        id: Unique opaque identifier (primary key)
        session_id: Groups runs into a conversation; empty for ungrouped runs
        timestamp: When the run started, epoch milliseconds
        agent: Identifier of the agent/persona used
        model: Identifier of the backing model
        input: Prompt text
        output: Result text, if any
        tools_used: JSON-encoded list of tool names
        exit_status: Process exit status (0 = success)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Unique run identifier", min_length=1)
    session_id: str = Field(default="", description="Session grouping key")
    timestamp: int = Field(
        ...,
        description="Start time in epoch milliseconds",
        ge=SQLITE_INT_MIN,
        le=SQLITE_INT_MAX,
    )
    agent: str = Field(..., description="Agent identifier")
    model: str = Field(default="", description="Model identifier")
    input: str = Field(..., description="Prompt text")
    output: str | None = Field(default=None, description="Result text")
    tools_used: str = Field(default="[]", description="JSON-encoded list of tools")
    exit_status: int = Field(
        default=0,
        description="Exit status (0 = success)",
        ge=SQLITE_INT_MIN,
        le=SQLITE_INT_MAX,
    )

    @field_validator("tools_used", mode="before")
    @classmethod
    def encode_tools(cls, v: Any) -> Any:
        """Accept a list of tool names and store its JSON encoding."""
        if isinstance(v, (list, tuple)):
            return json.dumps(list(v))
        return v

    @property
    def tools(self) -> list[str]:
        """Decoded tools_used; malformed JSON reads as no tools."""
        try:
            decoded = json.loads(self.tools_used)
        except (TypeError, ValueError):
            return []
        if not isinstance(decoded, list):
            return []
        return [str(t) for t in decoded]

    @property
    def succeeded(self) -> bool:
        """Whether the agent exited cleanly."""
        return self.exit_status == 0


class RunLog(BaseModel):
    """
    One line of log output attributed to a run.

    Attributes:
        id: Store-assigned identifier (None until inserted)
        run_id: The run this line belongs to
        log_line: The log text
        log_type: Category tag
        timestamp: When the line was produced, epoch milliseconds
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int | None = Field(default=None, description="Store-assigned identifier")
    run_id: str = Field(..., description="Owning run identifier", min_length=1)
    log_line: str = Field(..., description="Log text")
    log_type: LogType = Field(default=LogType.INFO, description="Category tag")
    timestamp: int = Field(
        default_factory=now_ms,
        description="Epoch milliseconds",
        ge=SQLITE_INT_MIN,
        le=SQLITE_INT_MAX,
    )
