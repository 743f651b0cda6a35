"""Pydantic models for the per-run execution log.

Entry level:   one line per node step (processing, then success or error)
Summary level: per-run pass/fail, path and timing, built when the run ends
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

SYSTEM_NODE_ID = "system"
SYSTEM_NODE_LABEL = "System"


class LogStatus(StrEnum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class ExecutionLogEntry(BaseModel):
    """One step of a run as shown to the user."""

    node_id: str
    node_label: str
    status: LogStatus
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    input: Any = None
    output: Any = None

    @property
    def is_system(self) -> bool:
        return self.node_id == SYSTEM_NODE_ID


class RunSummary(BaseModel):
    """Run-level outcome, aggregated from the entries."""

    flow_id: str
    execution_id: str
    status: str = ""  # "completed" | "incomplete" | "failed"
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    duration_ms: int = 0
    nodes_executed: int = 0
    path: list[str] = Field(default_factory=list)
    error_count: int = 0
    error: str = ""
