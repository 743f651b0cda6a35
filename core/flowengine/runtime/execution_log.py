"""ExecutionLog: collects the user-facing log of one run.

The FlowExecutor creates one per run, so concurrent runs never share entries
or callbacks. Every ``append()`` is forwarded to the caller's ``on_log_entry``
callback immediately, in execution order.

Usage::

    log = ExecutionLog(on_entry=print)
    log.start_run(flow_id, execution_id)
    log.processing(node)
    log.success(node, "✓ Done", output=result)
    summary = log.end_run("completed")

A failing callback is logged and does not affect the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from flowengine.schemas.execution_log import (
    SYSTEM_NODE_ID,
    SYSTEM_NODE_LABEL,
    ExecutionLogEntry,
    LogStatus,
    RunSummary,
)
from flowengine.schemas.graph import FlowNode

logger = logging.getLogger(__name__)

LogCallback = Callable[[ExecutionLogEntry], None]


class ExecutionLog:
    """Append-only entry list for the current run."""

    def __init__(self, on_entry: LogCallback | None = None) -> None:
        self._on_entry = on_entry
        self._entries: list[ExecutionLogEntry] = []
        self._summary: RunSummary | None = None

    @property
    def entries(self) -> list[ExecutionLogEntry]:
        return list(self._entries)

    def start_run(self, flow_id: str, execution_id: str, on_entry: LogCallback | None = None) -> None:
        self._entries = []
        if on_entry is not None:
            self._on_entry = on_entry
        self._summary = RunSummary(flow_id=flow_id, execution_id=execution_id)

    def append(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        self._entries.append(entry)
        if self._on_entry is not None:
            try:
                self._on_entry(entry)
            except Exception as e:
                logger.error(f"on_log_entry callback failed: {e}", exc_info=True)
        return entry

    # -- helpers --------------------------------------------------------

    def processing(self, node: FlowNode, message: str = "", input: Any = None) -> ExecutionLogEntry:
        return self._node_entry(node, LogStatus.PROCESSING, message or "Processing...", input=input)

    def success(self, node: FlowNode, message: str, output: Any = None) -> ExecutionLogEntry:
        return self._node_entry(node, LogStatus.SUCCESS, message, output=output)

    def error(self, node: FlowNode | None, message: str, node_id: str | None = None) -> ExecutionLogEntry:
        if node is None and node_id is None:
            return self.system(LogStatus.ERROR, message)
        if node is None:
            return self.append(
                ExecutionLogEntry(
                    node_id=node_id, node_label=node_id, status=LogStatus.ERROR, message=message
                )
            )
        return self._node_entry(node, LogStatus.ERROR, message)

    def skipped(self, node: FlowNode, message: str) -> ExecutionLogEntry:
        return self._node_entry(node, LogStatus.SKIPPED, message)

    def system(self, status: LogStatus, message: str) -> ExecutionLogEntry:
        return self.append(
            ExecutionLogEntry(
                node_id=SYSTEM_NODE_ID,
                node_label=SYSTEM_NODE_LABEL,
                status=status,
                message=message,
            )
        )

    def _node_entry(
        self,
        node: FlowNode,
        status: LogStatus,
        message: str,
        input: Any = None,
        output: Any = None,
    ) -> ExecutionLogEntry:
        return self.append(
            ExecutionLogEntry(
                node_id=node.id,
                node_label=node.label,
                status=status,
                message=message,
                input=input,
                output=output,
            )
        )

    # -- summary --------------------------------------------------------

    def end_run(self, status: str, path: list[str] | None = None, error: str = "") -> RunSummary:
        summary = self._summary or RunSummary(flow_id="", execution_id="")
        finished = datetime.now()
        summary.status = status
        summary.finished_at = finished
        summary.duration_ms = int((finished - summary.started_at).total_seconds() * 1000)
        summary.path = list(path or [])
        summary.nodes_executed = len(summary.path)
        summary.error_count = sum(1 for e in self._entries if e.status == LogStatus.ERROR)
        summary.error = error
        self._summary = summary
        return summary
