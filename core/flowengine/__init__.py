"""
Flow engine - executes visual workflow graphs.

A graph of typed nodes (trigger, LLM call, HTTP call, condition, switch,
loop, delay, data transform, end) is walked from its trigger node, each node's
output feeding the next node chosen by branching rules. Upstream outputs are
addressable as ``{node_id.path}`` variables.
"""

__version__ = "0.1.0"
