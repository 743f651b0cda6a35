"""
Command-line interface for the flow engine.

Usage:
    flowengine run flows/order.json --input '{"order_id": 42}'
    flowengine validate flows/order.json
    flowengine nodes
    flowengine variables flows/order.json send-email
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from flowengine.config import EngineConfig
from flowengine.observability import configure_logging
from flowengine.runtime.flow_runtime import FlowRuntime
from flowengine.schemas.execution_log import ExecutionLogEntry
from flowengine.schemas.graph import load_graph


def _load_input(raw: str | None) -> Any:
    """Parse ``--input``: inline JSON, or ``@path`` to a JSON file."""
    if not raw:
        return None
    if raw.startswith("@"):
        with open(raw[1:], encoding="utf-8") as f:
            return json.load(f)
    return json.loads(raw)


def _load_config(args: argparse.Namespace) -> EngineConfig:
    path = Path(args.config) if getattr(args, "config", None) else None
    config = EngineConfig.from_file(path)
    if getattr(args, "model", None):
        config.model = args.model
    return config


def _print_entry(entry: ExecutionLogEntry) -> None:
    print(f"[{entry.timestamp:%H:%M:%S}] {entry.status:<10} {entry.node_label}: {entry.message}")


def cmd_run(args: argparse.Namespace) -> int:
    """Run a flow and print its log as it happens."""
    configure_logging(level=args.log_level, format=args.log_format)
    try:
        graph = load_graph(args.graph)
        trigger_input = _load_input(args.input)
    except (OSError, json.JSONDecodeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    async def _run():
        runtime = FlowRuntime(config=_load_config(args))
        try:
            return await runtime.run(
                graph,
                trigger_input,
                on_log_entry=None if args.quiet else _print_entry,
            )
        finally:
            await runtime.shutdown()

    result = asyncio.run(_run())

    summary = {
        "success": result.success,
        "status": result.status,
        "execution_id": result.execution_id,
        "path": result.path,
        "error": result.error,
    }
    if args.output:
        summary["output"] = result.final_output
    print(json.dumps(summary, indent=2, default=str))
    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a flow without running it."""
    try:
        graph = load_graph(args.graph)
    except (OSError, json.JSONDecodeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    runtime = FlowRuntime(config=_load_config(args))
    validation = runtime.validate(graph)
    for error in validation.errors:
        print(f"✗ {error}")
    for warning in validation.warnings:
        print(f"⚠ {warning}")
    if validation.is_valid:
        print(f"✓ {args.graph} is valid ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
        return 0
    return 1


def cmd_nodes(args: argparse.Namespace) -> int:
    """List registered node types."""
    runtime = FlowRuntime(config=_load_config(args))
    registry = runtime.node_registry
    if args.json:
        print(
            json.dumps(
                [registry.get_metadata(t).model_dump(mode="json") for t in registry.get_all_types()],
                indent=2,
            )
        )
        return 0
    for node_type in registry.get_all_types():
        metadata = registry.get_metadata(node_type)
        print(f"{node_type:<16} {metadata.category:<10} {metadata.name} - {metadata.description}")
    return 0


def cmd_variables(args: argparse.Namespace) -> int:
    """List the variables a node can reference (static schema only, nothing is run)."""
    try:
        graph = load_graph(args.graph)
    except (OSError, json.JSONDecodeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if graph.get_node(args.node_id) is None:
        print(f"Error: node '{args.node_id}' not found", file=sys.stderr)
        return 1

    runtime = FlowRuntime(config=_load_config(args))
    variables = runtime.variable_registry.get_suggestions(
        args.node_id, graph, search_term=args.search or ""
    )
    for variable in variables:
        print(f"{{{variable.full_path}}}  ({variable.variable_type}) {variable.description}")
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Execute a flow graph")
    run_parser.add_argument("graph", help="Path to the flow JSON document")
    run_parser.add_argument(
        "--input",
        "-i",
        help="Trigger input as JSON, or @file.json",
    )
    run_parser.add_argument("--quiet", "-q", action="store_true", help="Do not print log entries")
    run_parser.add_argument(
        "--output", action="store_true", help="Include the final node output in the summary"
    )
    run_parser.add_argument("--log-level", default="WARNING", help="Python log level")
    run_parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a flow graph")
    validate_parser.add_argument("graph", help="Path to the flow JSON document")
    validate_parser.set_defaults(func=cmd_validate)

    nodes_parser = subparsers.add_parser("nodes", help="List available node types")
    nodes_parser.add_argument("--json", action="store_true", help="Output as JSON")
    nodes_parser.set_defaults(func=cmd_nodes)

    variables_parser = subparsers.add_parser(
        "variables", help="List variables available to a node"
    )
    variables_parser.add_argument("graph", help="Path to the flow JSON document")
    variables_parser.add_argument("node_id", help="Target node ID")
    variables_parser.add_argument("--search", "-s", help="Filter by substring")
    variables_parser.set_defaults(func=cmd_variables)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="flowengine",
        description="Run and inspect visual workflow graphs",
    )
    parser.add_argument("--config", help="Path to configuration.json")
    parser.add_argument("--model", help="LLM model for llm_agent nodes")

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
