"""Entry point for dotnetops-mcp: the MCP server and one-shot operation commands."""

import argparse
import asyncio
import json
import logging
import os
import sys
import xml.etree.ElementTree as ET
from dataclasses import MISSING, fields

from .context import OperationContext
from .locators.tools import locate_tools
from .manager import OperationManager
from .operations import OPERATIONS, DotNetVerbosity, Operation
from .results.trx import DEFAULT_TEST_GROUP, TestRunSummary, parse_trx
from .utils.project import configure_project_root, find_dotnet_project_root


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _option_name(name: str) -> str:
    return "--" + name.replace("_", "-")


def add_operation_arguments(parser: argparse.ArgumentParser, cls: type[Operation]) -> None:
    """Add one option per input field of an operation class.

    Field annotations are strings (postponed evaluation), so the option kind
    is chosen from the annotation text.
    """
    for f in fields(cls):
        if not f.init:
            continue
        kind = str(f.type)
        required = f.default is MISSING and f.default_factory is MISSING
        if kind == "bool":
            parser.add_argument(
                _option_name(f.name),
                dest=f.name,
                action=argparse.BooleanOptionalAction,
                default=f.default,
            )
        elif kind.startswith("list["):
            parser.add_argument(
                _option_name(f.name), dest=f.name, action="append", default=[], metavar="VALUE"
            )
        elif kind == "DotNetVerbosity":
            parser.add_argument(
                _option_name(f.name),
                dest=f.name,
                type=DotNetVerbosity,
                choices=list(DotNetVerbosity),
                default=f.default,
            )
        else:
            parser.add_argument(
                _option_name(f.name),
                dest=f.name,
                required=required,
                default=None if required else f.default,
            )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="dotnetops-mcp",
        description="dotnetops MCP Server - build, test and package .NET projects via MCP",
    )
    parser.add_argument(
        "--project",
        type=str,
        default=None,
        help="Project root path. Operations run in this directory unless "
        "the MCP client announces a root.",
    )
    parser.add_argument(
        "--project-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect project from current working directory. "
        "Searches upward for .sln/.slnx, .csproj/.vbproj/.fsproj, global.json or .git markers. "
        "Cannot be used with --project.",
    )
    parser.add_argument(
        "--debug-output",
        action="store_true",
        default=False,
        help="Include debug-level messages (full tool output) in command results.",
    )

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the MCP server on stdio (default)")
    commands.add_parser("locate", help="Show where external tools would be taken from")

    trx = commands.add_parser("trx", help="Summarize a .trx test results file")
    trx.add_argument("file")
    trx.add_argument("--test-group", default=DEFAULT_TEST_GROUP)

    for name, cls in OPERATIONS.items():
        sub = commands.add_parser(name, help=cls.summary or cls.qualified_name())
        add_operation_arguments(sub, cls)
        sub.set_defaults(operation_class=cls)

    return parser.parse_args(argv)


def build_operation(args: argparse.Namespace) -> Operation:
    """Instantiate the operation selected on the command line."""
    cls: type[Operation] = args.operation_class
    values = {name: getattr(args, name) for name in cls.parameters()}
    return cls(**values)


async def run_command(args: argparse.Namespace, project_path: str) -> int:
    """Run a one-shot command and print its JSON result to stdout.

    Returns:
        Process exit code
    """
    if args.command == "locate":
        data = await locate_tools(OperationContext(working_directory=project_path))
        print(json.dumps(data, indent=2))
        return 0

    if args.command == "trx":
        try:
            results = parse_trx(args.file, group=args.test_group)
        except (OSError, ET.ParseError) as e:
            print(f"Could not read {args.file}: {e}", file=sys.stderr)
            return 1
        summary = TestRunSummary.from_results(results)
        print(json.dumps(
            {"summary": summary.to_dict(), "tests": [r.to_dict() for r in results]}, indent=2
        ))
        return 0 if summary.failed == 0 else 1

    result = await OperationManager().run(project_path, build_operation(args))
    print(json.dumps(result.to_dict(include_debug=args.debug_output), indent=2))
    print(result.to_summary(), file=sys.stderr)
    return 0 if result.success else 1


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args(argv)

    if args.project_from_cwd:
        if args.project is not None:
            logger.error("--project-from-cwd cannot be used with --project")
            return 1
        project_path = str(find_dotnet_project_root())
        logger.info(f"Auto-detected project root: {project_path}")
    else:
        project_path = args.project or os.getcwd()

    configure_project_root(
        use_project_from_cwd=args.project_from_cwd,
        explicit_project_path=args.project,
        startup_cwd=os.getcwd(),
    )

    if args.command not in (None, "serve"):
        return await run_command(args, project_path)

    from .server import create_server

    logger.info(f"Starting dotnetops MCP Server (project: {project_path})...")
    mcp = create_server(project_path)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        if OperationManager().cancel():
            logger.info("Killed running operation")
        logger.info("Server stopped")
    return 0


def run() -> None:
    """Run the server or a one-shot command."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
