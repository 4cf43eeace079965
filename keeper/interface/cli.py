# ABOUTME: Player command-line interface running Keeper turns end to end against Redis and OpenAI.
# ABOUTME: Command parsing, output formatting, checkpoint commands and the async REPL loop.

import argparse
import asyncio
import re
import sys
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from keeper.agents.exceptions import CollaboratorUnavailable
from keeper.agents.llm_collaborators import build_llm_collaborators
from keeper.config.settings import get_settings
from keeper.models.checkpoint import CheckpointSummary
from keeper.models.session_state import Location, Participant
from keeper.models.turn import Turn, TurnStatus
from keeper.orchestration.exceptions import TurnAlreadyProcessing
from keeper.orchestration.progression_monitor import ProgressionMonitor
from keeper.orchestration.turn_orchestrator import TurnOrchestrator
from keeper.persistence.connection import create_redis_connection
from keeper.persistence.exceptions import CheckpointNotFound
from keeper.utils.logging import setup_logging
from keeper.utils.redis_cleanup import purge_session

# ============================================================================
# Custom Exceptions
# ============================================================================


class InvalidCommandError(Exception):
    """Raised when a command cannot be parsed or executed"""
    pass


# ============================================================================
# Command Types
# ============================================================================


class CommandType(str, Enum):
    SAY = "say"
    SAVE = "save"
    CHECKPOINTS = "checkpoints"
    LOAD = "load"
    HISTORY = "history"
    HELP = "help"
    QUIT = "quit"


@dataclass
class ParsedCommand:
    """Parsed command with type and arguments"""
    command_type: CommandType
    args: dict
    raw_input: str


class CommandParser:
    """
    Parser for player input.

    Supports:
    - Free text: "search the room" (a turn)
    - Slash commands: "/save name", "/checkpoints", "/load cp-123", "/history", "/help", "/quit"
    """

    COMMAND_PATTERNS = {
        CommandType.SAVE: r"^/save(?:\s+(.+))?$",
        CommandType.CHECKPOINTS: r"^/checkpoints$",
        CommandType.LOAD: r"^/load(?:\s+(\S+))?$",
        CommandType.HISTORY: r"^/history$",
        CommandType.HELP: r"^/help$",
        CommandType.QUIT: r"^/(?:quit|exit)$",
    }

    def parse(self, user_input: str) -> ParsedCommand:
        """
        Raises:
            InvalidCommandError: If input is empty, an unknown slash command,
                or /save or /load lacks its argument
        """
        if not user_input or not user_input.strip():
            raise InvalidCommandError("Cannot parse empty command")

        user_input = user_input.strip()

        for cmd_type, pattern in self.COMMAND_PATTERNS.items():
            match = re.match(pattern, user_input, re.IGNORECASE)
            if match:
                args = {}
                if cmd_type in (CommandType.SAVE, CommandType.LOAD):
                    value = match.group(1)
                    if not value:
                        raise InvalidCommandError(f"/{cmd_type.value} needs an argument")
                    args = {"name" if cmd_type == CommandType.SAVE else "checkpoint_id": value.strip()}
                return ParsedCommand(command_type=cmd_type, args=args, raw_input=user_input)

        if user_input.startswith("/"):
            raise InvalidCommandError(f"Unknown command: {user_input.split()[0]}")

        return ParsedCommand(
            command_type=CommandType.SAY,
            args={"text": user_input},
            raw_input=user_input,
        )


# ============================================================================
# Output Formatter
# ============================================================================


class CLIFormatter:
    """Formats turns, checkpoints and errors for display"""

    HEADER_BORDER = "═"

    def format_header(self, session_id: str, location_name: str | None) -> str:
        border = self.HEADER_BORDER * 60
        return f"{border}\n  Keeper session {session_id}\n  Location: {location_name or 'unknown'}\n{border}"

    def format_turn(self, turn: Turn) -> str:
        if turn.status == TurnStatus.ERROR:
            return self.format_error(turn.error_message or "Turn failed")
        if turn.status == TurnStatus.PROCESSING:
            return f"(turn {turn.turn_number} still processing)"
        prefix = "[The story moves on]\n" if turn.is_simulated else ""
        return f"{prefix}{turn.narrative_output}"

    def format_checkpoints(self, summaries: list[CheckpointSummary]) -> str:
        if not summaries:
            return "No checkpoints yet."
        lines = []
        for index, cp in enumerate(summaries, 1):
            lines.append(
                f"{index}. [{cp.checkpoint_type.value}] {cp.checkpoint_name} ({cp.checkpoint_id}) "
                f"Day {cp.game_day} {cp.game_time} @ {cp.location_name or '?'} "
                f"HP {cp.protagonist_hp} SAN {cp.protagonist_sanity}"
            )
        return "\n".join(lines)

    def format_history(self, conversation: list[dict]) -> str:
        lines = []
        for entry in conversation:
            if entry["inputText"]:
                lines.append(f"#{entry['turnNumber']} > {entry['inputText']}")
            if entry["narrativeOutput"]:
                lines.append(f"   {entry['narrativeOutput']}")
        return "\n".join(lines) or "No turns yet."

    def format_error(self, message: str) -> str:
        return f"✗ {message}"


HELP_TEXT = """Type what your investigator does, or:
  /save <name>       save a manual checkpoint
  /checkpoints       list checkpoints
  /load <id>         restore a checkpoint
  /history           show the conversation so far
  /quit              leave"""


# ============================================================================
# Interactive Loop
# ============================================================================


class KeeperCLI:
    """Async REPL driving one session through the TurnOrchestrator"""

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        session_id: str,
        turn_timeout: float | None = None,
    ):
        self.orchestrator = orchestrator
        self.session_id = session_id
        self.turn_timeout = turn_timeout
        self.parser = CommandParser()
        self.formatter = CLIFormatter()

    async def handle(self, parsed: ParsedCommand) -> str | None:
        """
        Execute one command.

        Returns:
            Text to print, or None to quit
        """
        checkpoints = self.orchestrator.checkpoint_store
        registry = self.orchestrator.registry

        if parsed.command_type == CommandType.QUIT:
            return None

        if parsed.command_type == CommandType.HELP:
            return HELP_TEXT

        if parsed.command_type == CommandType.HISTORY:
            return self.formatter.format_history(
                self.orchestrator.get_conversation(self.session_id)
            )

        if parsed.command_type == CommandType.CHECKPOINTS:
            return self.formatter.format_checkpoints(
                checkpoints.list_checkpoints(self.session_id)
            )

        if parsed.command_type == CommandType.SAVE:
            checkpoint = checkpoints.save_manual(
                registry.require(self.session_id), parsed.args["name"]
            )
            return f"✓ Saved checkpoint '{checkpoint.checkpoint_name}' ({checkpoint.checkpoint_id})"

        if parsed.command_type == CommandType.LOAD:
            try:
                state = checkpoints.restore(parsed.args["checkpoint_id"])
            except CheckpointNotFound as e:
                return self.formatter.format_error(str(e))
            registry.put(state.model_copy(update={"session_id": self.session_id}))
            location = state.current_location
            return f"✓ Restored. You are at {location.name if location else 'an unknown place'}."

        try:
            started = await self.orchestrator.create_turn(self.session_id, parsed.args["text"])
        except TurnAlreadyProcessing as e:
            return self.formatter.format_error(str(e))

        turn = await self.orchestrator.wait_for_turn(started["turnId"], timeout=self.turn_timeout)
        if turn is None:
            return self.formatter.format_error(f"Turn {started['turnId']} disappeared")
        return self.formatter.format_turn(turn)

    async def run(self) -> None:
        session = self.orchestrator.registry.require(self.session_id)
        location = session.current_location
        print(self.formatter.format_header(self.session_id, location.name if location else None))
        print(HELP_TEXT)

        while True:
            try:
                line = await asyncio.to_thread(input, "\n> ")
            except EOFError:
                break

            try:
                parsed = self.parser.parse(line)
            except InvalidCommandError as e:
                print(self.formatter.format_error(str(e)))
                continue

            output = await self.handle(parsed)
            if output is None:
                break
            print(output)

        print("Goodbye.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keeper",
        description="Play an investigative narrative session against the Keeper",
    )
    parser.add_argument("--session", help="Resume (or create) the session with this id")
    parser.add_argument("--protagonist", default="Investigator", help="Protagonist name")
    parser.add_argument("--location", default="Arkham Train Station", help="Starting location")
    parser.add_argument("--fresh", action="store_true", help="Purge the session's stored data first")
    parser.add_argument("--monitor", action="store_true", help="Run the progression monitor")
    parser.add_argument("--log-level", default=None, help="Override KEEPER_LOG_LEVEL")
    return parser


async def _run_session(cli: KeeperCLI, monitor: ProgressionMonitor | None) -> None:
    stop = asyncio.Event()
    monitor_task = None
    if monitor is not None:
        monitor_task = asyncio.create_task(monitor.run_periodic(stop))
    try:
        await cli.run()
    finally:
        stop.set()
        if monitor_task is not None:
            await monitor_task


def main(argv: list[str] | None = None) -> None:
    """Entry point for running CLI standalone"""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    setup_logging(log_level=args.log_level or settings.log_level, log_dir=settings.log_dir,
                  console_output=False)

    try:
        redis_client = create_redis_connection(settings.redis_url)
    except ConnectionError as e:
        print(f"\nFatal error: {e}")
        print("Make sure Redis is running (e.g. 'docker run -p 6379:6379 redis')")
        sys.exit(1)

    try:
        collaborators = build_llm_collaborators(settings)
    except CollaboratorUnavailable as e:
        print(f"\nFatal error: {e}")
        sys.exit(1)

    orchestrator = TurnOrchestrator(redis_client, collaborators=collaborators, settings=settings)
    registry = orchestrator.registry

    if args.session and args.fresh:
        result = purge_session(redis_client, args.session)
        print(f"{'✓' if result['success'] else '⚠'} {result['message']}")

    session = registry.get(args.session) if args.session else None
    if session is None:
        slug = re.sub(r"[^a-z0-9]+", "-", args.location.lower()).strip("-")
        session = registry.create(
            session_id=args.session,
            protagonist=Participant(id="investigator-1", name=args.protagonist),
            location=Location(id=f"loc-{slug}", name=args.location),
        )

    cli = KeeperCLI(orchestrator, session.session_id, turn_timeout=settings.turn_stale_after_seconds)
    monitor = ProgressionMonitor(orchestrator, session.session_id) if args.monitor else None

    try:
        asyncio.run(_run_session(cli, monitor))
    except KeyboardInterrupt:
        print("\nInterrupted.")
    except Exception as e:
        print(f"\nFatal error: {e}")
        logger.exception("Fatal error in CLI")
        sys.exit(1)


if __name__ == "__main__":
    main()
