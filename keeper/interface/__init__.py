# ABOUTME: Interface layer exports for the Keeper command-line surface.
# ABOUTME: The CLI is a thin client of TurnOrchestrator; it holds no session state of its own.

from keeper.interface.cli import CommandParser, KeeperCLI, main

__all__ = ["CommandParser", "KeeperCLI", "main"]
