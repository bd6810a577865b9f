#!/usr/bin/env python3
"""
Interactive menu for provisioning workshop lab resources.

Usage:
    lab-manager [--settings appsettings.json] [--roster Attendees.csv]
    lab-manager --run "C alice" [--yes]

Options:
    --settings   JSON settings file (default: appsettings.json)
    --roster     Attendee list, overriding roster_path from the settings
    --run        Execute one menu command and exit instead of prompting
    --yes        Answer Y to the confirmation of destructive commands
"""
import argparse
import asyncio
import logging
import sys
from enum import Enum
from pathlib import Path

from labmanager.core.config import DEFAULT_SETTINGS_FILE, load_settings
from labmanager.core.exceptions import (
    ConfigurationError,
    ConfirmationDeclinedError,
    LabManagerError,
)
from labmanager.core.logs import configure_logging
from labmanager.provisioning.azure import AzureProvider
from labmanager.provisioning.orchestrator import LabOrchestrator
from labmanager.provisioning.roster import load_roster

logger = logging.getLogger(__name__)

CONFIRMATION_ANSWER = "Y"


class Command(str, Enum):
    """Menu keys."""
    VIEW = "V"
    ATTENDEES = "A"
    SHOW = "S"
    LIST = "L"
    CREATE = "C"
    DELETE = "D"
    TOKEN = "G"
    CONSUMER_GROUPS = "E"
    CREATE_CONSUMER_GROUPS = "EC"
    DELETE_CONSUMER_GROUPS = "ED"
    TOGGLE_TIER = "T"
    QUIT = "Q"


MENU = """
  V           View configuration
  A (or S)    Show attendees
  L           List provisioned resources
  C [name]    Create resources for all attendees, or just name
  D [name]    Delete resources for all attendees, or just name
  G [name]    Generate event hub SAS tokens for all attendees, or just name
  E           List consumer groups on the shared event hub
  EC [name]   Create consumer groups for all attendees, or just name
  ED [name]   Delete consumer groups for all attendees, or just name
  T           Toggle the shared event hub namespace between Basic and Standard
  Q           Quit
"""


def parse_command(line: str) -> tuple[Command, str | None]:
    """
    Split a menu line into its command and optional attendee name.

    Raises:
        ValueError: If the first word is not a menu key.
    """
    key, _, argument = line.strip().partition(" ")
    command = Command(key.upper())
    return command, argument.strip() or None


def prompt_confirmation(prompt: str) -> bool:
    """Ask on the terminal; only a literal Y confirms."""
    return input(f"{prompt} Enter {CONFIRMATION_ANSWER} to confirm: ").strip() == CONFIRMATION_ANSWER


class LabConsole:
    """Dispatches menu commands to the orchestrator."""

    def __init__(self, orchestrator: LabOrchestrator, out=None):
        self.orchestrator = orchestrator
        self.out = out or sys.stdout
        self._handlers = {
            Command.VIEW: self.view_configuration,
            Command.ATTENDEES: self.show_attendees,
            Command.SHOW: self.show_attendees,
            Command.LIST: self.list_resources,
            Command.CREATE: self.create_resources,
            Command.DELETE: self.delete_resources,
            Command.TOKEN: self.generate_tokens,
            Command.CONSUMER_GROUPS: self.list_consumer_groups,
            Command.CREATE_CONSUMER_GROUPS: self.create_consumer_groups,
            Command.DELETE_CONSUMER_GROUPS: self.delete_consumer_groups,
            Command.TOGGLE_TIER: self.toggle_tier,
        }

    def print(self, *args) -> None:
        print(*args, file=self.out)

    async def execute(self, line: str) -> bool:
        """
        Run one menu line.

        Returns:
            False once the operator quits, True otherwise.
        """
        try:
            command, argument = parse_command(line)
        except ValueError:
            self.print(f"Unknown command: {line.strip()}")
            self.print(MENU)
            return True

        if command is Command.QUIT:
            return False

        try:
            await self._handlers[command](argument)
        except ConfirmationDeclinedError:
            self.print("Cancelled.")
        except LabManagerError as e:
            logger.error(f"{command.name} failed: {e}")
            self.print(f"Error: {e}")
        return True

    async def run(self, read_line=input) -> None:
        self.print(MENU)
        while True:
            try:
                line = await asyncio.to_thread(read_line, "> ")
            except EOFError:
                break
            if not line.strip():
                continue
            if not await self.execute(line):
                break

    async def view_configuration(self, _argument: str | None = None) -> None:
        details = await self.orchestrator.describe()
        for key, value in details["subscription"].items():
            self.print(f"{key}: {value}")
        for section, values in details["settings"].items():
            if isinstance(values, dict):
                self.print(f"\n[{section}]")
                for key, value in values.items():
                    self.print(f"  {key}: {value}")
            else:
                self.print(f"{section}: {values}")

    async def show_attendees(self, _argument: str | None = None) -> None:
        roster = self.orchestrator.roster
        for number, attendee in enumerate(roster, start=1):
            email = f" <{attendee.email}>" if attendee.email else ""
            self.print(f"{number:3}. {attendee.name}{email}")
        self.print(f"{len(roster)} attendee(s)")

    async def list_resources(self, _argument: str | None = None) -> None:
        await self.orchestrator.list_all()

    async def create_resources(self, name: str | None) -> None:
        if name:
            await self.orchestrator.create_one(name)
        else:
            await self.orchestrator.create_all()

    async def delete_resources(self, name: str | None) -> None:
        if name:
            await self.orchestrator.delete_one(name)
        else:
            await self.orchestrator.delete_all()

    async def generate_tokens(self, name: str | None) -> None:
        await self.orchestrator.refresh_tokens(name)

    async def list_consumer_groups(self, _argument: str | None = None) -> None:
        await self.orchestrator.list_consumer_groups()

    async def create_consumer_groups(self, name: str | None) -> None:
        await self.orchestrator.create_consumer_groups(name)

    async def delete_consumer_groups(self, name: str | None) -> None:
        await self.orchestrator.delete_consumer_groups(name)

    async def toggle_tier(self, _argument: str | None = None) -> None:
        await self.orchestrator.toggle_namespace_tier()


async def run_console(args) -> None:
    settings = load_settings(args.settings)
    if args.roster:
        settings.roster_path = Path(args.roster)
    log_file = configure_logging(settings.debug)
    roster = load_roster(settings.roster_path, settings)

    confirm = (lambda prompt: True) if args.yes else prompt_confirmation
    provider = await AzureProvider(settings).open()
    try:
        orchestrator = LabOrchestrator(
            provider, provider, settings, roster, confirm=confirm, stream=sys.stdout
        )
        console = LabConsole(orchestrator)
        print(f"Logging to {log_file}")
        if args.run:
            await console.execute(args.run)
        else:
            await console.run()
    finally:
        await provider.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Provision workshop lab resources on Azure")
    parser.add_argument(
        "--settings", default=DEFAULT_SETTINGS_FILE, help="JSON settings file"
    )
    parser.add_argument("--roster", help="Attendee list file")
    parser.add_argument("--run", help='Run one command and exit, e.g. "C alice"')
    parser.add_argument(
        "--yes", action="store_true", help="Confirm destructive commands without prompting"
    )
    args = parser.parse_args(argv)

    try:
        asyncio.run(run_console(args))
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
