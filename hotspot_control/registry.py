"""
CommandRegistry - request commands of the engine

Bounded Context: Request dispatch
Responsibilities:
  - Map command names ("location_update", "analyze_route", ...) to handlers
  - Reject unknown commands before any handler runs
  - Describe the request surface (get_help) for control plane status messages

Every handler takes the full request payload (a dict, possibly empty) and
returns a JSON-compatible reply result.

Threading: registration is locked; lookups read an immutable entry.
"""

import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

Handler = Callable[[Dict[str, Any]], Any]

_COMMAND_NAME = re.compile(r"^[a-z][a-z0-9_]*$")


class CommandNotAvailableError(Exception):
    """Raised when a request names a command nobody registered."""
    pass


@dataclass(frozen=True)
class RegisteredCommand:
    name: str
    handler: Handler
    description: str


class CommandRegistry:
    """
    Name → handler table for engine requests.

    Example:
        registry = CommandRegistry()
        registry.register('analyze_route', service.handle_analyze_route, "Score a route")
        reply = registry.execute('analyze_route', {'origin': {...}, 'destination': {...}})
    """

    def __init__(self):
        self._commands: Dict[str, RegisteredCommand] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: Handler, description: str) -> None:
        """
        Raises:
            ValueError: Malformed name, or the name is already taken
        """
        if not _COMMAND_NAME.match(command):
            raise ValueError(f"Invalid command name {command!r} (expected snake_case)")

        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")
            self._commands[command] = RegisteredCommand(command, handler, description)

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a command's handler with the request payload.

        Raises:
            CommandNotAvailableError: Unknown command
            Whatever the handler raises (ValidationError, store errors)
        """
        entry = self._commands.get(command)
        if entry is None:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )
        return entry.handler(command_data if command_data is not None else {})

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands)

    def get_help(self) -> Dict[str, str]:
        """Command name → description, sorted by name."""
        return {name: self._commands[name].description for name in sorted(self._commands)}

    def count(self) -> int:
        return len(self._commands)
