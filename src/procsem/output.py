"""Output formatting for the procsem CLI."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from .models import PoolState, format_timestamp


@dataclass
class OutputContext:
    """Writes either Rich-formatted text or JSON documents to stdout."""

    console: Console
    json_mode: bool = False

    def emit(self, data: dict[str, Any], message: str = "") -> None:
        """Print a result as JSON in json mode, else as a console message."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))
        elif message:
            self.console.print(message)

    def error(self, message: str, **data: Any) -> None:
        """Print an error in the current mode."""
        if self.json_mode:
            print(json.dumps({"error": message, **data}, indent=2, default=str))
        else:
            self.console.print(f"[red]Error: {message}[/red]")

    def show_state(self, name: str, path: Path, capacity: int, state: PoolState) -> None:
        """Print a semaphore's shared state."""
        data = state_summary(name, path, capacity, state)
        if self.json_mode:
            self.emit(data)
            return

        table = Table(title=f"Semaphore {name}", show_header=False)
        table.add_column("field", style="bold")
        table.add_column("value")
        table.add_row("Path", str(path))
        table.add_row("Free slots", f"{state.remaining}/{capacity}")
        table.add_row("Holders", ", ".join(str(pid) for pid in state.pids) or "-")
        table.add_row("Last update", data["last_update"])
        self.console.print(table)


def state_summary(name: str, path: Path, capacity: int, state: PoolState) -> dict[str, Any]:
    """Build the JSON-friendly view of a semaphore's state."""
    return {
        "resource": name,
        "path": str(path),
        "capacity": capacity,
        "remaining": state.remaining,
        "pids": state.pids,
        "last_update": format_timestamp(state.last_update),
    }
