"""Output formatting utilities for CLI."""

import json
from enum import Enum
from typing import Any, Dict, Optional

import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormat(Enum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


class OutputFormatter:
    """Handle output formatting for different formats."""

    def __init__(self, format_type: str = "table"):
        """
        Initialize output formatter.

        Args:
            format_type: Output format (table, json, yaml)
        """
        self.console = Console()
        try:
            self.format = OutputFormat(format_type.lower())
        except ValueError:
            self.format = OutputFormat.TABLE

    def print_detail(
        self,
        item: Dict[str, Any],
        title: Optional[str] = None,
    ):
        """
        Print detailed view of a single item.

        Nested sections (one per Git info category) become their own tables
        in table format.

        Args:
            item: Item to print
            title: Optional title
        """
        if self.format in (OutputFormat.JSON, OutputFormat.YAML):
            self._print_raw(item)
            return

        scalars = {k: v for k, v in item.items() if not isinstance(v, dict)}
        sections = {k: v for k, v in item.items() if isinstance(v, dict)}

        if scalars or not sections:
            self.console.print(self._table(scalars, title))
        for name, section in sections.items():
            self.console.print(self._table(section, self._label(name)))

    def print_value(self, key: str, value: Any):
        """Print a single named value."""
        if self.format in (OutputFormat.JSON, OutputFormat.YAML):
            self._print_raw({key: value})
        else:
            self.console.print(f"[cyan]{self._label(key)}:[/cyan] {self._format_value(value)}")

    def print_error(self, message: str):
        """Print error message."""
        if self.format in (OutputFormat.JSON, OutputFormat.YAML):
            self._print_raw({"status": "error", "message": message})
        else:
            self.console.print(f"[red]✗[/red] {escape(message)}")

    def print_warning(self, message: str):
        """Print warning message."""
        if self.format in (OutputFormat.JSON, OutputFormat.YAML):
            self._print_raw({"status": "warning", "message": message})
        else:
            self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def _print_raw(self, data: Any):
        # Machine-readable output must not be wrapped or highlighted
        if self.format == OutputFormat.YAML:
            text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        else:
            text = json.dumps(data, indent=2, default=str)
        self.console.out(text.rstrip("\n"), highlight=False)

    def _table(self, item: Dict[str, Any], title: Optional[str]) -> Table:
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in item.items():
            if isinstance(value, dict):
                value = ", ".join(f"{k}={v}" for k, v in value.items())
            table.add_row(self._label(key), self._format_value(value))
        return table

    @staticmethod
    def _label(key: str) -> str:
        return key.replace("_", " ").title()

    @staticmethod
    def _format_value(value: Any) -> str:
        if value is None:
            return "[dim]-[/dim]"
        if isinstance(value, bool):
            return "[green]Yes[/green]" if value else "[red]No[/red]"
        return escape(str(value))
