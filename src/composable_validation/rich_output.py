"""Rich-based rendering of validation results.

Provides a tree view of result trees and an observer that prints failed runs
to a Rich console.

Requires the 'rich' package: pip install rich
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from composable_validation.events import (
    ValidationEvent,
    ValidationEventType,
    ValidationObserver,
)
from composable_validation.results import (
    Invalid,
    LogicalResult,
    PathResult,
    ValidationResult,
    ValidationWarning,
)

if TYPE_CHECKING:
    from rich.console import Console
    from rich.table import Table
    from rich.tree import Tree

__all__ = ["RichReportObserver", "render_tree"]


def _add_node(node: Invalid[Any], tree: Tree) -> None:
    from rich.text import Text

    if isinstance(node, PathResult):
        if not node.path.name:
            for child in node.children:
                _add_node(child, tree)
            return
        branch = tree.add(Text(node.path.name, style="bold cyan"))
        for child in node.children:
            _add_node(child, branch)
    elif isinstance(node, LogicalResult):
        children = node.children
        if len(children) == 1:
            _add_node(children[0], tree)
            return
        branch = tree.add(Text(node.combination_sign, style="magenta"))
        for child in children:
            _add_node(child, branch)
    else:
        style = "yellow" if isinstance(node, ValidationWarning) else "red"
        tree.add(Text(node.message, style=style))


def render_tree(result: ValidationResult[Any], label: str = "this") -> Tree:
    """Build a Rich tree mirroring the structure of a validation result.

    Path nodes show the path name, groups with more than one child show
    their operator, and leaves show the message in red (errors) or yellow
    (warnings).

    Args:
        result: The result to render.
        label: Text of the root node.

    Returns:
        A ``rich.tree.Tree`` ready to be printed.

    Example:
        from rich import print
        print(render_tree(validation.validate(user)))
    """
    from rich.text import Text
    from rich.tree import Tree

    if result.is_valid:
        tree = Tree(Text(f"{label}: valid", style="bold green"))
        for warning in result.warnings:
            tree.add(Text(f"{warning.data_path}: {warning.message}", style="yellow"))
        return tree

    tree = Tree(Text(label, style="bold"))
    if isinstance(result, Invalid):
        _add_node(result, tree)
    return tree


class RichReportObserver(ValidationObserver):
    """Prints the failure tree of every failed validation run.

    Also counts failures per path and message across runs; ``summary_table``
    shows the most frequent ones.

    Example:
        observer = RichReportObserver()
        validation.add_observer(observer)
        for user in users:
            validation.validate(user)
        observer.console.print(observer.summary_table())

    Requires:
        pip install rich
    """

    def __init__(
        self,
        console: Console | None = None,
        show_valid: bool = False,
        top_errors_count: int = 10,
    ) -> None:
        """Initialize the report observer.

        Args:
            console: Rich Console instance. If None, creates a new one.
            show_valid: Also print passing runs.
            top_errors_count: Number of rows in the summary table.
        """
        # Import Rich components here to make them optional
        from rich.console import Console

        self.console = console or Console()
        self._show_valid = show_valid
        self._top_errors_count = top_errors_count
        self._error_counts: dict[tuple[str, str], int] = {}
        self.runs = 0
        self.failed_runs = 0

    def on_event(self, event: ValidationEvent) -> None:
        """Handle validation events.

        Args:
            event: The validation event to handle.
        """
        if event.event_type == ValidationEventType.ERROR_ADDED:
            key = (event.data.get("data_path", ""), event.data.get("message", ""))
            self._error_counts[key] = self._error_counts.get(key, 0) + 1

        elif event.event_type == ValidationEventType.VALIDATION_COMPLETED:
            self.runs += 1
            result = event.data.get("result")
            if result is None:
                return
            if not result.is_valid:
                self.failed_runs += 1
            if not result.is_valid or self._show_valid:
                self._print_result(result, event.data.get("duration_ms", 0.0))

    def _print_result(self, result: ValidationResult[Any], duration_ms: float) -> None:
        from rich.panel import Panel

        title = "[bold green]Valid[/]" if result.is_valid else "[bold red]Invalid[/]"
        self.console.print(
            Panel(
                render_tree(result),
                title=title,
                subtitle=f"{duration_ms:.2f} ms",
                border_style="green" if result.is_valid else "red",
            )
        )

    def summary_table(self) -> Table:
        """Build a table of the most frequent errors.

        Returns:
            Rich Table with path, message and count columns.
        """
        from rich.table import Table
        from rich.text import Text

        table = Table(
            title=f"Top Errors ({self.failed_runs:,} of {self.runs:,} runs failed)",
            show_header=True,
            header_style="bold magenta",
            expand=True,
        )
        table.add_column("Path", style="cyan")
        table.add_column("Error", style="yellow")
        table.add_column("Count", justify="right", style="red", width=10)

        sorted_errors = sorted(
            self._error_counts.items(),
            key=lambda x: x[1],
            reverse=True,
        )[: self._top_errors_count]

        for (path, msg), count in sorted_errors:
            table.add_row(Text(path), Text(msg), f"{count:,}")

        if not sorted_errors:
            table.add_row("-", "No errors yet", "-")

        return table
