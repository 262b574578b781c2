import logging

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .constants import APP_NAME
from .mapper import Category
from .models import BundleSpec

console = Console()
logger = logging.getLogger(APP_NAME)


def print_parameters(spec: BundleSpec, title: str) -> None:
    """Prints the resolved run parameters and file lists of an operation.

    The passphrase is never displayed.

    Args:
        spec (BundleSpec): The bundle about to be synchronized.
        title (str): The table title (e.g., 'Pull Config').
    """
    table = Table(title=title)
    table.add_column("Parameter", style="bold")
    table.add_column("Value")
    table.add_row("bundle_id", spec.bundle_id)
    table.add_row("git_repo", spec.repository_url)
    table.add_row("git_ref", spec.ref)
    table.add_row("project_path", str(spec.local_project_root))
    console.print(table)

    for category in Category:
        files = getattr(spec, category.value)
        if not files:
            continue
        console.print(f"[bold]{category.value}:[/bold]")
        for name in files:
            console.print(f"\t- {escape(name)}")
        logger.debug(f"{category.value}: {', '.join(files)}")
