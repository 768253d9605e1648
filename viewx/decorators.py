"""Decorators for the viewx CLI."""

import functools
import logging
from typing import Any, Callable

import typer
from rich.console import Console

from .exceptions import (
    CycleDetected,
    InvalidViewDefinition,
    RegistrationError,
    SelectorSyntaxError,
    ViewxError,
)

logger = logging.getLogger(__name__)
console = Console()


def handle_engine_errors(func: Callable) -> Callable:
    """
    Decorator mapping engine errors to CLI exit codes.

    - InvalidViewDefinition: prints each issue, exit 2
    - CycleDetected / other RegistrationError: exit 2
    - SelectorSyntaxError: exit 2
    - Other ViewxError: exit 1
    - FileNotFoundError: exit 1
    - ValueError: invalid input, exit 1
    - KeyboardInterrupt: exit 130
    - Anything else: logged with traceback, exit 1
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except InvalidViewDefinition as e:
            console.print("[bold red]Error:[/bold red] Invalid view definition")
            for issue in e.issues:
                console.print(f"  [yellow]{issue.field}[/yellow]: {issue.message}")
            raise typer.Exit(code=2)
        except CycleDetected as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=2)
        except (RegistrationError, SelectorSyntaxError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=2)
        except ViewxError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        except FileNotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] File not found: {e}")
            raise typer.Exit(code=1)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid input: {e}")
            raise typer.Exit(code=1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            raise typer.Exit(code=130)
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            console.print(f"[bold red]Unexpected error:[/bold red] {e}")
            console.print("[dim]Run with --verbose for details[/dim]")
            raise typer.Exit(code=1)

    return wrapper
