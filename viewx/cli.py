import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install

from . import __version__
from .config import (
    ensure_config_exists, get_config_path, load_config, update_config,
)
from .decorators import handle_engine_errors
from .engine import ViewEngine
from .exceptions import RegistrationError
from .manifest import dump_registrations, load_manifest_file
from .views.catalogue import ViewTypeCatalogue

# Initialize Rich Traceback for better error messages
install(show_locals=False)

console = Console()

# Configure logging to use Rich's RichHandler
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger("viewx")

app = typer.Typer(help="Compile, validate and inspect extensible views")

LEVEL_STYLES = {
    "debug": "dim",
    "info": "green",
    "warning": "yellow",
    "error": "bold red",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode"),
):
    """
    viewx - view extension and composition engine.

    Plugins patch rendered views with XPath-addressed extensions, fill named
    slots and register inheritable view definitions.
    """
    if verbose or load_config().cli.verbose:
        logger.setLevel(logging.DEBUG)
        if verbose:
            console.print("[bold green]Verbose mode enabled.[/bold green]")


def _load_mapping(value: Optional[str]) -> Dict[str, Any]:
    """Context from inline JSON/YAML or from a file path."""
    if not value:
        return {}
    path = Path(value)
    text = path.read_text() if path.is_file() else value
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Context must be a JSON or YAML mapping")
    return data


def _open_engine(manifests: Optional[List[Path]] = None) -> ViewEngine:
    config = load_config()
    engine = ViewEngine.open(config=config)
    try:
        for manifest in manifests or []:
            if not manifest.exists():
                raise FileNotFoundError(manifest)
            counts = load_manifest_file(manifest, engine)
            logger.debug(f"Loaded {manifest}: {counts}")
    except Exception:
        engine.close()
        raise
    return engine


def _log_table(result) -> Table:
    table = Table(title=f"Compile log: {result.view}")
    table.add_column("Extension", style="cyan")
    table.add_column("Operation")
    table.add_column("Selector", style="dim")
    table.add_column("Matched", justify="right")
    table.add_column("Changed", justify="right")
    table.add_column("Result")

    for entry in result.log:
        style = LEVEL_STYLES.get(entry.level, "")
        table.add_row(
            entry.extension_id or "-",
            entry.operation or "-",
            entry.selector or "-",
            str(entry.matched),
            str(entry.changed),
            f"[{style}]{entry.reason or entry.level}[/{style}]" if style else (entry.reason or entry.level),
        )
    return table


@app.command()
@handle_engine_errors
def compile(
    markup_file: Path = typer.Argument(..., help="Rendered base markup of the view"),
    view: str = typer.Option(..., "--view", "-V", help="Dotted view name, e.g. orders.index"),
    manifest: Optional[List[Path]] = typer.Option(None, "--manifest", "-m", help="Registration manifest (repeatable)"),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Render context as JSON/YAML or a file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write compiled markup to a file"),
    show_log: bool = typer.Option(False, "--log", help="Show the compile log"),
):
    """
    Apply registered extensions to a view's markup.

    Examples:
        viewx compile index.html --view orders.index --manifest discounts.yaml

        viewx compile form.html -V orders.form -m plugin.yaml -c '{"user": {"admin": true}}' --log
    """
    if not markup_file.exists():
        raise FileNotFoundError(markup_file)

    base_markup = markup_file.read_text()
    engine = _open_engine(manifest)
    try:
        result = engine.compile(view, base_markup, _load_mapping(context))
    finally:
        engine.close()

    if result.replacement:
        console.print(f"[yellow]View {view} is replaced by {result.replacement}; markup left unchanged[/yellow]")

    if output:
        output.write_text(result.markup)
        console.print(f"[green]Compiled markup written to {output}[/green]")
    else:
        typer.echo(result.markup)

    if show_log:
        console.print(_log_table(result))
        console.print(
            f"[dim]{len(result.applied_extension_ids)} of {len(result.log)} extensions applied "
            f"in {result.duration_ms:.2f}ms[/dim]"
        )


@app.command()
@handle_engine_errors
def validate(
    definition_file: Path = typer.Argument(..., help="View definition YAML (single document or 'views' list)"),
):
    """
    Validate view definitions against their view types.

    Inheritance is checked too: definitions are registered, parents first,
    into a scratch in-memory engine.

    Example:
        viewx validate views/order_list.yaml
    """
    if not definition_file.exists():
        raise FileNotFoundError(definition_file)

    data = yaml.safe_load(definition_file.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError("Definition file must contain a mapping")
    documents = data.get("views") if "views" in data else [data]

    catalogue = ViewTypeCatalogue()
    problems = 0
    for document in documents or []:
        definition = dict(document.get("archetype") or {})
        definition["type"] = document.get("type")
        definition["entity"] = document.get("entity") or ""
        name = document.get("slug") or f"{definition['entity']}.{definition['type']}"
        if document.get("inherit"):
            # Children are only complete once merged with their parent
            console.print(f"[dim]{name}: inherits from {document['inherit']}, checked on import[/dim]")
            continue
        issues = catalogue.validate(definition)
        if issues:
            problems += len(issues)
            console.print(f"[red]✗ {name}[/red]")
            for issue in issues:
                console.print(f"  [yellow]{issue.field}[/yellow]: {issue.message}")
        else:
            console.print(f"[green]✓ {name}[/green]")

    if problems:
        console.print(f"\n[red]{problems} problem(s) found[/red]")
        raise typer.Exit(code=2)

    with ViewEngine() as engine:
        imported = engine.store.import_yaml(definition_file.read_text())
    console.print(f"\n[green]{len(imported)} view definition(s) valid[/green]")


@app.command()
def types(
    category: Optional[str] = typer.Option(None, "--category", help="Only show one category"),
    feature: Optional[str] = typer.Option(None, "--feature", help="Only show types supporting a feature"),
):
    """
    List the built-in view types.

    Example:
        viewx types --category data
    """
    catalogue = ViewTypeCatalogue()
    view_types = catalogue.all()
    if category:
        view_types = [vt for vt in view_types if vt.category == category]
    if feature:
        view_types = [vt for vt in view_types if vt.supports(feature)]

    table = Table(title="View Types")
    table.add_column("Name", style="cyan")
    table.add_column("Label")
    table.add_column("Category", style="magenta")
    table.add_column("Entity", justify="center")
    table.add_column("Features", style="dim")

    for vt in view_types:
        table.add_row(
            vt.name,
            vt.label,
            vt.category,
            "✓" if vt.requires_entity else "",
            ", ".join(vt.supported_features),
        )

    console.print(table)
    console.print(f"\n[dim]{len(view_types)} view type(s)[/dim]")


@app.command()
@handle_engine_errors
def generate(
    view_type: str = typer.Argument(..., help="View type name, e.g. list"),
    entity: str = typer.Argument(..., help="Entity name, e.g. order"),
    fields: Optional[Path] = typer.Option(None, "--fields", "-f", help="YAML list or mapping of entity fields"),
):
    """
    Print the generated default definition for an entity as YAML.

    Example:
        viewx generate form order --fields order_fields.yaml
    """
    entity_fields = None
    if fields:
        if not fields.exists():
            raise FileNotFoundError(fields)
        entity_fields = yaml.safe_load(fields.read_text())

    catalogue = ViewTypeCatalogue()
    if not catalogue.has(view_type):
        raise RegistrationError(f"Unknown view type: {view_type}")

    definition = catalogue.generate_default(view_type, entity, entity_fields)
    typer.echo(yaml.safe_dump(definition, sort_keys=False, allow_unicode=True))

    # Without fields some types cannot produce a complete definition
    for issue in catalogue.validate(definition):
        console.print(f"[yellow]# incomplete: {issue.field}: {issue.message}[/yellow]")


@app.command()
@handle_engine_errors
def manifest(
    manifests: List[Path] = typer.Argument(..., help="Registration manifests"),
    owner: Optional[str] = typer.Option(None, "--owner", help="Only dump one owner's registrations"),
):
    """
    Load manifests and print the resulting registrations.

    Example:
        viewx manifest discounts.yaml loyalty.yaml --owner discounts
    """
    engine = _open_engine(manifests)
    try:
        typer.echo(dump_registrations(engine, owner=owner))
    finally:
        engine.close()


@app.command()
@handle_engine_errors
def stats(
    manifest: Optional[List[Path]] = typer.Option(None, "--manifest", "-m", help="Registration manifest (repeatable)"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
):
    """
    Show registration and storage statistics.

    Example:
        viewx stats -m discounts.yaml
    """
    engine = _open_engine(manifest)
    try:
        data = engine.stats()
    finally:
        engine.close()

    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    registry = data["registry"]
    table = Table(title="viewx Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")

    table.add_row("Views with extensions", str(registry["views_with_extensions"]))
    table.add_row("Extensions", str(registry["total_extensions"]))
    table.add_row("Views with slots", str(registry["views_with_slots"]))
    table.add_row("Slot contents", str(registry["total_slot_contents"]))
    table.add_row("Replacements", str(registry["total_replacements"]))
    table.add_row("View types", str(data["view_types"]))
    table.add_row("View definitions", str(data["store"]["definitions"]))
    table.add_row("Cached views", str(data["cache"]["entries"]))

    console.print(table)

    if registry["owners"]:
        console.print("\n[bold]Owners:[/bold]")
        for owner in registry["owners"]:
            console.print(f"  {owner}")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    init: bool = typer.Option(False, "--init", help="Initialize config file with defaults"),
    # Compiler settings
    set_strict_xml: Optional[bool] = typer.Option(None, "--strict-xml/--no-strict-xml", help="Try XML parsing before HTML"),
    set_parse_cache: Optional[int] = typer.Option(None, "--parse-cache-size", help="Parsed source trees kept for reuse"),
    # Cache settings
    set_cache: Optional[bool] = typer.Option(None, "--cache/--no-cache", help="Enable the compiled-view cache"),
    set_cache_backend: Optional[str] = typer.Option(None, "--cache-backend", help="Cache backend (memory, database)"),
    # Store settings
    set_database: Optional[str] = typer.Option(None, "--database", help="SQLite database for view definitions"),
    set_priority: Optional[int] = typer.Option(None, "--default-priority", help="Default view definition priority"),
    # Slot and render settings
    set_max_depth: Optional[int] = typer.Option(None, "--max-slot-depth", help="Maximum nested slot/sub-view depth"),
    set_template_dir: Optional[str] = typer.Option(None, "--template-dir", help="Jinja2 template directory"),
    # CLI settings
    set_verbose: Optional[bool] = typer.Option(None, "--cli-verbose/--no-cli-verbose", help="Enable verbose output by default"),
    set_color: Optional[bool] = typer.Option(None, "--cli-color/--no-cli-color", help="Enable colored output by default"),
):
    """
    View or edit viewx configuration.

    Configuration is stored at ~/.config/viewx/config.json (or ~/.viewx/config.json),
    or wherever $VIEWX_CONFIG points.

    Examples:
        # Show current configuration
        viewx config --show

        # Initialize config file with defaults
        viewx config --init

        # Persist compiled views in the definitions database
        viewx config --database ~/views.db --cache-backend database
    """
    if init:
        config_path = ensure_config_exists()
        console.print(f"[green]Configuration initialized at {config_path}[/green]")
        return

    settings = {
        "strict_xml_first": set_strict_xml,
        "parse_cache_size": set_parse_cache,
        "cache_enabled": set_cache,
        "cache_backend": set_cache_backend,
        "database_path": set_database,
        "default_priority": set_priority,
        "max_slot_depth": set_max_depth,
        "template_dir": set_template_dir,
        "cli_verbose": set_verbose,
        "cli_color": set_color,
    }
    changes = {key: value for key, value in settings.items() if value is not None}

    if show or not changes:
        current = load_config()
        console.print("\n[bold]viewx Configuration[/bold]")
        console.print(f"[dim]Location: {get_config_path()}[/dim]\n")
        for section, values in current.to_dict().items():
            console.print(f"[bold cyan]{section.title()} Settings:[/bold cyan]")
            for key, value in values.items():
                shown = value if value is not None else "[dim]not set[/dim]"
                console.print(f"  {key:<18} {shown}")
            console.print("")
        return

    console.print("[blue]Updating configuration:[/blue]")
    for key, value in changes.items():
        console.print(f"  • {key}: {value}")

    try:
        update_config(**changes)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Configuration saved to {get_config_path()}[/green]")


@app.command()
def version():
    """Show the viewx version."""
    console.print(f"viewx {__version__}")


if __name__ == "__main__":
    app()
