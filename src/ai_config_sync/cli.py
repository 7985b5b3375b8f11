"""Command-line interface for ai-config-sync."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from . import __version__
from .config.settings import AppSettings, SCOPES
from .sync.models import SyncStatus
from .sync.workspace_manager import WorkspaceManager
from .utils.logging import setup_logging

# Force UTF-8 encoding for Windows console to handle Unicode characters
if sys.platform == 'win32':
    import codecs
    sys.stdout = codecs.getwriter('utf-8')(sys.stdout.buffer, errors='replace')
    sys.stderr = codecs.getwriter('utf-8')(sys.stderr.buffer, errors='replace')

console = Console()

STATUS_STYLES = {
    SyncStatus.CREATE: "green",
    SyncStatus.UPDATE: "yellow",
    SyncStatus.APPEND: "cyan",
    SyncStatus.UNCHANGED: "dim",
}

scope_argument = click.argument('scope', type=click.Choice(SCOPES))


def _fail(e: Exception):
    console.print(f"❌ Error: {escape(str(e))}", style="red bold")
    sys.exit(1)


def _manager(ctx: click.Context) -> WorkspaceManager:
    if 'manager' not in ctx.obj:
        ctx.obj['manager'] = WorkspaceManager(ctx.obj['settings'])
    return ctx.obj['manager']


@click.group()
@click.version_option(version=__version__)
@click.option('--home', type=click.Path(file_okay=False, path_type=Path),
              help='Home directory holding the workspace and agent directories')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                                               case_sensitive=False),
              help='Logging level')
@click.pass_context
def cli(ctx: click.Context, home: Path, log_level: str):
    """AI Config Sync

    Keeps Codex, Gemini and Claude instruction files in step with one
    canonical source workspace.
    """
    ctx.ensure_object(dict)
    try:
        settings = AppSettings.load(home=home, log_level=log_level)
    except Exception as e:
        _fail(e)
    setup_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_to_console=settings.log_to_console,
    )
    ctx.obj['settings'] = settings


@cli.command()
@click.pass_context
def init(ctx: click.Context):
    """Create the workspace and seed the source from existing agent files."""
    try:
        info = _manager(ctx).init_workspace()

        console.print(f"✅ Workspace ready at {info.app_root}", style="green")
        if info.bootstrapped:
            console.print("📥 Source instructions seeded from existing agent files")

        table = Table(title="Scopes")
        table.add_column("Scope", style="cyan")
        table.add_column("Path")
        for scope in info.scopes:
            table.add_row(scope.name, escape(scope.path))
        console.print(table)
        console.print(f"Categories: {', '.join(info.categories)}")

    except Exception as e:
        _fail(e)


@cli.command()
@click.pass_context
def endpoints(ctx: click.Context):
    """Show agent roots and mapped target files."""
    try:
        table = Table(title="Agent Endpoints")
        table.add_column("Agent", style="cyan")
        table.add_column("Kind")
        table.add_column("Category", style="magenta")
        table.add_column("Path")
        table.add_column("Exists", justify="center")

        for endpoint in _manager(ctx).get_agent_endpoints():
            table.add_row(
                endpoint.agent,
                endpoint.kind,
                endpoint.category or "",
                escape(endpoint.path),
                "[green]yes[/green]" if endpoint.exists else "[dim]no[/dim]",
            )
        console.print(table)

    except Exception as e:
        _fail(e)


# Scope files

@cli.group()
def files():
    """Browse and edit scope files."""


@files.command('list')
@scope_argument
@click.pass_context
def list_files(ctx: click.Context, scope: str):
    """List files in a scope."""
    try:
        result = _manager(ctx).list_scope_files(scope)
        console.print(f"📁 [bold]{scope}[/bold] ({escape(result.base_path)})")
        if not result.files:
            console.print("No files", style="dim")
        for relative_path in result.files:
            console.print(f"  {escape(relative_path)}")
    except Exception as e:
        _fail(e)


@files.command('show')
@scope_argument
@click.argument('relative_path')
@click.pass_context
def show_file(ctx: click.Context, scope: str, relative_path: str):
    """Print a scope file."""
    try:
        content = _manager(ctx).read_scope_file(scope, relative_path).content
        click.echo(content, nl=not content.endswith("\n"))
    except Exception as e:
        _fail(e)


@files.command('save')
@scope_argument
@click.argument('relative_path')
@click.option('--from-file', '-f', 'from_file', type=click.File('r', encoding='utf-8'),
              default='-', help='Read content from a file (default: stdin)')
@click.pass_context
def save_file(ctx: click.Context, scope: str, relative_path: str, from_file):
    """Write a scope file."""
    try:
        _manager(ctx).save_scope_file(scope, relative_path, from_file.read())
        console.print(f"✅ Saved {scope}/{escape(relative_path)}", style="green")
    except Exception as e:
        _fail(e)


@files.command('delete')
@scope_argument
@click.argument('relative_path')
@click.confirmation_option(prompt='Delete this file?')
@click.pass_context
def delete_file(ctx: click.Context, scope: str, relative_path: str):
    """Delete a scope file."""
    try:
        _manager(ctx).delete_scope_file(scope, relative_path)
        console.print(f"🗑️ Deleted {scope}/{escape(relative_path)}", style="green")
    except Exception as e:
        _fail(e)


# Mapping

@cli.group()
def mapping():
    """Show or replace the category mapping."""


@mapping.command('show')
@click.pass_context
def show_mapping(ctx: click.Context):
    """Print the mapping as JSON."""
    try:
        click.echo(_manager(ctx).get_mapping().to_json(), nl=False)
    except Exception as e:
        _fail(e)


@mapping.command('save')
@click.argument('mapping_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def save_mapping(ctx: click.Context, mapping_file: Path):
    """Validate and save a mapping from a JSON file."""
    try:
        with open(mapping_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        saved = _manager(ctx).save_mapping(data)
        console.print(f"✅ Mapping saved ({len(saved.categories)} categories)", style="green")
    except Exception as e:
        _fail(e)


# Sync

@cli.command()
@click.option('--diff', 'show_diff', is_flag=True, help='Show a unified diff for each change')
@click.option('--all', 'show_all', is_flag=True, help='Include unchanged items')
@click.pass_context
def preview(ctx: click.Context, show_diff: bool, show_all: bool):
    """Preview what a sync would change."""
    try:
        result = _manager(ctx).preview_sync()
        items = result.items if show_all else result.changed_items()

        if not items:
            console.print("✅ Everything is in sync", style="green")
            return

        table = Table(title="Sync Preview")
        table.add_column("ID", style="cyan")
        table.add_column("Status")
        table.add_column("Target")
        table.add_column("Source", style="dim")
        for item in items:
            style = STATUS_STYLES[item.status]
            table.add_row(
                item.id,
                f"[{style}]{item.status.value}[/{style}]",
                escape(f"{item.agent}/{item.target_relative_path}"),
                escape(item.source_file),
            )
        console.print(table)

        if show_diff:
            for item in items:
                diff = item.unified_diff()
                if diff:
                    console.print(Syntax(diff, "diff", theme="ansi_dark"))

    except Exception as e:
        _fail(e)


@cli.command()
@click.argument('ids', nargs=-1)
@click.option('--all', 'apply_all', is_flag=True, help='Apply every changed item')
@click.pass_context
def apply(ctx: click.Context, ids, apply_all: bool):
    """Apply selected sync items (ids as shown by 'preview')."""
    try:
        manager = _manager(ctx)
        selected = list(ids)
        if apply_all:
            selected = [item.id for item in manager.preview_sync().changed_items()]
        elif not selected:
            raise click.UsageError("Pass item ids or --all")

        result = manager.apply_sync(selected)
        if result.applied_count == 0:
            console.print("✅ Nothing to apply, targets already match", style="green")
            return

        console.print(f"✅ Applied {result.applied_count} file(s)", style="green")
        for path in result.files:
            console.print(f"  {escape(path)}")
        console.print(f"💾 Backup: {result.backup_id}")

    except click.UsageError:
        raise
    except Exception as e:
        _fail(e)


# Backups

@cli.group()
def backups():
    """List, inspect and restore backups."""


@backups.command('list')
@click.pass_context
def list_backups(ctx: click.Context):
    """List backups, newest first."""
    try:
        result = _manager(ctx).list_backups()
        if not result:
            console.print("No backups", style="dim")
            return

        table = Table(title="Backups")
        table.add_column("Backup ID", style="cyan")
        table.add_column("Created")
        table.add_column("Trigger", style="magenta")
        table.add_column("Entries", justify="right")
        for backup in result:
            table.add_row(
                backup.backup_id,
                backup.created_at.strftime('%Y-%m-%d %H:%M:%S'),
                backup.trigger.value,
                str(backup.entry_count),
            )
        console.print(table)

    except Exception as e:
        _fail(e)


@backups.command('show')
@click.argument('backup_id')
@click.pass_context
def show_backup(ctx: click.Context, backup_id: str):
    """Show the entries of a backup against current content."""
    try:
        detail = _manager(ctx).get_backup_detail(backup_id)
        console.print(f"💾 [bold]{detail.backup_id}[/bold] ({detail.trigger.value}, "
                      f"{detail.created_at.strftime('%Y-%m-%d %H:%M:%S')})")

        table = Table()
        table.add_column("Scope", style="cyan")
        table.add_column("File")
        table.add_column("Existed Before", justify="center")
        table.add_column("Current", justify="center")
        for entry in detail.entries:
            if entry.current_content is None:
                current = "[red]missing[/red]"
            elif entry.current_content == entry.backup_content:
                current = "[dim]same[/dim]"
            else:
                current = "[yellow]changed[/yellow]"
            table.add_row(
                entry.agent,
                escape(entry.target_relative_path),
                "yes" if entry.existed_before else "no",
                current,
            )
        console.print(table)

    except Exception as e:
        _fail(e)


@backups.command('create')
@click.pass_context
def create_backup(ctx: click.Context):
    """Snapshot every existing mapped agent target."""
    try:
        backup = _manager(ctx).create_manual_backup()
        if backup is None:
            console.print("⚠️ No mapped target files exist yet, nothing to back up", style="yellow")
            return
        console.print(f"✅ Created backup {backup.backup_id} ({backup.entry_count} file(s))",
                      style="green")
    except Exception as e:
        _fail(e)


@backups.command('restore')
@click.argument('backup_id')
@click.pass_context
def restore_backup(ctx: click.Context, backup_id: str):
    """Restore files to the state captured in a backup."""
    try:
        result = _manager(ctx).restore_backup(backup_id)
        console.print(f"✅ Restored {result.restored_count} file(s) from {backup_id}", style="green")
    except Exception as e:
        _fail(e)


@backups.command('delete')
@click.argument('backup_id')
@click.confirmation_option(prompt='Delete this backup permanently?')
@click.pass_context
def delete_backup(ctx: click.Context, backup_id: str):
    """Delete a backup."""
    try:
        _manager(ctx).delete_backup(backup_id)
        console.print(f"🗑️ Deleted backup {backup_id}", style="green")
    except Exception as e:
        _fail(e)


# Share packages

@cli.command()
@click.option('--sanitize/--no-sanitize', default=None,
              help='Redact secret-like content (default from settings)')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Archive path (default: exports directory)')
@click.pass_context
def export(ctx: click.Context, sanitize, output: Path):
    """Export the source scope and mapping as a share package."""
    try:
        if sanitize is None:
            sanitize = ctx.obj['settings'].sanitize.enabled_by_default
        result = _manager(ctx).export_share_package(sanitize, output)
        console.print(f"✅ Exported {result.files} file(s) to {escape(result.path)}", style="green")
        if result.sanitized:
            console.print("🔒 Secret-like content was redacted")
    except Exception as e:
        _fail(e)


@cli.group('import')
def import_group():
    """Preview or apply a share package."""


@import_group.command('preview')
@click.argument('zip_path', type=click.Path(path_type=Path))
@click.pass_context
def import_preview(ctx: click.Context, zip_path: Path):
    """Show what importing a share package would do."""
    try:
        result = _manager(ctx).preview_import_package(zip_path)

        table = Table(title="Import Preview")
        table.add_column("Scope", style="cyan")
        table.add_column("File")
        table.add_column("Status")
        for entry in result.files:
            style = "yellow" if entry.status.value == "overwrite" else "green"
            table.add_row(entry.scope, escape(entry.relative_path),
                          f"[{style}]{entry.status.value}[/{style}]")
        console.print(table)
        if result.has_mapping:
            console.print("📋 Package includes a mapping")

    except Exception as e:
        _fail(e)


@import_group.command('apply')
@click.argument('zip_path', type=click.Path(path_type=Path))
@click.option('--overwrite', is_flag=True, help='Replace files that already exist')
@click.pass_context
def import_apply(ctx: click.Context, zip_path: Path, overwrite: bool):
    """Import a share package into the workspace."""
    try:
        result = _manager(ctx).apply_import_package(zip_path, overwrite)
        console.print(f"✅ Imported {result.applied_count} file(s), "
                      f"skipped {result.skipped_count}", style="green")
        if result.backup_id:
            console.print(f"💾 Backup: {result.backup_id}")
    except Exception as e:
        _fail(e)


if __name__ == '__main__':
    cli()
