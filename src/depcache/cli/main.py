"""Main CLI entry point for depcache.

Provides command-line interface for restoring and saving the build cache.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from depcache.cache import CacheConfig, CacheEngine
from depcache.cache.resolver import read_descriptor
from depcache.command import CommandRunner
from depcache.installer import Installer, detect_tool

# Global console for Rich output
console = Console()


def build_config(
    config_path: Optional[str],
    cache_dir: Optional[str],
    build_dir: Optional[str],
    no_lock: bool = False,
) -> CacheConfig:
    """Build configuration from multiple sources.

    Priority:
    1. Explicit --cache-dir/--build-dir flags
    2. DEPCACHE_* environment variables
    3. Config file (--config or ~/.depcache/config.json)

    Raises:
        click.ClickException: If the config file cannot be read
    """
    try:
        config = CacheConfig.load(Path(config_path) if config_path else None)
    except (OSError, ValueError, TypeError) as e:
        raise click.ClickException(f"Cannot load config: {e}")

    try:
        config = CacheConfig.from_env(config)
    except ValueError as e:
        raise click.ClickException(f"Invalid DEPCACHE_* environment setting: {e}")

    if cache_dir:
        config.cache_dir = Path(cache_dir).expanduser()
    if build_dir:
        config.build_dir = Path(build_dir).expanduser()
    if no_lock:
        config.use_lock = False
    return config


def make_engine(ctx) -> CacheEngine:
    return CacheEngine(ctx.obj["config"], runner=ctx.obj["runner"])


@click.group()
@click.option(
    "--cache-dir",
    "-c",
    type=click.Path(file_okay=False),
    help="Durable cache root (default: DEPCACHE_CACHE_DIR or ~/.depcache)",
)
@click.option(
    "--build-dir",
    "-b",
    type=click.Path(file_okay=False),
    help="Build directory (default: DEPCACHE_BUILD_DIR or current directory)",
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--no-lock", is_flag=True, help="Don't lock the cache root")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, cache_dir, build_dir, config_path, no_lock, verbose):
    """depcache CLI - Keep dependency directories across ephemeral builds.

    Run `restore` before installing dependencies and `save` afterwards, or
    `build` to do all three.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = build_config(config_path, cache_dir, build_dir, no_lock)
    ctx.obj.setdefault("runner", CommandRunner())


@cli.command("restore")
@click.pass_context
def restore(ctx):
    """Restore cached directories into the build directory.

    Example:
        depcache -c /tmp/cache -b /tmp/app restore
    """
    try:
        engine = make_engine(ctx)
        restored = engine.restore()
        console.print(f"[green]✓[/green] Restored {len(restored)} directories")
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("save")
@click.pass_context
def save(ctx):
    """Save configured directories from the build directory into the cache.

    Example:
        depcache -c /tmp/cache -b /tmp/app save
    """
    try:
        engine = make_engine(ctx)
        saved = engine.save()
        console.print(f"[green]✓[/green] Saved {len(saved)} directories")
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("build")
@click.pass_context
def build(ctx):
    """Restore the cache, install dependencies, then save the cache.

    Uses yarn when the build directory has a yarn.lock, npm otherwise.
    """
    try:
        config = ctx.obj["config"]
        runner = ctx.obj["runner"]
        engine = make_engine(ctx)

        # Decided on the build dir as uploaded, before restored content lands
        tool = detect_tool(config.build_dir)
        installer = Installer(
            config.build_dir,
            runner,
            tool,
            descriptor=read_descriptor(config.descriptor_path),
        )

        engine.restore()
        installer.build()

        saved = engine.save()
        if installer.warn_no_start():
            console.print(
                "[yellow]⚠ Warning:[/yellow] No Procfile, server.js or start script found"
            )
        console.print(
            f"[green]✓[/green] Built with {tool.value}, cached {len(saved)} directories"
        )
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("status")
@click.option("--no-probe", is_flag=True, help="Don't run toolchain binaries")
@click.pass_context
def status(ctx, no_probe):
    """Show the cache manifest and which directories are cached."""
    try:
        engine = make_engine(ctx)
        info = engine.status(probe=not no_probe)

        console.print(f"[bold]Cache:[/bold] {info['cache_dir']}")
        console.print(f"[bold]Build:[/bold] {info['build_dir']}")

        if not info["manifest_found"]:
            console.print("[yellow]No cache saved yet[/yellow]")
        else:
            console.print(f"  Saved at: {info['saved_at']}")
            console.print(f"  Signature: {info['cached_signature']}")
            if not no_probe:
                if info["signature_matches"]:
                    console.print("  [green]Toolchain unchanged[/green]")
                else:
                    console.print(
                        f"  [yellow]Toolchain changed:[/yellow] {info['current_signature']}"
                    )

        table = Table(title=f"Directories ({info['source']})")
        table.add_column("Path", style="cyan")
        table.add_column("Configured", justify="center")
        table.add_column("Cached", justify="center")
        for entry in info["directories"]:
            table.add_row(
                entry["path"],
                "✓" if entry["configured"] else "",
                "[green]✓[/green]" if entry["cached"] else "[dim]-[/dim]",
            )
        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def clear(ctx, yes):
    """Discard all cached directories and the manifest."""
    try:
        config = ctx.obj["config"]
        if not yes and not click.confirm(f"Clear cache at {config.cache_dir}?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

        make_engine(ctx).clear()
        console.print(f"[green]✓[/green] Cleared cache at {config.cache_dir}")
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
