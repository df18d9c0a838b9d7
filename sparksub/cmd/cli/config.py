"""
Configuration management commands for the sparksub CLI.

Commands:
- show: Display the effective configuration, or one section of it
- init: Write a configuration file, optionally seeded with the cluster
  parameters every submission needs
- path: Show the path to the configuration file
"""

import os
import yaml
import typer
from rich import print
from rich.markup import escape
from typing import Optional
from sparksub.utils import config as config_module
from sparksub.utils.config import get_config

config_app = typer.Typer(no_args_is_help=True)

@config_app.command("show")
def config_show(
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Only show one section, e.g. gate"),
) -> None:
    """
    Show current configuration.

    Values are shown after the config file and SPARKSUB_* environment
    overrides have been applied; active overrides are listed below.
    """
    data = get_config().to_dict()
    if section:
        if section not in data:
            print(f"[red]Unknown section:[/red] {escape(section)} (expected one of: {', '.join(data)})")
            raise typer.Exit(1)
        data = {section: data[section]}

    print("[cyan]Current configuration:[/cyan]\n")
    print(yaml.dump(data, default_flow_style=False, sort_keys=False))

    overrides = sorted(k for k in os.environ if k.startswith("SPARKSUB_"))
    if overrides:
        print(f"[dim]Environment overrides: {', '.join(overrides)}[/dim]")

@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing config"),
    master: Optional[str] = typer.Option(None, "--master", help="Spark master URL to store"),
    image: Optional[str] = typer.Option(None, "--image", help="Container image to store"),
    namespace: Optional[str] = typer.Option(None, "--ns", "-n", help="Namespace of the Spark pods"),
) -> None:
    """
    Create a config file.

    An existing file is only replaced with --force. Without --master and
    --image the file is valid but `sparksub submit` still needs both flags.
    """
    path = config_module.CONFIG_FILE
    if path.exists() and not force:
        print(f"[yellow]Config already exists:[/yellow] {path}")
        print("Use --force to overwrite")
        return

    config = get_config()
    if master:
        config.submit.master = master
    if image:
        config.submit.image = image
    if namespace:
        config.cluster.namespace = namespace

    config.save(path)
    print(f"[green]✓ Config created:[/green] {path}")

    missing = [name for name, value in (("master", config.submit.master), ("image", config.submit.image)) if not value]
    if missing:
        print(f"[yellow]submit still needs:[/yellow] {', '.join('--' + m for m in missing)}")

@config_app.command("path")
def config_path() -> None:
    """Show config file path."""
    print(config_module.CONFIG_FILE)
