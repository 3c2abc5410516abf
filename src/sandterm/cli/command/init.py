"""Init command implementation"""

import json
from datetime import datetime

import click
from rich.console import Console

from ..util import get_instance_path, is_initialized

console = Console()

DEFAULT_CONFIG = """[server]
host = "0.0.0.0"
port = 18081

[cors]
allow_origins = ["http://localhost:5173"]
allow_credentials = true
allow_methods = ["*"]
allow_headers = ["*"]

[sandbox]
# "execd": remote sandboxes through the lifecycle server
# "local": local subprocesses under local_root (development only)
backend = "execd"
domain = "127.0.0.1:8080"
protocol = "http"
api_key = ""
request_timeout = 30
execd_host = "127.0.0.1"
working_directory = ""
local_root = "."

[terminal]
# Run commands under `script` so they get a pseudo-terminal
pty_wrap = true
"""


@click.command(name="init", help="Initialize a new sandterm instance")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def init(path: str = None):
    """Initialize a new sandterm instance

    Args:
        path: Instance directory path (default: ~/.sandterm)
    """
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(
            f"[red]Error: Already initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(
            f"[red]Error: Directory is not empty: {instance_path}[/red]"
        )
        raise click.Abort()

    # 1. Create directory structure
    console.print(f"Initializing sandterm instance at {instance_path}")
    console.print("")

    instance_path.mkdir(parents=True, exist_ok=True)
    (instance_path / "logs").mkdir(exist_ok=True)

    # 2. Generate config.toml with default settings
    console.print("Generating configuration...")
    config_file = instance_path / "config.toml"
    config_file.write_text(DEFAULT_CONFIG)

    # 3. Create .sandterm_instance flag file
    flag_data = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
    }

    flag_file = instance_path / ".sandterm_instance"
    with open(flag_file, "w") as f:
        json.dump(flag_data, f, indent=2)

    # 4. Display success message
    console.print("")
    console.print("[green]✓ sandterm instance initialized successfully![/green]")
    console.print("")
    console.print(f"Location: {instance_path}")
    console.print("")
    console.print("Next steps:")
    console.print("  1. Point [sandbox] at your sandbox server:")
    console.print(f"     {config_file}")
    console.print("")
    console.print("  2. Start the backend server:")
    if path:
        console.print(f"     sandterm start {path}")
    else:
        console.print("     sandterm start")
    console.print("")
    console.print("Logs: {}/logs/".format(instance_path))
