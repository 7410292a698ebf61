"""
Dispatch command: build a store and apply one named action
"""

import asyncio
import json
from typing import Any, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax

from treestore.core import StoreError, canonical_json_str
from treestore.core.tree import leaf_count

from ._loader import load_registry

console = Console()


def _parse_json(raw: Optional[str], option: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"{option} is not valid JSON: {e}")


async def _run(target: str, name: str, action_type: Optional[str], payload: Any, initial: Any):
    store = await load_registry(target).create_store(initial, name="cli")
    before = store.value
    if action_type is not None:
        await store.dispatch(name, action_type, payload)
    else:
        await store.dispatch(name, payload)
    await store.join()
    return before, store.value


def dispatch_command(
    target: str = typer.Argument(..., help="Registry to load, as MODULE:ATTRIBUTE"),
    name: str = typer.Argument(..., help="Action name to dispatch"),
    action_type: Optional[str] = typer.Option(None, "--type", "-t", help="Action type (multi-type actions)"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="Payload as JSON"),
    initial: Optional[str] = typer.Option(None, "--initial", "-i", help="Initial state as JSON"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Create a store, dispatch one action and print the resulting state.

    Examples:
        treestore dispatch myapp.state:registry increment --payload 5
        treestore dispatch myapp.state:registry move --type MOVE_UP --payload 2
        treestore dispatch myapp.state:registry reset --initial '{"counter": 3}' --json
    """
    payload_value = _parse_json(payload, "--payload")
    initial_value = _parse_json(initial, "--initial")

    try:
        before, after = asyncio.run(_run(target, name, action_type, payload_value, initial_value))
    except (ValueError, ImportError, StoreError) as e:
        if json_output:
            print(json.dumps({"error": str(e), "error_type": type(e).__name__}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    if json_output:
        print(json.dumps({
            "success": True,
            "action": name,
            "type": action_type,
            "state": json.loads(canonical_json_str(after)),
        }, indent=2))
        raise typer.Exit(0)

    console.print(f"[green]✓ Dispatched {name}[/green]")
    console.print(f"  Leaves: [cyan]{leaf_count(after)}[/cyan]")
    console.print(f"  Changed: [yellow]{canonical_json_str(before) != canonical_json_str(after)}[/yellow]")
    console.print("\n[bold]State:[/bold]")
    console.print(Syntax(canonical_json_str(after, indent=2), "json", theme="monokai"))
    raise typer.Exit(0)
