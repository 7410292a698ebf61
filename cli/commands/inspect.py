"""
Inspect command: show the compiled state tree of a registry
"""

import json
from collections import defaultdict
from typing import Dict, List

import typer
from rich.console import Console
from rich.table import Table

from treestore.core import RegistrationError

from ._loader import load_registry

console = Console()


def inspect_command(
    target: str = typer.Argument(..., help="Registry to load, as MODULE:ATTRIBUTE"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show which action owns which node of the state tree.

    Examples:
        treestore inspect myapp.state:registry
        treestore inspect myapp.state:build_registry --json
    """
    try:
        registry = load_registry(target)
        reducer = registry.create_reducer()
        snap = registry.snapshot()
    except (ValueError, ImportError, RegistrationError) as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    leaves = [
        {
            "selector": leaf.selector,
            "owners": [{"name": n, "type": t} for n, t in leaf.owners],
        }
        for leaf in reducer.leaves()
    ]
    effects: Dict[str, int] = {t: len(v) for t, v in snap.side_effects.items()}
    names: Dict[str, List[str]] = {n: list(t) for n, t in snap.action_types.items()}

    if json_output:
        print(json.dumps({"leaves": leaves, "actions": names, "side_effects": effects}, indent=2))
        raise typer.Exit(0)

    tree = Table(title=f"State tree: {target}")
    tree.add_column("Selector", style="green")
    tree.add_column("Action", style="cyan")
    tree.add_column("Type", style="yellow")
    for leaf in leaves:
        for i, owner in enumerate(leaf["owners"]):
            tree.add_row(leaf["selector"] if i == 0 else "", owner["name"], owner["type"])
    console.print(tree)

    by_type = defaultdict(int, effects)
    actions = Table(title="Actions")
    actions.add_column("Name", style="cyan")
    actions.add_column("Types", style="yellow")
    actions.add_column("Side effects", justify="right")
    for name in sorted(names):
        types = names[name]
        actions.add_row(name, ", ".join(types), str(sum(by_type[t] for t in types)))
    console.print(actions)
    raise typer.Exit(0)
