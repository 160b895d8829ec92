"""Operation-specific Rich renderers for ServiceResult.

Each renderer draws onto a Console handed out by
:func:`kbgraph.output.console.capture`; :func:`render_result` picks the
renderer from ``result.op`` and returns the captured text. Unknown ops fall
through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from kbgraph.output.console import capture, style_for_type

if TYPE_CHECKING:
    from rich.console import Console

    from kbgraph.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
    else:
        renderer = _render_error

    with capture() as (console, out):
        renderer(result, console, verbose=verbose)
    return out.text.rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode: ids only."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    d = result.data
    for key in ("items", "nodes", "children", "issues"):
        rows = d.get(key)
        if isinstance(rows, list):
            return "\n".join(str(r["id"] if "id" in r else r.get("node_id", "")) for r in rows)
    if "removed" in d:
        return "removed" if d["removed"] else "unchanged"
    if "id" in d:
        return str(d["id"])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line, flagging replayed operations."""
    parts = [Text("OK", style="kb.ok"), Text(f"  {result.op}", style="kb.op")]
    if result.meta and result.meta.get("replayed"):
        parts.append(Text("  (already applied)", style="dim"))
    console.print(*parts, sep="")


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="kb.key")
    if key in ("id", "start", "end") or key.endswith("_id"):
        v = Text(str(value), style="kb.id")
    elif key == "name":
        v = Text(str(value), style="kb.name")
    elif key == "type":
        v = Text(str(value), style=style_for_type(str(value)))
    else:
        v = Text(str(value))
    console.print(k, v, sep="")


def _node_label(node: dict[str, Any]) -> Text:
    label = Text()
    label.append(str(node.get("name", "?")), style="kb.name")
    label.append("  ")
    label.append(str(node.get("id", "")), style="kb.id")
    node_type = str(node.get("type", ""))
    label.append(f"  {node_type}", style=style_for_type(node_type))
    return label


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    code = f" [{err.code}]" if err else ""
    console.print(
        Text("ERROR", style="kb.error"),
        Text(f"  {result.op}", style="kb.op"),
        Text(f"{code} — {msg}"),
        sep="",
    )

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Mutation renderers ────────────────────────────────────────────────


def _render_node(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render root/create/rename results."""
    _status_line(console, result)
    for key in ("id", "name", "type"):
        if key in result.data:
            _field(console, key, result.data[key])
    if verbose:
        _render_meta(console, result)


def _render_edge(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render connect/add_node/move_node results."""
    _status_line(console, result)
    d = result.data
    console.print(
        Text("  "),
        Text(str(d.get("start")), style="kb.id"),
        Text(" → "),
        Text(str(d.get("end")), style="kb.id"),
        Text(f"  (edge {d.get('id')})", style="kb.key"),
        sep="",
    )
    if verbose:
        _render_meta(console, result)


def _render_remove(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a cascading remove with its re-homed child edges."""
    _status_line(console, result)
    d = result.data
    _field(console, "id", d.get("id"))
    _field(console, "removed", d.get("removed"))
    redirected = d.get("redirected", [])
    if redirected:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("Edge", style="kb.id", no_wrap=True)
        table.add_column("Child", style="kb.id")
        table.add_column("New container", style="kb.id")
        for edge in redirected:
            table.add_row(str(edge["id"]), str(edge["start"]), str(edge["end"]))
        console.print()
        console.print(table)
    if verbose:
        _render_meta(console, result)


def _render_remove_node(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    _status_line(console, result)
    d = result.data
    outcome = "removed" if d.get("removed") else "no such membership"
    console.print(f"  {d.get('start')} from {d.get('end')}: {outcome}")
    if verbose:
        _render_meta(console, result)


# ── Query renderers ───────────────────────────────────────────────────


def _render_collection(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a collection with its direct members as a tree."""
    d = result.data
    tree = Tree(_node_label(d["collection"]))
    edge_by_child = {e["start"]: e["id"] for e in d.get("edges", [])}
    for child in d.get("children", []):
        label = _node_label(child)
        if verbose:
            label.append(f"  edge {edge_by_child.get(child['id'], '?')}", style="dim")
        tree.add(label)
    console.print(tree)
    parents = d.get("parents", [])
    if parents:
        console.print(Text(f"  in: {', '.join(parents)}", style="kb.key"))
    console.print(f"\n{len(d.get('children', []))} members")


def _render_graph(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the user's containment DAG as a tree rooted at the root collection.

    Nodes with several containers appear under each of them. Nodes not
    reachable from the root are listed separately.
    """
    d = result.data
    nodes = {n["id"]: n for n in d.get("nodes", [])}
    members: dict[str, list[str]] = {}
    for edge in d.get("edges", []):
        members.setdefault(edge["end"], []).append(edge["start"])

    seen: set[str] = set()

    def grow(branch: Tree, node_id: str, path: frozenset[str]) -> None:
        seen.add(node_id)
        for child_id in members.get(node_id, []):
            if child_id in path:
                branch.add(Text(f"{child_id} (cycle)", style="kb.error"))
                continue
            grow(branch.add(_node_label(nodes[child_id])), child_id, path | {child_id})

    root_id = d.get("root")
    if root_id and root_id in nodes:
        tree = Tree(_node_label(nodes[root_id]))
        grow(tree, root_id, frozenset({root_id}))
        console.print(tree)

    unreachable = [n for nid, n in nodes.items() if nid not in seen]
    if unreachable:
        console.print(Text("\nnot reachable from root:", style="kb.warning"))
        for node in unreachable:
            console.print(Text("  ").append_text(_node_label(node)))

    console.print(f"\n{len(nodes)} nodes, {len(d.get('edges', []))} containment edges")
    if verbose:
        _render_meta(console, result)


def _render_search(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="kb.id", no_wrap=True)
    table.add_column("Name", style="kb.name")
    table.add_column("Type")
    for item in items:
        item_type = str(item.get("type", ""))
        table.add_row(
            str(item["id"]), str(item["name"]), Text(item_type, style=style_for_type(item_type))
        )
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} items")


# ── Check renderer ────────────────────────────────────────────────────


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render check results with issues grouped by category."""
    issues = result.data.get("issues", [])
    count = result.data.get("count", len(issues))

    if count == 0:
        console.print("[kb.ok]OK[/kb.ok]  No issues found.")
        return

    severity_styles = {"error": "kb.error", "warning": "kb.warning"}

    by_category: dict[str, list[dict[str, Any]]] = {}
    for issue in issues:
        by_category.setdefault(str(issue.get("category", "unknown")), []).append(issue)

    for cat, cat_issues in by_category.items():
        console.print(f"\n[bold]{cat}[/bold]")
        for issue in cat_issues:
            sev = str(issue.get("severity", "warning"))
            style = severity_styles.get(sev, "")
            prefix = f"[{style}]{sev}[/{style}]" if style else sev
            node_id = issue.get("node_id")
            nid = f" \\[{node_id}]" if node_id else ""
            console.print(f"  {prefix}{nid}: {issue.get('message', '')}")

    errors = sum(1 for i in issues if i.get("severity") == "error")
    console.print(f"\n{errors} errors, {count - errors} warnings")


# ── Init / upgrade renderers ─────────────────────────────────────────


def _render_init(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("data_root", "db_path", "revision", "root_id"):
        if key in result.data:
            _field(console, key, result.data[key])


def _render_upgrade(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render upgrade/migration results."""
    _status_line(console, result)
    d = result.data
    for key in ("applied_count", "pending_count", "current", "head", "backup_path", "message"):
        if key in d:
            _field(console, key, d[key])
    if verbose and d.get("pending"):
        console.print()
        for p in d["pending"]:
            console.print(f"  {p['revision']}: {p['description']}")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, json.dumps(value, separators=(",", ":")))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Mutations
    "create_root_collection": _render_node,
    "create": _render_node,
    "create_node": _render_node,
    "rename": _render_node,
    "connect": _render_edge,
    "add_node": _render_edge,
    "move_node": _render_edge,
    "remove": _render_remove,
    "remove_node": _render_remove_node,
    # Query
    "get": _render_collection,
    "user_graph": _render_graph,
    "search": _render_search,
    # Check
    "check": _render_check,
    # Setup
    "init": _render_init,
    "upgrade": _render_upgrade,
}
