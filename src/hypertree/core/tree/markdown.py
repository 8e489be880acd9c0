"""Render a flattened view as an indented markdown outline."""

import io
from collections.abc import Iterable, Mapping

from hypertree.models.node import NodeSnapshot


def _label(row: NodeSnapshot, label_key: str | None) -> str:
    if label_key and isinstance(row.data, Mapping):
        value = row.data.get(label_key)
        if value is not None:
            return str(value)
    return str(row.id)


def render_view_as_markdown(
    rows: Iterable[NodeSnapshot],
    *,
    label_key: str | None = None,
    show_ids: bool = False,
) -> str:
    """Render visible rows as a bullet-list hierarchy.

    Args:
        rows: Flattened view rows, in pre-order.
        label_key: Record field used as the row text (falls back to the id).
        show_ids: Append ``id=...`` to every row.

    Returns:
        Markdown string. Closed nodes with children are marked ``[+]``, opened
        ones ``[-]``, selected rows are bold and loading rows end with ``...``.
    """
    out = io.StringIO()
    for row in rows:
        indent = "    " * row.depth

        marker = ""
        if row.has_children or not row.is_leaf:
            marker = "[-] " if row.opened else "[+] "

        text = _label(row, label_key)
        lines = text.split("\n")
        first = f"**{lines[0]}**" if row.selected else lines[0]
        suffix = " ..." if row.loading else ""
        if show_ids:
            suffix += f"  (id={row.id})"

        out.write(f"{indent}- {marker}{first}{suffix}\n")
        for line in lines[1:]:
            out.write(f"{indent}  {line}\n")

    return out.getvalue()
