"""Link graph over the committed index.

Nodes are indexed note paths; edges are the resolved backreferences stored
on each referencing note.  Uses :mod:`networkx`, imported lazily.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import networkx as nx

    from zest.store import IndexStore


def link_graph(store: "IndexStore", query: str = "*") -> "nx.DiGraph":
    """Return a directed graph of the notes matching *query* and their links.

    Edges whose target is not among the matching notes are dropped.
    """
    import networkx as nx

    records = store.query(query)
    G: nx.DiGraph = nx.DiGraph()
    for record in records:
        G.add_node(record.path, title=record.title)
    for record in records:
        for target in record.refs:
            if target in G:
                G.add_edge(record.path, target)
    return G


def edges(graph: "nx.DiGraph") -> list[tuple[str, str]]:
    """``(source_path, target_path)`` pairs, sorted."""
    return sorted(graph.edges())


def orphans(graph: "nx.DiGraph") -> list[str]:
    """Notes with neither incoming nor outgoing links."""
    return sorted(n for n in graph.nodes if graph.degree(n) == 0)
