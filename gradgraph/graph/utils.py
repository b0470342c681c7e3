# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Traversal helpers for computation graphs. """
from typing import List

import networkx as nx

from gradgraph.graph.nodes import Node


def dependency_graph(graph) -> nx.DiGraph:
    """ Builds a ``networkx.DiGraph`` with one vertex per variable and node of
        ``graph`` and an edge from every node to each of its operands.

        Vertices are inserted variables first, then nodes, both in graph order;
        the out-edges of a vertex follow its operand order. Operands that were
        never added to ``graph`` still become vertices.
    """
    G = nx.DiGraph()
    G.add_nodes_from(graph.variables)
    G.add_nodes_from(graph.nodes)
    stack = list(graph.nodes)
    while stack:
        node = stack.pop()
        for operand in node.inputs:
            if operand.node not in G:
                stack.append(operand.node)
            G.add_edge(node, operand.node)
    return G


def post_order(graph) -> List[Node]:
    """ Returns every variable and node of ``graph`` in dependency-first order:
        no vertex precedes a vertex it depends on.

        Roots are the variables followed by the nodes, in graph order. Each
        root is expanded depth-first through its operands, and vertices that
        were already emitted are skipped.

        :raises ValueError: if the graph contains a cycle.
    """
    G = dependency_graph(graph)
    if not nx.is_directed_acyclic_graph(G):
        cycle = nx.find_cycle(G)
        raise ValueError(f"Graph {graph} contains a cycle through {', '.join(str(u) for u, _ in cycle)}")
    return list(nx.dfs_postorder_nodes(G))
