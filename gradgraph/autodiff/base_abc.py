# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Abstract Base Classes for Autodiff
"""
import abc
import dataclasses
import logging
import typing

import gradgraph.registry
from gradgraph.graph import Graph, Node

log = logging.getLogger(__name__)


class AutoDiffException(Exception):
    """Base class for all exceptions related to automatic differentiation failures."""
    pass


@dataclasses.dataclass
class BackwardContext:
    """The state a backward implementation needs to construct reverse nodes."""
    graph: Graph  #: The graph being differentiated (read-only during the sweep)
    grad_map: 'gradgraph.autodiff.grad_mapper.GraphGradMapper'  #: Gradients accumulated so far
    seed: float  #: Value of the gradient source created for graph outputs

    def add_node(self, node: Node) -> Node:
        """Stage a newly created node for insertion into the graph once the pass completes."""
        return self.grad_map.staging.add_node(node)


@gradgraph.registry.make_registry
class BackwardImplementation(abc.ABC):
    """ABC for backward implementations.

    The register function expects an argument ``node_type=TYPE`` where ``TYPE`` is the node class that this
    backward implementation supports, and a ``name`` argument that names the implementation.
    """

    @staticmethod
    def backward_can_be_applied(node: Node) -> bool:
        """Return whether this implementation can be applied to ``node``.

        :param node: The candidate node.
        :return: True if the implementation can be applied, False otherwise.
        """
        return True

    @staticmethod
    @abc.abstractmethod
    def backward(forward_node: Node, context: BackwardContext) -> typing.List[Node]:
        """Add the reverse nodes of a forward node and register the gradients of its operands.

        Implementations read the gradient of every forward result from ``context.grad_map``, stage each node they
        create with ``context.add_node`` (before registering any of its results), and register the gradient of each
        differentiable operand with ``context.grad_map.add_gradient``.

        :param forward_node: The node for which the backward pass should be generated.
        :param context: The context for this node (see :class:`BackwardContext`).
        :return: The nodes created for ``forward_node``, in creation order.
        """
        ...


# Register the implementations
import gradgraph.autodiff.implementations


def find_backward_implementation(node: Node) -> typing.Optional[typing.Type[BackwardImplementation]]:
    """Try to find the backward implementation for ``node``.

    If the node has a ``backward_implementation`` attribute naming a registered implementation, that one is
    preferred. Otherwise the first applicable implementation in registration order is returned.

    :param node: The node to find the implementation for.
    :return: The BackwardImplementation for node if one is registered and can be applied, else None.
    """
    valid_impls = []
    for impl, args in BackwardImplementation.extensions().items():
        if "name" not in args:
            raise ValueError(f"Expected name in arguments of implementation {impl}.")

        if "node_type" in args and isinstance(node, args["node_type"]) and impl.backward_can_be_applied(node):
            valid_impls.append((args["name"], impl))

    implementation = getattr(node, "backward_implementation", None)
    if implementation:
        filtered_impls = [i for name, i in valid_impls if name == implementation]
        if filtered_impls:
            return filtered_impls[0]

        log.warning(f"Set backward_implementation {implementation} on {node}, but it could not be"
                    f" applied. Falling back to default selection.")
    if valid_impls:
        return valid_impls[0][1]
    else:
        return None


def differentiable_node_types() -> typing.Set[type]:
    """The node classes that have at least one registered backward implementation."""
    return {args["node_type"] for args in BackwardImplementation.extensions().values() if "node_type" in args}
