# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Gradient bookkeeping for one run of the gradient generation pass.
"""
import dataclasses
import logging
from typing import Dict, List, Tuple, Union

from gradgraph.dtypes import ArithmeticMode
from gradgraph.graph import ArithmeticNode, Graph, Node, NodeValue, Variable, as_value
from gradgraph.autodiff.base_abc import AutoDiffException

log = logging.getLogger(__name__)


@dataclasses.dataclass
class Staging:
    """ Nodes and variables created by the pass, kept apart from the graph until :meth:`commit`. """

    nodes: List[Node] = dataclasses.field(default_factory=list)
    variables: List[Variable] = dataclasses.field(default_factory=list)

    #: (variable, variable exposing its gradient) pairs created in TrainDebug mode
    gradient_variables: List[Tuple[Variable, Variable]] = dataclasses.field(default_factory=list)

    def add_node(self, node: Node) -> Node:
        self.nodes.append(node)
        return node

    def add_variable(self, variable: Variable) -> Variable:
        self.variables.append(variable)
        return variable

    def commit(self, graph: Graph):
        """ Appends all staged nodes, then all staged variables, then the gradient associations to ``graph``. """
        for node in self.nodes:
            graph.add_node(node)
        for variable in self.variables:
            graph.add_variable(variable)
        for variable, gradient in self.gradient_variables:
            graph.add_gradient_variable(variable, gradient)


class GraphGradMapper:
    """ Mapping from a forward value to its accumulated gradient.

        Holds at most one gradient per value. A second contribution to the same
        value stages an elementwise ``Add`` of the current gradient and the new
        one, and that sum becomes the registered gradient.
    """

    def __init__(self, staging: Staging):
        self.staging = staging
        self._map: Dict[NodeValue, NodeValue] = {}
        self._num_sums = 0

    def __len__(self):
        return len(self._map)

    def __contains__(self, activation: Union[Node, NodeValue]) -> bool:
        return self.has_gradient(activation)

    def add_gradient(self, activation: Union[Node, NodeValue], grad: Union[Node, NodeValue]):
        activation, grad = as_value(activation), as_value(grad)
        if activation.type != grad.type:
            raise AutoDiffException(f"Gradient {grad} of type {grad.type} does not match {activation} of type "
                                    f"{activation.type}")

        if activation in self._map:
            curr = self._map[activation]
            log.debug(f"Accumulating a second gradient contribution for {activation}")
            sum_node = ArithmeticNode(f"{activation}_grad_sum_{self._num_sums}", ArithmeticMode.Add, curr, grad)
            self._num_sums += 1
            self.staging.add_node(sum_node)
            self._map[activation] = sum_node.result()
            return

        self._map[activation] = grad

    def has_gradient(self, activation: Union[Node, NodeValue]) -> bool:
        return as_value(activation) in self._map

    def get_gradient(self, activation: Union[Node, NodeValue]) -> NodeValue:
        activation = as_value(activation)
        try:
            return self._map[activation]
        except KeyError:
            raise AutoDiffException(f"Attempted to access the gradient of {activation} before any was registered; "
                                    "the value does not contribute to a graph output") from None
