"""
    Automatic Differentiation of a computation graph.
    This module exposes the generate_gradient_nodes function that adds the backward pass and the parameter
    updates to a Graph.
"""
import logging
from typing import List, Optional

from gradgraph.config import Config
from gradgraph.dtypes import CompilationMode, InitKind
from gradgraph.graph import Graph, Node, SaveNode, SGDNode, Variable, post_order
from gradgraph.training import TrainingConfig

from gradgraph.autodiff.base_abc import AutoDiffException, BackwardContext, find_backward_implementation
from gradgraph.autodiff.grad_mapper import GraphGradMapper, Staging

log = logging.getLogger(__name__)


class BackwardPassGenerator:
    """ Class that holds the state of one backward pass creation.

        The forward graph is only read until :meth:`backward` commits: every node and variable created by the
        pass is staged and appended to the graph at the very end.

        :param graph: the graph to differentiate. Its Save nodes mark the outputs.
        :param conf: the hyperparameters bound to the parameter updates.
        :param mode: the compilation mode. In TrainDebug mode every parameter gradient is saved to a variable.
        :param seed: the value of the gradient source created for each output. Defaults to the
                     ``autodiff.seed_gradient`` configuration entry.
    """

    def __init__(self, graph: Graph, conf: TrainingConfig, mode: CompilationMode, seed: Optional[float] = None):
        self.graph = graph
        self.conf = conf
        self.mode = mode
        self.seed = Config.get_float('autodiff', 'seed_gradient') if seed is None else float(seed)

        #: Nodes and variables created by the pass
        self.staging = Staging()

        #: Mapping from forward values to their gradients
        self.grad_map = GraphGradMapper(self.staging)

        #: Parameter update nodes, in variable order
        self.update_nodes: List[SGDNode] = []

        # Variable to check if backward has already been applied
        self._applied = False

    def backward(self) -> Graph:
        """ Generate the backward pass and the parameter updates, and add them to the graph. """
        if self._applied:
            raise AutoDiffException("Backward may only be called once. Instantiate a new BackwardPassGenerator.")
        self._applied = True

        try:
            order = post_order(self.graph)
        except ValueError as e:
            raise AutoDiffException(str(e)) from e

        self._reverse_nodes(order)
        self._add_parameter_updates()

        log.info(f"Differentiated graph {self.graph}: {len(self.staging.nodes) - len(self.update_nodes)} backward "
                 f"nodes, {len(self.update_nodes)} updates, {len(self.staging.variables)} new variables")

        self.staging.commit(self.graph)
        return self.graph

    def _reverse_nodes(self, order: List[Node]):
        """ Visit the nodes in reverse dependency order, so that every consumer of a value has contributed to its
            gradient before the value's producer is differentiated. """
        context = BackwardContext(graph=self.graph, grad_map=self.grad_map, seed=self.seed)
        debugprint = Config.get_bool('debugprint')

        for node in reversed(order):
            if isinstance(node, Variable):
                continue

            impl = find_backward_implementation(node)
            if impl is None:
                raise AutoDiffException(f"Unable to differentiate node {node} of kind {node.kind.name}: no backward "
                                        "implementation is registered for it")
            try:
                created = impl.backward(node, context)
            except AutoDiffException as e:
                raise AutoDiffException(f"Failed at node {node}: {e}") from e

            if debugprint:
                log.debug(f"{node.kind.name} {node} -> {', '.join(str(n) for n in created) or 'no new nodes'}")

    def _add_parameter_updates(self):
        prefix = Config.get('autodiff', 'gradient_prefix')

        for variable in self.graph.variables:
            # In TrainDebug mode we save a copy of the last gradient
            if self.mode == CompilationMode.TrainDebug and self.grad_map.has_gradient(variable):
                gradient = self.grad_map.get_gradient(variable)
                name = prefix + variable.name
                grad_var = self.staging.add_variable(Variable(name, gradient.type, InitKind.Extern))
                self.staging.add_node(SaveNode(name, gradient, grad_var))
                self.staging.gradient_variables.append((variable, grad_var))

            # Don't update variables that are not in training mode.
            if not variable.is_training():
                log.debug(f"Skipping update of non-trainable variable {variable}")
                continue

            if not self.grad_map.has_gradient(variable):
                raise AutoDiffException(f"Trainable variable {variable} does not contribute to any graph output")

            gsum_type = variable.type if self.conf.momentum > 0 else self.graph.void_type
            gsum = self.staging.add_variable(Variable(variable.name + "_gsum", gsum_type, InitKind.Broadcast, 0.0))

            update = SGDNode(variable.name + "_sgd", self.grad_map.get_gradient(variable), variable, gsum,
                             self.conf.l1_decay, self.conf.l2_decay, self.conf.learning_rate, self.conf.momentum,
                             self.conf.batch_size)
            self.update_nodes.append(self.staging.add_node(update))


def generate_gradient_nodes(graph: Graph,
                            conf: TrainingConfig,
                            mode: CompilationMode = CompilationMode.Train,
                            seed: Optional[float] = None) -> Graph:
    """ Add the backward pass and the SGD updates of every trainable variable to ``graph``.

        :param graph: the graph to augment in place.
        :param conf: the training hyperparameters.
        :param mode: the compilation mode (TrainDebug also exposes parameter gradients).
        :param seed: the value of the gradient sources created for the graph outputs.
        :return: ``graph``.
        :raises AutoDiffException: if a node cannot be differentiated, a gradient is missing, or a structural
                                   operator violates its shape invariants. The graph must not be used afterwards.
    """
    return BackwardPassGenerator(graph, conf, mode, seed).backward()
