# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
import logging
from typing import Optional

from gradgraph.config import Config
from gradgraph.dtypes import CompilationMode
from gradgraph.graph import Graph
from gradgraph.training import TrainingConfig
from gradgraph.autodiff.backward_pass_generator import generate_gradient_nodes

log = logging.getLogger(__name__)


def add_training_pass(graph: Graph,
                      conf: Optional[TrainingConfig] = None,
                      mode: CompilationMode = CompilationMode.Train,
                      seed: Optional[float] = None,
                      verify: Optional[bool] = None) -> Graph:
    """ Prepare ``graph`` for ``mode``: in the training modes, add a backward pass using reverse-mode automatic
        differentiation, followed by an SGD update for every trainable variable.

        The graph may contain any operator with a registered
        :class:`~gradgraph.autodiff.base_abc.BackwardImplementation`. Save nodes mark the outputs whose gradients
        seed the backward pass.

        :param graph: the graph to augment in place.
        :param conf: the training hyperparameters. Defaults to ``TrainingConfig.from_config()``.
        :param mode: Infer leaves the graph unchanged; Train and TrainDebug add the backward pass.
        :param seed: the value of the gradient sources created for the outputs.
        :param verify: whether to verify the graph before and after the pass. Defaults to the ``autodiff.verify``
                       configuration entry.
        :return: ``graph``.
    """
    if verify is None:
        verify = Config.get_bool('autodiff', 'verify')

    if verify:
        graph.verify()

    if mode == CompilationMode.Infer:
        log.info(f"Graph {graph} is compiled for inference, no backward pass is generated")
        return graph

    if conf is None:
        conf = TrainingConfig.from_config()

    generate_gradient_nodes(graph, conf, mode, seed)

    if verify:
        graph.verify()

    return graph
