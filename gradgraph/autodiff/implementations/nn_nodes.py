# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Backward implementations for neural network layers and activations.

Each layer is differentiated into a single gradient node of the matching
``<Kind>Grad`` type. The gradient node reads the forward operands, the
forward result and the output gradient, and has one result per
differentiable operand (see :class:`~gradgraph.graph.nodes.GradNode`).
The backend decides how the gradient node is computed.
"""
from typing import List

from gradgraph.registry import autoregister_params
from gradgraph.graph import nodes as nd

import gradgraph.autodiff.utils as butils
from gradgraph.autodiff.base_abc import BackwardContext, BackwardImplementation


@autoregister_params(node_type=nd.ConvolutionNode, name="default")
class DefaultConvolutionBackward(BackwardImplementation):

    @staticmethod
    def backward(forward_node: nd.ConvolutionNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.ConvolutionGradNode, forward_node, context, ('Input', 'Filter', 'Bias'))]


@autoregister_params(node_type=nd.PoolNode, name="default")
class DefaultPoolBackward(BackwardImplementation):
    """Max pooling routes the gradient to the selected element, average pooling spreads it over the window."""

    @staticmethod
    def backward(forward_node: nd.PoolNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.PoolGradNode, forward_node, context, ('Input', ))]


@autoregister_params(node_type=nd.FullyConnectedNode, name="default")
class DefaultFullyConnectedBackward(BackwardImplementation):
    """For Y = X @ W + b: dX = dY @ W^T, dW = X^T @ dY, db = sum(dY, axis=0)."""

    @staticmethod
    def backward(forward_node: nd.FullyConnectedNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.FullyConnectedGradNode, forward_node, context, ('Input', 'Weights', 'Bias'))]


@autoregister_params(node_type=nd.BatchNormalizationNode, name="default")
class DefaultBatchNormalizationBackward(BackwardImplementation):
    """Mean and variance are running statistics and receive no gradient."""

    @staticmethod
    def backward(forward_node: nd.BatchNormalizationNode, context: BackwardContext) -> List[nd.Node]:
        return [
            butils.add_grad_node(nd.BatchNormalizationGradNode, forward_node, context, ('Input', 'Scale', 'Bias'))
        ]


@autoregister_params(node_type=nd.LocalResponseNormalizationNode, name="default")
class DefaultLocalResponseNormalizationBackward(BackwardImplementation):

    @staticmethod
    def backward(forward_node: nd.LocalResponseNormalizationNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.LocalResponseNormalizationGradNode, forward_node, context, ('Input', ))]


@autoregister_params(node_type=nd.SoftMaxNode, name="default")
class DefaultSoftMaxBackward(BackwardImplementation):
    """Cross-entropy gradient of the softmax: dX = softmax(X) - onehot(selected).

    The selected labels also receive a gradient entry so that a label variable
    bound to the graph is covered like any other operand.
    """

    @staticmethod
    def backward(forward_node: nd.SoftMaxNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.SoftMaxGradNode, forward_node, context, ('Input', 'Selected'))]


@autoregister_params(node_type=nd.RegressionNode, name="default")
class DefaultRegressionBackward(BackwardImplementation):
    """Squared-error gradient: dInput = Input - Expected."""

    @staticmethod
    def backward(forward_node: nd.RegressionNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.RegressionGradNode, forward_node, context, ('Input', 'Expected'))]


@autoregister_params(node_type=nd.ReluNode, name="default")
class DefaultReluBackward(BackwardImplementation):
    """dX = dY where Y > 0, else 0."""

    @staticmethod
    def backward(forward_node: nd.ReluNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.ReluGradNode, forward_node, context, ('Input', ))]


@autoregister_params(node_type=nd.SigmoidNode, name="default")
class DefaultSigmoidBackward(BackwardImplementation):
    """dX = dY * Y * (1 - Y)."""

    @staticmethod
    def backward(forward_node: nd.SigmoidNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.SigmoidGradNode, forward_node, context, ('Input', ))]


@autoregister_params(node_type=nd.TanhNode, name="default")
class DefaultTanhBackward(BackwardImplementation):
    """dX = dY * (1 - Y * Y)."""

    @staticmethod
    def backward(forward_node: nd.TanhNode, context: BackwardContext) -> List[nd.Node]:
        return [butils.add_grad_node(nd.TanhGradNode, forward_node, context, ('Input', ))]
