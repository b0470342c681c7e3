# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Backward implementation for elementwise binary arithmetic.

For C = op(A, B) with output gradient dC:

- Add: dA = dC, dB = dC
- Sub: dA = dC, dB = 0 - dC
- Mul: dA = dC * B, dB = dC * A
- Div: dA = dC / B, dB = 0 - (dC * C) / B
- Max, Min: an ArithmeticGrad node routes dC to the selected operand
"""
from typing import List

from gradgraph.dtypes import ArithmeticMode
from gradgraph.registry import autoregister_params
from gradgraph.graph import ArithmeticGradNode, ArithmeticNode, Node, NodeValue, SplatNode

import gradgraph.autodiff.utils as butils
from gradgraph.autodiff.base_abc import AutoDiffException, BackwardContext, BackwardImplementation


def _negate(forward_node: ArithmeticNode, value: NodeValue, context: BackwardContext) -> List[Node]:
    zero = context.add_node(SplatNode(butils.backward_name(forward_node, "_zero"), value.type, 0.0))
    neg = context.add_node(ArithmeticNode(butils.backward_name(forward_node, "_neg"), ArithmeticMode.Sub, zero, value))
    return [zero, neg]


@autoregister_params(node_type=ArithmeticNode, name="default")
class DefaultArithmeticBackward(BackwardImplementation):

    @staticmethod
    def backward(forward_node: ArithmeticNode, context: BackwardContext) -> List[Node]:
        lhs, rhs = forward_node.input('LHS'), forward_node.input('RHS')
        output_grad = context.grad_map.get_gradient(forward_node.result())
        grad_map = context.grad_map
        mode = forward_node.mode

        if mode == ArithmeticMode.Add:
            grad_map.add_gradient(lhs, output_grad)
            grad_map.add_gradient(rhs, output_grad)
            return []

        if mode == ArithmeticMode.Sub:
            created = _negate(forward_node, output_grad, context)
            grad_map.add_gradient(lhs, output_grad)
            grad_map.add_gradient(rhs, created[-1])
            return created

        if mode == ArithmeticMode.Mul:
            lhs_grad = context.add_node(
                ArithmeticNode(butils.backward_name(forward_node, "_lhs"), ArithmeticMode.Mul, output_grad, rhs))
            rhs_grad = context.add_node(
                ArithmeticNode(butils.backward_name(forward_node, "_rhs"), ArithmeticMode.Mul, output_grad, lhs))
            grad_map.add_gradient(lhs, lhs_grad)
            grad_map.add_gradient(rhs, rhs_grad)
            return [lhs_grad, rhs_grad]

        if mode == ArithmeticMode.Div:
            lhs_grad = context.add_node(
                ArithmeticNode(butils.backward_name(forward_node, "_lhs"), ArithmeticMode.Div, output_grad, rhs))
            # d(A / B) / dB = -(A / B) / B
            scaled = context.add_node(
                ArithmeticNode(butils.backward_name(forward_node, "_scaled"), ArithmeticMode.Mul, output_grad,
                               forward_node.result()))
            quotient = context.add_node(
                ArithmeticNode(butils.backward_name(forward_node, "_quotient"), ArithmeticMode.Div, scaled, rhs))
            negated = _negate(forward_node, quotient.result(), context)
            grad_map.add_gradient(lhs, lhs_grad)
            grad_map.add_gradient(rhs, negated[-1])
            return [lhs_grad, scaled, quotient] + negated

        if mode in (ArithmeticMode.Max, ArithmeticMode.Min):
            return [butils.add_grad_node(ArithmeticGradNode, forward_node, context, ('LHS', 'RHS'))]

        raise AutoDiffException(f"Unsupported arithmetic mode {mode} on {forward_node}")
