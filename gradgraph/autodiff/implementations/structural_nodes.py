# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Backward implementations for graph outputs and shape-manipulating operators.

None of these operators change element values, so their backward passes only
move the output gradient back into the layout of the forward input:

- Save: seeds the backward pass with a constant gradient source
- Reshape: reshapes the gradient to the input dimensions
- Transpose: transposes the gradient with the inverse permutation
- Slice: inserts the gradient into a zero tensor at the slice offset
- Concat: extracts one block of the gradient per concatenated input

Splat constants have no operands, so their gradient is dropped.
"""
from typing import List

from gradgraph.registry import autoregister_params
from gradgraph.graph import (ConcatNode, InsertTensorNode, Node, ReshapeNode, SaveNode, SliceNode, SplatNode,
                             TransposeNode)

import gradgraph.autodiff.utils as butils
from gradgraph.autodiff.base_abc import BackwardContext, BackwardImplementation


@autoregister_params(node_type=SaveNode, name="default")
class DefaultSaveBackward(BackwardImplementation):
    """Creates the gradient source of a graph output.

    The source has the type of the saved value and is filled with the seed. It becomes the gradient of the saved
    value and of the variable the value is saved to.
    """

    @staticmethod
    def backward(forward_node: SaveNode, context: BackwardContext) -> List[Node]:
        saved = forward_node.input('Input')
        seed = context.add_node(SplatNode(forward_node.name + "_seed", saved.type, context.seed))
        context.grad_map.add_gradient(saved, seed)
        context.grad_map.add_gradient(forward_node.input('Output'), seed)
        return [seed]


@autoregister_params(node_type=ReshapeNode, name="default")
class DefaultReshapeBackward(BackwardImplementation):

    @staticmethod
    def backward(forward_node: ReshapeNode, context: BackwardContext) -> List[Node]:
        input = forward_node.input('Input')
        output_grad = context.grad_map.get_gradient(forward_node.result())
        butils.check_reshape_grad(input, output_grad)

        node = context.add_node(ReshapeNode(butils.backward_name(forward_node), output_grad, input.dims))
        context.grad_map.add_gradient(input, node)
        return [node]


@autoregister_params(node_type=TransposeNode, name="default")
class DefaultTransposeBackward(BackwardImplementation):
    """The gradient of transpose is another transpose with inverted permutation."""

    @staticmethod
    def backward(forward_node: TransposeNode, context: BackwardContext) -> List[Node]:
        input = forward_node.input('Input')
        output_grad = context.grad_map.get_gradient(forward_node.result())
        inv_perm = butils.reverse_shuffle(forward_node.shuffle, input.type.rank)

        node = context.add_node(TransposeNode(butils.backward_name(forward_node), output_grad, inv_perm))
        context.grad_map.add_gradient(input, node)
        return [node]


@autoregister_params(node_type=SliceNode, name="default")
class DefaultSliceBackward(BackwardImplementation):
    """Scatters the output gradient into the sliced region; every other position receives zero.

    Forward: output = input[start:start + output.dims]
    Backward: input_grad = zeros_like(input); input_grad[start:start + output.dims] = output_grad
    """

    @staticmethod
    def backward(forward_node: SliceNode, context: BackwardContext) -> List[Node]:
        input = forward_node.input('Input')
        output_grad = context.grad_map.get_gradient(forward_node.result())
        butils.check_slice_grad(input, output_grad, forward_node.start)

        zero = context.add_node(SplatNode(butils.backward_name(forward_node, "_expand"), input.type, 0.0))
        insert = context.add_node(
            InsertTensorNode(butils.backward_name(forward_node), zero, output_grad, forward_node.start))
        context.grad_map.add_gradient(input, insert)
        return [zero, insert]


@autoregister_params(node_type=ConcatNode, name="default")
class DefaultConcatBackward(BackwardImplementation):
    """Splits the output gradient along the concatenation axis, one block per input in input order."""

    @staticmethod
    def backward(forward_node: ConcatNode, context: BackwardContext) -> List[Node]:
        inputs = list(forward_node.inputs)
        output_grad = context.grad_map.get_gradient(forward_node.result())
        dim = forward_node.dim
        butils.check_concat_grad(inputs, output_grad, dim)

        created = []
        offsets = butils.concat_offsets([i.dims[dim] for i in inputs])
        for i, (input, offset) in enumerate(zip(inputs, offsets)):
            # We start extracting at (0, 0, ...) and only move along the concatenation axis
            start = [0] * input.type.rank
            start[dim] = offset
            node = context.add_node(
                SliceNode(butils.backward_name(forward_node, f"_{i}"), output_grad, start, input.type))
            context.grad_map.add_gradient(input, node)
            created.append(node)
        return created


@autoregister_params(node_type=SplatNode, name="default")
class DefaultSplatBackward(BackwardImplementation):

    @staticmethod
    def backward(forward_node: SplatNode, context: BackwardContext) -> List[Node]:
        return []
