# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
from typing import List, Optional, Sequence, Tuple, Type

import numpy as np

from gradgraph.graph import GradNode, Node, NodeValue, is_permutation, region_in_bounds
from gradgraph.autodiff.base_abc import AutoDiffException, BackwardContext


def backward_name(forward_node: Node, suffix: str = "") -> str:
    """Name of a node created for ``forward_node`` in the backward pass."""
    return f"{forward_node.name}_backward{suffix}"


def reverse_shuffle(shuffle: Sequence[int], rank: Optional[int] = None) -> Tuple[int, ...]:
    """Invert an axis permutation: the result ``inv`` satisfies ``inv[shuffle[i]] == i``.

    :param rank: if given, ``shuffle`` must permute exactly this many axes.
    :raises AutoDiffException: if ``shuffle`` is not a permutation (of ``rank`` axes).
    """
    rank = len(shuffle) if rank is None else rank
    if not is_permutation(shuffle, rank):
        raise AutoDiffException(f"Transpose shuffle {tuple(shuffle)} is not a permutation of {rank} axes")
    return tuple(int(i) for i in np.argsort(shuffle))


def concat_offsets(extents: Sequence[int]) -> List[int]:
    """Start offsets of consecutive blocks with the given extents: ``0, e1, e1+e2, ...``."""
    return [int(o) for o in np.concatenate(([0], np.cumsum(extents, dtype=np.int64)[:-1]))] if extents else []


def check_reshape_grad(input: NodeValue, output_grad: NodeValue):
    if input.type.size() != output_grad.type.size():
        raise AutoDiffException(f"Cannot reshape gradient {output_grad} ({output_grad.type}) back to "
                                f"{input} ({input.type}): element counts differ")


def check_slice_grad(input: NodeValue, output_grad: NodeValue, start: Sequence[int]):
    if not region_in_bounds(start, output_grad.dims, input.dims):
        raise AutoDiffException(f"Gradient {output_grad} ({output_grad.type}) placed at {tuple(start)} does not fit "
                                f"into {input} ({input.type})")


def check_concat_grad(inputs: Sequence[NodeValue], output_grad: NodeValue, dim: int):
    out_dims = output_grad.dims
    if not 0 <= dim < len(out_dims):
        raise AutoDiffException(f"Concatenation axis {dim} out of range for {output_grad.type}")
    for i in inputs:
        other = [d for k, d in enumerate(i.dims) if k != dim]
        if i.type.rank != len(out_dims) or other != [d for k, d in enumerate(out_dims) if k != dim]:
            raise AutoDiffException(f"Concatenated input {i} ({i.type}) does not match gradient "
                                    f"{output_grad} ({output_grad.type}) outside of axis {dim}")
    extent = sum(i.dims[dim] for i in inputs)
    if extent != out_dims[dim]:
        raise AutoDiffException(f"Concatenated inputs span {extent} along axis {dim}, but the gradient spans "
                                f"{out_dims[dim]}")


def add_grad_node(grad_node_type: Type[GradNode], forward_node: Node, context: BackwardContext,
                  grad_inputs: Sequence[str]) -> GradNode:
    """Stage a ``grad_node_type`` node for ``forward_node`` and register its results as the gradients of the
    forward operands named in ``grad_inputs``.
    """
    output_grads = [context.grad_map.get_gradient(r) for r in forward_node.results()]
    node = context.add_node(grad_node_type(backward_name(forward_node), forward_node, output_grads, grad_inputs))
    for name in grad_inputs:
        context.grad_map.add_gradient(forward_node.input(name), node.grad_of(name))
    return node
