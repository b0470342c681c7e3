# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Contains classes implementing the nodes of the tensor computation graph:
    variables (leaves), forward operators, and the nodes synthesized by the
    gradient generation pass. """

import dataclasses
from typing import Iterator, Sequence, Tuple, Union

import aenum
import numpy as np

from gradgraph.dtypes import ArithmeticMode, InitKind, PoolMode, TensorType
from gradgraph.registry import extensible_enum


class GraphVerificationError(ValueError):
    """ Raised when a graph or one of its nodes is malformed. """
    pass


@extensible_enum
class NodeKind(aenum.AutoNumberEnum):
    """ Operator kind tag of a node. """

    Variable = ()

    # Forward operators
    Convolution = ()
    Pool = ()
    FullyConnected = ()
    BatchNormalization = ()
    LocalResponseNormalization = ()
    SoftMax = ()
    Regression = ()
    Arithmetic = ()
    Relu = ()
    Sigmoid = ()
    Tanh = ()
    Save = ()
    Reshape = ()
    Transpose = ()
    Slice = ()
    Concat = ()

    # Nodes that only appear in the backward pass
    Splat = ()
    InsertTensor = ()
    SGD = ()
    ConvolutionGrad = ()
    PoolGrad = ()
    FullyConnectedGrad = ()
    BatchNormalizationGrad = ()
    LocalResponseNormalizationGrad = ()
    SoftMaxGrad = ()
    RegressionGrad = ()
    ArithmeticGrad = ()
    ReluGrad = ()
    SigmoidGrad = ()
    TanhGrad = ()


@dataclasses.dataclass(frozen=True)
class NodeValue:
    """ Reference to one result of a node. Two references are equal only if
        they point to the same node object *and* the same result index. """

    node: 'Node'
    index: int = 0

    @property
    def type(self) -> TensorType:
        return self.node.result_types[self.index]

    @property
    def dims(self) -> Tuple[int, ...]:
        return self.type.dims

    def __str__(self):
        if len(self.node.result_types) == 1:
            return self.node.name
        return f"{self.node.name}:{self.index}"

    def __repr__(self):
        return f"NodeValue({self.node!r}, {self.index})"


def as_value(value: Union['Node', NodeValue]) -> NodeValue:
    """ Normalizes a node or a value reference to a value reference (result 0 for nodes). """
    if isinstance(value, NodeValue):
        return value
    if isinstance(value, Node):
        return NodeValue(value, 0)
    raise TypeError(f"Expected a Node or NodeValue, got {type(value).__name__}")


# -----------------------------------------------------------------------------


class Node(object):
    """ Base node class. """

    kind: NodeKind = None

    #: Names of the operands, in order
    input_names: Tuple[str, ...] = ()

    #: Names of the results, in order
    result_names: Tuple[str, ...] = ('Result', )

    def __init__(self, name: str, inputs: Sequence[Union['Node', NodeValue]], result_types: Sequence[TensorType]):
        self.name = name
        self.inputs: Tuple[NodeValue, ...] = tuple(as_value(i) for i in inputs)
        self.result_types: Tuple[TensorType, ...] = tuple(result_types)

    def __str__(self):
        return self.name

    def __repr__(self):
        return type(self).__name__ + ' (' + self.__str__() + ')'

    def result(self, index: int = 0) -> NodeValue:
        if not 0 <= index < len(self.result_types):
            raise IndexError(f"{self} has no result {index}")
        return NodeValue(self, index)

    def results(self) -> Iterator[NodeValue]:
        return (NodeValue(self, i) for i in range(len(self.result_types)))

    @property
    def type(self) -> TensorType:
        """ Type of the first result. """
        return self.result_types[0]

    @property
    def dims(self) -> Tuple[int, ...]:
        return self.type.dims

    def input(self, name: str) -> NodeValue:
        """ Returns the operand named ``name``. """
        try:
            return self.inputs[self.input_names.index(name)]
        except ValueError:
            raise KeyError(f"{type(self).__name__} has no operand named {name}") from None

    def verify(self):
        """ Checks node-local invariants. Raises :class:`GraphVerificationError` on failure. """
        pass

    def _check(self, condition: bool, message: str):
        if not condition:
            raise GraphVerificationError(f"{self.kind.name} node {self}: {message}")


class Variable(Node):
    """ A persistent leaf holding learnable or user-provided state. """

    kind = NodeKind.Variable

    def __init__(self,
                 name: str,
                 type: TensorType,
                 init_kind: InitKind = InitKind.Broadcast,
                 init_value: float = 0.0,
                 trainable: bool = False):
        super().__init__(name, [], [type])
        self.init_kind = init_kind
        self.init_value = init_value
        self.trainable = trainable

    def is_training(self) -> bool:
        return self.trainable


# -----------------------------------------------------------------------------
# Forward operators


class ConvolutionNode(Node):
    """ 2D convolution over NHWC input with a [depth, kernel, kernel, C] filter. """

    kind = NodeKind.Convolution
    input_names = ('Input', 'Filter', 'Bias')

    def __init__(self, name, input, filter, bias, result_type: TensorType, kernel: int, stride: int, pad: int,
                 depth: int):
        super().__init__(name, [input, filter, bias], [result_type])
        self.kernel = kernel
        self.stride = stride
        self.pad = pad
        self.depth = depth

    def verify(self):
        self._check(self.input('Filter').dims[0] == self.depth, "filter depth mismatch")
        self._check(self.input('Bias').dims == (self.depth, ), "bias must have one element per output channel")


class PoolNode(Node):
    kind = NodeKind.Pool
    input_names = ('Input', )

    def __init__(self, name, mode: PoolMode, input, result_type: TensorType, kernel: int, stride: int, pad: int):
        super().__init__(name, [input], [result_type])
        self.mode = mode
        self.kernel = kernel
        self.stride = stride
        self.pad = pad

    def verify(self):
        self._check(self.type.dims[-1] == self.input('Input').dims[-1], "pooling must preserve channels")


class FullyConnectedNode(Node):
    kind = NodeKind.FullyConnected
    input_names = ('Input', 'Weights', 'Bias')

    def __init__(self, name, input, weights, bias, result_type: TensorType, depth: int):
        super().__init__(name, [input, weights, bias], [result_type])
        self.depth = depth

    def verify(self):
        self._check(self.input('Weights').dims[-1] == self.depth, "weights depth mismatch")
        self._check(self.input('Bias').dims == (self.depth, ), "bias must have one element per output")


class BatchNormalizationNode(Node):
    kind = NodeKind.BatchNormalization
    input_names = ('Input', 'Scale', 'Bias', 'Mean', 'Var')

    def __init__(self, name, input, scale, bias, mean, var, channel_idx: int, epsilon: float, momentum: float):
        super().__init__(name, [input, scale, bias, mean, var], [as_value(input).type])
        self.channel_idx = channel_idx
        self.epsilon = epsilon
        self.momentum = momentum

    def verify(self):
        channels = self.input('Input').dims[self.channel_idx]
        for operand in self.input_names[1:]:
            self._check(self.input(operand).dims == (channels, ), f"{operand} must have one element per channel")


class LocalResponseNormalizationNode(Node):
    kind = NodeKind.LocalResponseNormalization
    input_names = ('Input', )

    def __init__(self, name, input, half_window_size: int, alpha: float, beta: float, k: float):
        super().__init__(name, [input], [as_value(input).type])
        self.half_window_size = half_window_size
        self.alpha = alpha
        self.beta = beta
        self.k = k


class SoftMaxNode(Node):
    kind = NodeKind.SoftMax
    input_names = ('Input', 'Selected')

    def __init__(self, name, input, selected):
        super().__init__(name, [input, selected], [as_value(input).type])


class RegressionNode(Node):
    kind = NodeKind.Regression
    input_names = ('Input', 'Expected')

    def __init__(self, name, input, expected):
        super().__init__(name, [input, expected], [as_value(input).type])

    def verify(self):
        self._check(self.input('Input').type == self.input('Expected').type, "input and expected types differ")


class ArithmeticNode(Node):
    """ Elementwise binary arithmetic on two operands of the same type. """

    kind = NodeKind.Arithmetic
    input_names = ('LHS', 'RHS')

    def __init__(self, name, mode: ArithmeticMode, lhs, rhs):
        super().__init__(name, [lhs, rhs], [as_value(lhs).type])
        self.mode = mode

    def verify(self):
        self._check(self.input('LHS').type == self.input('RHS').type, "operand types differ")


class _UnaryNode(Node):
    input_names = ('Input', )

    def __init__(self, name, input):
        super().__init__(name, [input], [as_value(input).type])


class ReluNode(_UnaryNode):
    kind = NodeKind.Relu


class SigmoidNode(_UnaryNode):
    kind = NodeKind.Sigmoid


class TanhNode(_UnaryNode):
    kind = NodeKind.Tanh


class SaveNode(Node):
    """ Marks a graph output: copies ``Input`` into the variable ``Output``. """

    kind = NodeKind.Save
    input_names = ('Input', 'Output')
    result_names = ()

    def __init__(self, name, input, output: Variable):
        super().__init__(name, [input, output], [])

    @property
    def variable(self) -> Variable:
        return self.inputs[1].node

    def verify(self):
        self._check(isinstance(self.variable, Variable), "output must be a variable")
        self._check(self.input('Input').type == self.input('Output').type, "input and output types differ")


class ReshapeNode(Node):
    kind = NodeKind.Reshape
    input_names = ('Input', )

    def __init__(self, name, input, dims: Sequence[int]):
        input = as_value(input)
        super().__init__(name, [input], [input.type.with_dims(dims)])

    def verify(self):
        self._check(self.type.size() == self.input('Input').type.size(), "element count changes")


class TransposeNode(Node):
    kind = NodeKind.Transpose
    input_names = ('Input', )

    def __init__(self, name, input, shuffle: Sequence[int]):
        input = as_value(input)
        self.shuffle = tuple(int(s) for s in shuffle)
        # Malformed shuffles keep the input dims and are reported by verify()
        dims = [input.dims[s] for s in self.shuffle] if is_permutation(self.shuffle, input.type.rank) else input.dims
        super().__init__(name, [input], [input.type.with_dims(dims)])

    def verify(self):
        self._check(is_permutation(self.shuffle, self.input('Input').type.rank),
                    f"shuffle {self.shuffle} is not a permutation")


class SliceNode(Node):
    """ Extracts the region of ``result_type`` starting at ``start`` from the input. """

    kind = NodeKind.Slice
    input_names = ('Input', )

    def __init__(self, name, input, start: Sequence[int], result_type: TensorType):
        super().__init__(name, [input], [result_type])
        self.start = tuple(int(s) for s in start)

    def verify(self):
        self._check(region_in_bounds(self.start, self.dims, self.input('Input').dims), "slice is out of bounds")


class ConcatNode(Node):
    kind = NodeKind.Concat

    def __init__(self, name, inputs, dim: int, result_type: TensorType):
        super().__init__(name, inputs, [result_type])
        self.dim = dim

    @property
    def input_names(self):
        return tuple(f"Inputs_{i}" for i in range(len(self.inputs)))

    def verify(self):
        self._check(0 <= self.dim < self.type.rank, f"axis {self.dim} out of range")
        extent = sum(i.dims[self.dim] for i in self.inputs)
        self._check(extent == self.dims[self.dim], "inputs do not add up to the output extent")


# -----------------------------------------------------------------------------
# Backward pass nodes


class SplatNode(Node):
    """ A tensor of ``type`` with every element set to ``value``. Forward graphs use it for constants. """

    kind = NodeKind.Splat

    def __init__(self, name, type: TensorType, value: float):
        super().__init__(name, [], [type])
        self.value = value


class InsertTensorNode(Node):
    """ Copy of ``Big`` with ``Small`` written in at offset ``start``. """

    kind = NodeKind.InsertTensor
    input_names = ('Big', 'Small')

    def __init__(self, name, big, small, start: Sequence[int]):
        super().__init__(name, [big, small], [as_value(big).type])
        self.start = tuple(int(s) for s in start)

    def verify(self):
        self._check(region_in_bounds(self.start,
                                     self.input('Small').dims,
                                     self.input('Big').dims), "inserted tensor is out of bounds")


class SGDNode(Node):
    """ Stochastic gradient descent update of ``Weight``. The update arithmetic belongs to the backend. """

    kind = NodeKind.SGD
    input_names = ('Gradient', 'Weight', 'Gsum')
    result_names = ()

    def __init__(self, name, gradient, weight: Variable, gsum: Variable, l1_decay: float, l2_decay: float,
                 learning_rate: float, momentum: float, batch_size: int):
        super().__init__(name, [gradient, weight, gsum], [])
        self.l1_decay = l1_decay
        self.l2_decay = l2_decay
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.batch_size = batch_size

    @property
    def weight(self) -> Variable:
        return self.inputs[1].node

    @property
    def gsum(self) -> Variable:
        return self.inputs[2].node

    def verify(self):
        weight_type = self.input('Weight').type
        self._check(self.input('Gradient').type == weight_type, "gradient and weight types differ")
        gsum_type = self.input('Gsum').type
        self._check(gsum_type == weight_type or gsum_type.is_void(), "gsum must match the weight or be void")


class GradNode(Node):
    """
    Base class of the nodes computing the local derivative of a forward node.

    Operands are the forward operands (if ``reads_forward_inputs``), the
    forward results and the gradients of the forward results. There is one
    result per name in ``grad_inputs``, typed like the matching forward operand.
    """

    reads_forward_inputs = True

    def __init__(self, name: str, forward: Node, output_grads: Sequence[NodeValue], grad_inputs: Sequence[str]):
        operands = list(forward.inputs) if self.reads_forward_inputs else []
        operands.extend(forward.results())
        operands.extend(output_grads)
        super().__init__(name, operands, [forward.input(n).type for n in grad_inputs])
        self.forward = forward
        self.grad_inputs = tuple(grad_inputs)
        self.result_names = tuple('GradOf' + n for n in grad_inputs)

    def grad_of(self, input_name: str) -> NodeValue:
        """ The result holding the gradient of forward operand ``input_name``. """
        return NodeValue(self, self.grad_inputs.index(input_name))


class ConvolutionGradNode(GradNode):
    kind = NodeKind.ConvolutionGrad


class PoolGradNode(GradNode):
    kind = NodeKind.PoolGrad


class FullyConnectedGradNode(GradNode):
    kind = NodeKind.FullyConnectedGrad


class BatchNormalizationGradNode(GradNode):
    kind = NodeKind.BatchNormalizationGrad


class LocalResponseNormalizationGradNode(GradNode):
    kind = NodeKind.LocalResponseNormalizationGrad


class SoftMaxGradNode(GradNode):
    kind = NodeKind.SoftMaxGrad


class RegressionGradNode(GradNode):
    kind = NodeKind.RegressionGrad


class ArithmeticGradNode(GradNode):
    kind = NodeKind.ArithmeticGrad

    @property
    def mode(self) -> ArithmeticMode:
        return self.forward.mode


class ReluGradNode(GradNode):
    kind = NodeKind.ReluGrad
    reads_forward_inputs = False


class SigmoidGradNode(GradNode):
    kind = NodeKind.SigmoidGrad
    reads_forward_inputs = False


class TanhGradNode(GradNode):
    kind = NodeKind.TanhGrad
    reads_forward_inputs = False


# -----------------------------------------------------------------------------
# Shape helpers


def is_permutation(shuffle: Sequence[int], rank: int) -> bool:
    return len(shuffle) == rank and sorted(shuffle) == list(range(rank))


def region_in_bounds(start: Sequence[int], region: Sequence[int], dims: Sequence[int]) -> bool:
    """ True if the box ``region`` placed at ``start`` fits inside ``dims``. """
    if not len(start) == len(region) == len(dims):
        return False
    start, region, dims = (np.asarray(x, dtype=np.int64) for x in (start, region, dims))
    return bool(np.all(start >= 0) and np.all(start + region <= dims))


#: Operator classes that may appear in a forward graph
FORWARD_NODE_TYPES = (ConvolutionNode, PoolNode, FullyConnectedNode, BatchNormalizationNode,
                      LocalResponseNormalizationNode, SoftMaxNode, RegressionNode, ArithmeticNode, ReluNode,
                      SigmoidNode, TanhNode, SaveNode, ReshapeNode, TransposeNode, SliceNode, ConcatNode, SplatNode)
