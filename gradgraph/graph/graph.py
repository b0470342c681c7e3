# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" The graph container: owns the variables and operation nodes of a model
    and builds forward operators with inferred result types. """
from typing import Dict, List, Optional, Sequence, Union

from gradgraph.dtypes import ArithmeticMode, ElemKind, InitKind, PoolMode, TensorType
from gradgraph.graph import nodes as nd
from gradgraph.graph.nodes import GraphVerificationError, Node, NodeValue, Variable, as_value
from gradgraph.graph.utils import dependency_graph

ValueLike = Union[Node, NodeValue]


def _conv_output_size(size: int, kernel: int, stride: int, pad: int) -> int:
    out = (size + 2 * pad - kernel) // stride + 1
    if out <= 0:
        raise ValueError(f"Kernel {kernel} with stride {stride} and padding {pad} does not fit input size {size}")
    return out


class Graph(object):
    """ A set of variables and operation nodes, in insertion order.

        The ``create_*`` methods build a forward operator, add it to the graph
        and return it. ``add_node`` and ``add_variable`` append nodes that were
        built elsewhere (e.g., by the gradient generation pass).
    """

    def __init__(self, name: str = "main"):
        self.name = name
        self._variables: List[Variable] = []
        self._nodes: List[Node] = []
        self._void_type = TensorType.void(ElemKind.Float32)

        #: Mapping from a variable to the variable exposing its gradient (TrainDebug mode)
        self.gradient_variables: Dict[Variable, Variable] = {}

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"Graph ({self.name}, {len(self._variables)} variables, {len(self._nodes)} nodes)"

    @property
    def variables(self) -> List[Variable]:
        return list(self._variables)

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    @property
    def void_type(self) -> TensorType:
        """ The zero-sized placeholder type. """
        return self._void_type

    def add_node(self, node: Node) -> Node:
        if isinstance(node, Variable):
            raise TypeError(f"Use add_variable to add variable {node}")
        self._nodes.append(node)
        return node

    def add_variable(self, variable: Variable) -> Variable:
        if not isinstance(variable, Variable):
            raise TypeError(f"{variable!r} is not a variable")
        self._variables.append(variable)
        return variable

    def add_gradient_variable(self, variable: Variable, gradient: Variable):
        self.gradient_variables[variable] = gradient

    def get_variable_by_name(self, name: str) -> Optional[Variable]:
        return next((v for v in self._variables if v.name == name), None)

    def get_node_by_name(self, name: str) -> Optional[Node]:
        return next((n for n in self._nodes if n.name == name), None)

    def to_networkx(self):
        """ Returns the dependency graph as a ``networkx.DiGraph`` with an edge from every node to its operands. """
        return dependency_graph(self)

    def verify(self):
        """ Verifies the structure of the graph.

            :raises GraphVerificationError: if names are not unique within the
                                            variables or within the nodes, an operand
                                            refers to a node outside of the graph or to
                                            a result it does not have, or a node fails
                                            its own checks.
        """
        for collection, what in ((self._variables, "variable"), (self._nodes, "node")):
            seen = set()
            for node in collection:
                if node.name in seen:
                    raise GraphVerificationError(f"Duplicate {what} name {node.name} in graph {self}")
                seen.add(node.name)

        members = {id(n) for n in self._variables} | {id(n) for n in self._nodes}
        for node in self._nodes:
            for operand in node.inputs:
                if id(operand.node) not in members:
                    raise GraphVerificationError(f"Operand {operand} of {node} is not part of graph {self}")
                if not 0 <= operand.index < len(operand.node.result_types):
                    raise GraphVerificationError(f"Operand {operand!r} of {node} refers to a missing result")
            node.verify()

    # -------------------------------------------------------------------------
    # Forward operator factories

    def create_variable(self,
                        name: str,
                        dims: Sequence[int],
                        elem_kind: ElemKind = ElemKind.Float32,
                        init_kind: InitKind = InitKind.Broadcast,
                        init_value: float = 0.0,
                        trainable: bool = False) -> Variable:
        return self.add_variable(Variable(name, TensorType(elem_kind, tuple(dims)), init_kind, init_value, trainable))

    def create_convolution(self, name: str, input: ValueLike, depth: int, kernel: int, stride: int,
                           pad: int) -> nd.ConvolutionNode:
        """ Creates an NHWC convolution together with its trainable filter and bias variables. """
        input = as_value(input)
        if input.type.rank != 4:
            raise ValueError(f"Convolution expects an NHWC input, got {input.type}")
        n, h, w, c = input.dims
        out_dims = (n, _conv_output_size(h, kernel, stride, pad), _conv_output_size(w, kernel, stride, pad), depth)

        filter = self.create_variable(name + ".filter", (depth, kernel, kernel, c),
                                      input.type.elem_kind,
                                      InitKind.Xavier,
                                      kernel * kernel * c,
                                      trainable=True)
        bias = self.create_variable(name + ".bias", (depth, ), input.type.elem_kind, InitKind.Broadcast, 0.1, True)
        node = nd.ConvolutionNode(name, input, filter, bias, input.type.with_dims(out_dims), kernel, stride, pad,
                                  depth)
        return self.add_node(node)

    def create_pool(self, name: str, input: ValueLike, mode: PoolMode, kernel: int, stride: int,
                    pad: int) -> nd.PoolNode:
        input = as_value(input)
        if input.type.rank != 4:
            raise ValueError(f"Pooling expects an NHWC input, got {input.type}")
        n, h, w, c = input.dims
        out_dims = (n, _conv_output_size(h, kernel, stride, pad), _conv_output_size(w, kernel, stride, pad), c)
        return self.add_node(nd.PoolNode(name, mode, input, input.type.with_dims(out_dims), kernel, stride, pad))

    def create_fully_connected(self, name: str, input: ValueLike, depth: int) -> nd.FullyConnectedNode:
        """ Creates a fully-connected layer over the flattened non-batch dimensions of ``input``. """
        input = as_value(input)
        batch = input.dims[0]
        flat = input.type.size() // batch if batch else 0
        weights = self.create_variable(name + ".weights", (flat, depth), input.type.elem_kind, InitKind.Xavier, flat,
                                       True)
        bias = self.create_variable(name + ".bias", (depth, ), input.type.elem_kind, InitKind.Broadcast, 0.1, True)
        return self.add_node(
            nd.FullyConnectedNode(name, input, weights, bias, input.type.with_dims((batch, depth)), depth))

    def create_batch_normalization(self,
                                   name: str,
                                   input: ValueLike,
                                   channel_idx: int = -1,
                                   epsilon: float = 1e-5,
                                   momentum: float = 0.9) -> nd.BatchNormalizationNode:
        input = as_value(input)
        channels = input.dims[channel_idx]
        kind = input.type.elem_kind
        scale = self.create_variable(name + ".gamma", (channels, ), kind, InitKind.Broadcast, 1.0, True)
        bias = self.create_variable(name + ".beta", (channels, ), kind, InitKind.Broadcast, 0.0, True)
        mean = self.create_variable(name + ".mean", (channels, ), kind, InitKind.Broadcast, 0.0)
        var = self.create_variable(name + ".var", (channels, ), kind, InitKind.Broadcast, 0.0)
        return self.add_node(
            nd.BatchNormalizationNode(name, input, scale, bias, mean, var, channel_idx % input.type.rank, epsilon,
                                      momentum))

    def create_local_response_normalization(self,
                                            name: str,
                                            input: ValueLike,
                                            half_window_size: int = 2,
                                            alpha: float = 1e-4,
                                            beta: float = 0.75,
                                            k: float = 2.0) -> nd.LocalResponseNormalizationNode:
        return self.add_node(nd.LocalResponseNormalizationNode(name, input, half_window_size, alpha, beta, k))

    def create_softmax(self, name: str, input: ValueLike, selected: ValueLike) -> nd.SoftMaxNode:
        return self.add_node(nd.SoftMaxNode(name, input, selected))

    def create_regression(self, name: str, input: ValueLike, expected: ValueLike) -> nd.RegressionNode:
        if as_value(input).type != as_value(expected).type:
            raise ValueError("Regression input and expected value must have the same type")
        return self.add_node(nd.RegressionNode(name, input, expected))

    def create_arithmetic(self, name: str, lhs: ValueLike, rhs: ValueLike, mode: ArithmeticMode) -> nd.ArithmeticNode:
        if as_value(lhs).type != as_value(rhs).type:
            raise ValueError(f"Operands of {name} have different types: {as_value(lhs).type}, {as_value(rhs).type}")
        return self.add_node(nd.ArithmeticNode(name, mode, lhs, rhs))

    def create_add(self, name: str, lhs: ValueLike, rhs: ValueLike) -> nd.ArithmeticNode:
        return self.create_arithmetic(name, lhs, rhs, ArithmeticMode.Add)

    def create_sub(self, name: str, lhs: ValueLike, rhs: ValueLike) -> nd.ArithmeticNode:
        return self.create_arithmetic(name, lhs, rhs, ArithmeticMode.Sub)

    def create_mul(self, name: str, lhs: ValueLike, rhs: ValueLike) -> nd.ArithmeticNode:
        return self.create_arithmetic(name, lhs, rhs, ArithmeticMode.Mul)

    def create_div(self, name: str, lhs: ValueLike, rhs: ValueLike) -> nd.ArithmeticNode:
        return self.create_arithmetic(name, lhs, rhs, ArithmeticMode.Div)

    def create_relu(self, name: str, input: ValueLike) -> nd.ReluNode:
        return self.add_node(nd.ReluNode(name, input))

    def create_sigmoid(self, name: str, input: ValueLike) -> nd.SigmoidNode:
        return self.add_node(nd.SigmoidNode(name, input))

    def create_tanh(self, name: str, input: ValueLike) -> nd.TanhNode:
        return self.add_node(nd.TanhNode(name, input))

    def create_save(self, name: str, input: ValueLike, output: Optional[Variable] = None) -> nd.SaveNode:
        """ Marks ``input`` as a graph output. Unless ``output`` is given, a new
            externally-initialized variable named ``name`` receives the value. """
        input = as_value(input)
        if output is None:
            output = self.add_variable(Variable(name, input.type, InitKind.Extern))
        elif output.type != input.type:
            raise ValueError(f"Cannot save {input.type} into variable {output} of type {output.type}")
        return self.add_node(nd.SaveNode(name, input, output))

    def create_reshape(self, name: str, input: ValueLike, dims: Sequence[int]) -> nd.ReshapeNode:
        input = as_value(input)
        if TensorType(input.type.elem_kind, tuple(dims)).size() != input.type.size():
            raise ValueError(f"Cannot reshape {input.type} to {tuple(dims)}")
        return self.add_node(nd.ReshapeNode(name, input, dims))

    def create_transpose(self, name: str, input: ValueLike, shuffle: Sequence[int]) -> nd.TransposeNode:
        input = as_value(input)
        if not nd.is_permutation(list(shuffle), input.type.rank):
            raise ValueError(f"{list(shuffle)} is not a permutation of the {input.type.rank} axes of {input}")
        return self.add_node(nd.TransposeNode(name, input, shuffle))

    def create_slice(self, name: str, input: ValueLike, start: Sequence[int], end: Sequence[int]) -> nd.SliceNode:
        """ Extracts ``input[start:end]`` along every axis. """
        input = as_value(input)
        dims = [e - s for s, e in zip(start, end)]
        if len(start) != input.type.rank or not nd.region_in_bounds(start, dims, input.dims) or min(dims) <= 0:
            raise ValueError(f"Invalid slice [{list(start)}, {list(end)}) of {input.type}")
        return self.add_node(nd.SliceNode(name, input, start, input.type.with_dims(dims)))

    def create_concat(self, name: str, inputs: Sequence[ValueLike], dim: int) -> nd.ConcatNode:
        inputs = [as_value(i) for i in inputs]
        if not inputs:
            raise ValueError("Concatenation needs at least one input")
        first = inputs[0].type
        if not -first.rank <= dim < first.rank:
            raise ValueError(f"Concatenation axis {dim} out of range for {first}")
        dim %= first.rank
        for other in inputs[1:]:
            same = [d for i, d in enumerate(other.dims) if i != dim] == [d for i, d in enumerate(first.dims) if i != dim]
            if other.type.elem_kind != first.elem_kind or other.type.rank != first.rank or not same:
                raise ValueError(f"Cannot concatenate {other.type} with {first} along axis {dim}")
        dims = list(first.dims)
        dims[dim] = sum(i.dims[dim] for i in inputs)
        return self.add_node(nd.ConcatNode(name, inputs, dim, first.with_dims(dims)))

    def create_splat(self, name: str, type: TensorType, value: float) -> nd.SplatNode:
        return self.add_node(nd.SplatNode(name, type, value))
