# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
import pytest

from gradgraph import ElemKind, Graph, InitKind, PoolMode, TensorType
from gradgraph.graph import (ConvolutionNode, GraphVerificationError, NodeValue, ReluNode, SplatNode, Variable,
                             post_order)


def test_void_type():
    g = Graph()
    assert g.void_type.is_void()
    assert g.void_type.size() == 0
    assert not TensorType(ElemKind.Float32, (2, 3)).is_void()


def test_tensor_type_is_immutable_and_hashable():
    a = TensorType(ElemKind.Float32, [2, 3])
    b = TensorType(ElemKind.Float32, (2, 3))
    assert a == b and hash(a) == hash(b)
    assert a.dims == (2, 3)
    with pytest.raises(ValueError):
        TensorType(ElemKind.Float32, (2, -1))


def test_node_value_identity():
    g = Graph()
    x = g.create_variable("x", (2, 2))
    y = g.create_variable("y", (2, 2))
    assert NodeValue(x, 0) == x.result()
    assert hash(NodeValue(x, 0)) == hash(x.result())
    assert NodeValue(x, 0) != NodeValue(y, 0)
    assert NodeValue(x, 0) != NodeValue(x, 1)


def test_convolution_types():
    g = Graph()
    x = g.create_variable("x", (1, 8, 8, 3))
    conv = g.create_convolution("conv", x, depth=4, kernel=3, stride=1, pad=1)
    assert conv.dims == (1, 8, 8, 4)
    assert conv.input('Filter').dims == (4, 3, 3, 3)
    assert conv.input('Bias').dims == (4, )
    filter = conv.input('Filter').node
    assert filter.trainable and filter.init_kind == InitKind.Xavier

    pool = g.create_pool("pool", conv, PoolMode.Max, kernel=2, stride=2, pad=0)
    assert pool.dims == (1, 4, 4, 4)
    g.verify()


def test_fully_connected_flattens():
    g = Graph()
    x = g.create_variable("x", (2, 3, 4))
    fc = g.create_fully_connected("fc", x, 5)
    assert fc.dims == (2, 5)
    assert fc.input('Weights').dims == (12, 5)
    g.verify()


def test_factory_errors():
    g = Graph()
    x = g.create_variable("x", (2, 3))
    y = g.create_variable("y", (3, 2))
    with pytest.raises(ValueError):
        g.create_add("add", x, y)
    with pytest.raises(ValueError):
        g.create_reshape("reshape", x, (4, 2))
    with pytest.raises(ValueError):
        g.create_transpose("transpose", x, (0, 0))
    with pytest.raises(ValueError):
        g.create_slice("slice", x, (0, 1), (2, 4))
    with pytest.raises(ValueError):
        g.create_concat("concat", [x, y], 0)
    with pytest.raises(ValueError):
        g.create_convolution("conv", x, 2, 3, 1, 0)


def test_shape_operators():
    g = Graph()
    x = g.create_variable("x", (2, 3, 4))
    assert g.create_transpose("t", x, (2, 0, 1)).dims == (4, 2, 3)
    assert g.create_reshape("r", x, (6, 4)).dims == (6, 4)
    assert g.create_slice("s", x, (0, 1, 1), (2, 3, 3)).dims == (2, 2, 2)
    y = g.create_variable("y", (2, 5, 4))
    assert g.create_concat("c", [x, y], 1).dims == (2, 8, 4)
    g.verify()


def test_verify_duplicate_names():
    g = Graph()
    x = g.create_variable("x", (2, ))
    g.create_relu("relu", x)
    g.create_relu("relu", x)
    with pytest.raises(GraphVerificationError):
        g.verify()


def test_verify_foreign_operand():
    g = Graph()
    foreign = Variable("foreign", TensorType(ElemKind.Float32, (2, )))
    g.add_node(ReluNode("relu", foreign))
    with pytest.raises(GraphVerificationError):
        g.verify()


def test_verify_node_checks():
    g = Graph()
    x = g.create_variable("x", (1, 4, 4, 2))
    conv = g.create_convolution("conv", x, 2, 3, 1, 0)
    bad_bias = g.create_variable("bad_bias", (3, ))
    g.add_node(ConvolutionNode("bad", x, conv.input('Filter'), bad_bias, conv.type, 3, 1, 0, 2))
    with pytest.raises(GraphVerificationError):
        g.verify()


def test_add_node_type_checks():
    g = Graph()
    with pytest.raises(TypeError):
        g.add_node(Variable("v", TensorType(ElemKind.Float32, (1, ))))
    with pytest.raises(TypeError):
        g.add_variable(SplatNode("s", TensorType(ElemKind.Float32, (1, )), 0.0))


def test_post_order_dependencies_first():
    g = Graph()
    a = g.create_variable("a", (2, ))
    b = g.create_variable("b", (2, ))
    add = g.create_add("add", a, b)
    relu = g.create_relu("relu", add)
    mul = g.create_mul("mul", relu, add)
    save = g.create_save("out", mul)

    order = post_order(g)
    assert order == [a, b, save.variable, add, relu, mul, save]
    position = {n: i for i, n in enumerate(order)}
    for node in g.nodes:
        for operand in node.inputs:
            assert position[operand.node] < position[node]


def test_post_order_is_deterministic():

    def build():
        g = Graph()
        x = g.create_variable("x", (4, ))
        h = g.create_tanh("h", x)
        s = g.create_sigmoid("s", x)
        g.create_save("out", g.create_add("add", h, s))
        return g

    assert [n.name for n in post_order(build())] == [n.name for n in post_order(build())]


def test_post_order_reaches_operands_outside_graph():
    g = Graph()
    x = g.create_variable("x", (2, ))
    hidden = ReluNode("hidden", x)
    g.add_node(ReluNode("visible", hidden))
    names = [n.name for n in post_order(g)]
    assert names.index("hidden") < names.index("visible")


def test_post_order_rejects_cycles():
    g = Graph()
    x = g.create_variable("x", (2, ))
    first = g.create_relu("first", x)
    second = g.create_relu("second", first)
    first.inputs = (second.result(), )
    with pytest.raises(ValueError):
        post_order(g)


def test_to_networkx():
    g = Graph()
    x = g.create_variable("x", (2, ))
    relu = g.create_relu("relu", x)
    G = g.to_networkx()
    assert set(G.nodes) == {x, relu}
    assert list(G.successors(relu)) == [x]


def test_concat_negative_axis():
    g = Graph()
    x = g.create_variable("x", (2, 3))
    y = g.create_variable("y", (2, 5))
    concat = g.create_concat("concat", [x, y], -1)
    assert concat.dim == 1
    assert concat.dims == (2, 8)
    g.verify()
    with pytest.raises(ValueError):
        g.create_concat("bad", [x, y], 2)
    with pytest.raises(ValueError):
        g.create_concat("bad", [x, y], -3)
