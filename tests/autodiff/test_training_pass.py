# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
import logging

import numpy as np
import pytest

from gradgraph import CompilationMode, Graph, TrainingConfig, add_training_pass
from gradgraph.autodiff import (AutoDiffException, BackwardPassGenerator, find_backward_implementation,
                                generate_gradient_nodes)
from gradgraph.autodiff.base_abc import differentiable_node_types
from gradgraph.config import set_temporary
from gradgraph.graph import FORWARD_NODE_TYPES, InsertTensorNode, ReluNode, SaveNode, SGDNode, SplatNode, Variable

from numpy_reference import NumpyEvaluator


def build_add():
    g = Graph()
    a = g.create_variable("A", (2, 3), trainable=True)
    b = g.create_variable("B", (2, 3), trainable=True)
    add = g.create_add("add", a, b)
    g.create_save("out", add)
    return g, a, b


def sgd_nodes(g: Graph):
    return [n for n in g.nodes if isinstance(n, SGDNode)]


@pytest.mark.autodiff
def test_add_end_to_end():
    g, a, b = build_add()
    add_training_pass(g, TrainingConfig(momentum=0.0), seed=1.5)

    updates = sgd_nodes(g)
    assert [u.name for u in updates] == ["A_sgd", "B_sgd"]
    assert [u.weight for u in updates] == [a, b]

    seed = updates[0].input('Gradient').node
    assert isinstance(seed, SplatNode)
    assert seed.value == 1.5
    assert updates[1].input('Gradient').node is seed

    for u in updates:
        assert u.gsum.type.is_void()
        assert u.gsum.name == u.weight.name + "_gsum"
        assert u.gsum.init_kind.name == "Broadcast" and u.gsum.init_value == 0.0
    assert not g.gradient_variables


@pytest.mark.autodiff
def test_momentum_gsum_and_hyperparameters():
    g, a, b = build_add()
    conf = TrainingConfig(learning_rate=0.1, momentum=0.9, l1_decay=0.001, l2_decay=0.002, batch_size=8)
    add_training_pass(g, conf)

    for u in sgd_nodes(g):
        assert u.gsum.type == u.weight.type
        assert (u.learning_rate, u.momentum, u.l1_decay, u.l2_decay, u.batch_size) == (0.1, 0.9, 0.001, 0.002, 8)


@pytest.mark.autodiff
def test_only_trainable_variables_are_updated():
    g = Graph()
    a = g.create_variable("A", (4, ), trainable=True)
    b = g.create_variable("B", (4, ))
    g.create_save("out", g.create_mul("mul", a, b))
    generate_gradient_nodes(g, TrainingConfig())

    updates = sgd_nodes(g)
    assert len(updates) == 1
    assert updates[0].weight is a
    assert g.get_variable_by_name("B_gsum") is None


@pytest.mark.autodiff
def test_debug_mode_saves_gradients():
    g = Graph()
    a = g.create_variable("A", (2, 2), trainable=True)
    b = g.create_variable("B", (2, 2))
    g.create_save("out", g.create_mul("mul", a, b))
    generate_gradient_nodes(g, TrainingConfig(), CompilationMode.TrainDebug, seed=1.0)

    # Non-trainable variables with a gradient are exposed too
    assert set(v.name for v in g.gradient_variables) == {"A", "B", "out"}
    grad_a = g.gradient_variables[a]
    assert grad_a.name == "_grad_A"
    assert grad_a.type == a.type
    assert grad_a.init_kind.name == "Extern"

    save = g.get_node_by_name("_grad_A")
    assert isinstance(save, SaveNode) and save.variable is grad_a
    values = {"A": np.ones((2, 2)), "B": np.array([[1.0, 2.0], [3.0, 4.0]])}
    assert np.allclose(NumpyEvaluator(values)(save.input('Input')), values["B"])

    # The snapshot reads the same gradient as the update
    update = next(u for u in sgd_nodes(g) if u.weight is a)
    assert update.input('Gradient') == save.input('Input')


@pytest.mark.autodiff
def test_gradient_prefix_is_configurable(clean_config):
    g, a, _ = build_add()
    with set_temporary('autodiff', 'gradient_prefix', value="d_"):
        generate_gradient_nodes(g, TrainingConfig(), CompilationMode.TrainDebug)
    assert g.gradient_variables[a].name == "d_A"


@pytest.mark.autodiff
def test_seed_defaults_to_config(clean_config):
    g, _, _ = build_add()
    with set_temporary('autodiff', 'seed_gradient', value=0.25):
        generate_gradient_nodes(g, TrainingConfig())
    assert sgd_nodes(g)[0].input('Gradient').node.value == 0.25


@pytest.mark.autodiff
def test_commit_order():
    g = Graph()
    x = g.create_variable("x", (3, ), trainable=True)
    relu = g.create_relu("relu", x)
    g.create_save("out", relu)
    forward_nodes, forward_variables = g.nodes, g.variables

    gen = BackwardPassGenerator(g, TrainingConfig(), CompilationMode.Train)
    gen.backward()

    assert g.nodes[:len(forward_nodes)] == forward_nodes
    assert g.nodes[len(forward_nodes):] == gen.staging.nodes
    assert g.variables[:len(forward_variables)] == forward_variables
    assert g.variables[len(forward_variables):] == gen.staging.variables
    # Updates are created after the whole backward sweep
    assert isinstance(g.nodes[-1], SGDNode)
    assert g.nodes[len(forward_nodes)].name == "out_seed"
    g.verify()


@pytest.mark.autodiff
def test_infer_is_a_no_op(caplog):
    g, _, _ = build_add()
    nodes, variables = g.nodes, g.variables
    with caplog.at_level(logging.INFO, logger="gradgraph.autodiff.autodiff"):
        assert add_training_pass(g, mode=CompilationMode.Infer) is g
    assert g.nodes == nodes and g.variables == variables
    assert "inference" in caplog.text


@pytest.mark.autodiff
def test_unsupported_node_kind():
    g = Graph()
    x = g.create_variable("x", (4, ), trainable=True)
    small = g.create_variable("small", (2, ))
    # InsertTensor only appears in backward graphs and has no backward rule
    insert = g.add_node(InsertTensorNode("insert", x, small, (1, )))
    g.create_save("out", insert)
    nodes = g.nodes

    with pytest.raises(AutoDiffException, match="Unable to differentiate node insert"):
        generate_gradient_nodes(g, TrainingConfig())
    # Nothing is committed when the pass fails
    assert g.nodes == nodes


@pytest.mark.autodiff
def test_splat_constant_operand():
    g = Graph()
    x = g.create_variable("x", (2, ), trainable=True)
    bias = g.create_splat("bias", x.type, 0.5)
    g.create_save("out", g.create_mul("scale", x, bias))
    gen = BackwardPassGenerator(g, TrainingConfig(), CompilationMode.Train, seed=1.0)
    gen.backward()

    assert [u.weight for u in sgd_nodes(g)] == [x]
    assert gen.grad_map.get_gradient(x).node.name == "scale_backward_lhs"
    assert not any(n.name.startswith("bias_") for n in gen.staging.nodes)
    g.verify()


@pytest.mark.autodiff
def test_value_without_gradient():
    g = Graph()
    x = g.create_variable("x", (2, ), trainable=True)
    g.create_relu("dangling", x)
    with pytest.raises(AutoDiffException, match="Failed at node dangling"):
        generate_gradient_nodes(g, TrainingConfig())


@pytest.mark.autodiff
def test_unused_trainable_variable():
    g, _, _ = build_add()
    g.create_variable("unused", (2, 3), trainable=True)
    with pytest.raises(AutoDiffException, match="unused"):
        generate_gradient_nodes(g, TrainingConfig())


@pytest.mark.autodiff
def test_cycle_is_rejected():
    g = Graph()
    x = g.create_variable("x", (2, ))
    first = ReluNode("first", x)
    second = ReluNode("second", first)
    first.inputs = (second.result(), )
    g.add_node(first)
    g.add_node(second)
    g.create_save("out", second)
    with pytest.raises(AutoDiffException, match="cycle"):
        generate_gradient_nodes(g, TrainingConfig())


@pytest.mark.autodiff
def test_backward_only_once():
    g, _, _ = build_add()
    gen = BackwardPassGenerator(g, TrainingConfig(), CompilationMode.Train)
    gen.backward()
    with pytest.raises(AutoDiffException):
        gen.backward()


@pytest.mark.autodiff
def test_every_forward_kind_is_differentiable():
    assert set(FORWARD_NODE_TYPES) <= differentiable_node_types()


@pytest.mark.autodiff
def test_backward_implementation_override(caplog):
    g = Graph()
    x = g.create_variable("x", (2, ), trainable=True)
    relu = g.create_relu("relu", x)
    relu.backward_implementation = "missing"
    with caplog.at_level(logging.WARNING):
        impl = find_backward_implementation(relu)
    assert impl is find_backward_implementation(ReluNode("other", x))
    assert "Falling back" in caplog.text


@pytest.mark.autodiff
def test_verify_rejects_malformed_graph():
    g = Graph()
    x = g.create_variable("x", (2, ), trainable=True)
    outside = Variable("outside", x.type)
    g.create_save("out", g.create_add("add", x, outside))
    with pytest.raises(ValueError):
        add_training_pass(g, TrainingConfig())
    # The check can be disabled, the pass itself only needs the dependency graph
    add_training_pass(g, TrainingConfig(), verify=False)
    assert len(sgd_nodes(g)) == 1
