# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
import numpy as np
import pytest

from gradgraph import ArithmeticMode, CompilationMode, Graph, TrainingConfig
from gradgraph.autodiff import generate_gradient_nodes
from gradgraph.graph import ArithmeticGradNode, ArithmeticNode, SplatNode

from numpy_reference import NumpyEvaluator, debug_gradient

SEED = 2.0
DIMS = (3, 4)


def build(mode: ArithmeticMode):
    g = Graph()
    a = g.create_variable("a", DIMS, trainable=True)
    b = g.create_variable("b", DIMS, trainable=True)
    g.create_save("out", g.create_arithmetic("op", a, b, mode))
    generate_gradient_nodes(g, TrainingConfig(), CompilationMode.TrainDebug, seed=SEED)
    return g, a, b


def feeds():
    rng = np.random.default_rng(42)
    return {"a": rng.random(DIMS) + 0.5, "b": rng.random(DIMS) + 0.5}


@pytest.mark.autodiff
def test_add_passes_gradient_through():
    g, a, b = build(ArithmeticMode.Add)
    grad_a, grad_b = debug_gradient(g, a), debug_gradient(g, b)
    # Both operands share the output gradient, no new node is created
    assert grad_a == grad_b
    assert isinstance(grad_a.node, SplatNode)
    assert grad_a.node.value == SEED


@pytest.mark.autodiff
def test_sub_negates_rhs():
    g, a, b = build(ArithmeticMode.Sub)
    grad_a, grad_b = debug_gradient(g, a), debug_gradient(g, b)
    assert isinstance(grad_a.node, SplatNode)
    assert isinstance(grad_b.node, ArithmeticNode) and grad_b.node.mode == ArithmeticMode.Sub

    evaluate = NumpyEvaluator(feeds())
    assert np.allclose(evaluate(grad_a), np.full(DIMS, SEED))
    assert np.allclose(evaluate(grad_b), np.full(DIMS, -SEED))


@pytest.mark.autodiff
def test_mul():
    g, a, b = build(ArithmeticMode.Mul)
    values = feeds()
    evaluate = NumpyEvaluator(values)
    assert np.allclose(evaluate(debug_gradient(g, a)), SEED * values["b"])
    assert np.allclose(evaluate(debug_gradient(g, b)), SEED * values["a"])


@pytest.mark.autodiff
def test_div():
    g, a, b = build(ArithmeticMode.Div)
    values = feeds()
    evaluate = NumpyEvaluator(values)
    assert np.allclose(evaluate(debug_gradient(g, a)), SEED / values["b"])
    assert np.allclose(evaluate(debug_gradient(g, b)), -SEED * values["a"] / values["b"]**2)


@pytest.mark.autodiff
@pytest.mark.parametrize("mode", [ArithmeticMode.Max, ArithmeticMode.Min])
def test_max_min_use_grad_node(mode):
    g, a, b = build(mode)
    grad_a, grad_b = debug_gradient(g, a), debug_gradient(g, b)
    assert grad_a.node is grad_b.node
    node = grad_a.node
    assert isinstance(node, ArithmeticGradNode)
    assert node.mode == mode
    assert grad_a == node.grad_of('LHS') and grad_b == node.grad_of('RHS')
    assert grad_a.type == a.type and grad_b.type == b.type


@pytest.mark.autodiff
def test_square_accumulates_both_operands():
    g = Graph()
    a = g.create_variable("a", DIMS, trainable=True)
    g.create_save("out", g.create_mul("square", a, a))
    generate_gradient_nodes(g, TrainingConfig(), CompilationMode.TrainDebug, seed=SEED)

    grad = debug_gradient(g, a)
    assert isinstance(grad.node, ArithmeticNode) and grad.node.mode == ArithmeticMode.Add
    values = feeds()
    assert np.allclose(NumpyEvaluator(values)(grad), 2 * SEED * values["a"])


@pytest.mark.autodiff
def test_fan_out_accumulates():
    """ A value consumed by two paths receives the sum of both gradients. """
    g = Graph()
    a = g.create_variable("a", DIMS, trainable=True)
    b = g.create_variable("b", DIMS)
    c = g.create_variable("c", DIMS)
    left = g.create_mul("left", a, b)
    right = g.create_mul("right", a, c)
    g.create_save("out", g.create_add("sum", left, right))
    generate_gradient_nodes(g, TrainingConfig(), CompilationMode.TrainDebug, seed=1.0)

    values = feeds()
    values["c"] = np.arange(12.0).reshape(DIMS)
    result = NumpyEvaluator(values)(debug_gradient(g, a))
    assert np.allclose(result, values["b"] + values["c"])
