# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
from gradgraph.graph.nodes import (
    ArithmeticGradNode, ArithmeticNode, BatchNormalizationGradNode, BatchNormalizationNode, ConcatNode,
    ConvolutionGradNode, ConvolutionNode, FORWARD_NODE_TYPES, FullyConnectedGradNode, FullyConnectedNode, GradNode,
    GraphVerificationError, InsertTensorNode, LocalResponseNormalizationGradNode, LocalResponseNormalizationNode, Node,
    NodeKind, NodeValue, PoolGradNode, PoolNode, RegressionGradNode, RegressionNode, ReluGradNode, ReluNode,
    ReshapeNode, SGDNode, SaveNode, SigmoidGradNode, SigmoidNode, SliceNode, SoftMaxGradNode, SoftMaxNode, SplatNode,
    TanhGradNode, TanhNode, TransposeNode, Variable, as_value, is_permutation, region_in_bounds)
from gradgraph.graph.graph import Graph
from gradgraph.graph.utils import dependency_graph, post_order
