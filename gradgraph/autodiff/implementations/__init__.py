# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
Backward Pass Implementations for Graph Operators.

Each implementation defines how to compute gradients for one operator kind and
registers itself with :class:`~gradgraph.autodiff.base_abc.BackwardImplementation`.

Implementation Categories
-------------------------
1. **Structural Nodes** (structural_nodes.py):
   - Graph outputs (Save) and shape operators: Reshape, Transpose, Slice, Concat

2. **Arithmetic Nodes** (arithmetic_nodes.py):
   - Elementwise binary arithmetic: Add, Sub, Mul, Div, Max, Min

3. **Neural Network Nodes** (nn_nodes.py):
   - Layers: Convolution, Pool, FullyConnected, BatchNormalization, LocalResponseNormalization
   - Losses: SoftMax, Regression
   - Activations: Relu, Sigmoid, Tanh
"""

import gradgraph.autodiff.implementations.structural_nodes
import gradgraph.autodiff.implementations.arithmetic_nodes
import gradgraph.autodiff.implementations.nn_nodes
