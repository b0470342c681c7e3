# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Reverse-mode gradient synthesis for tensor computation graphs. """

from .version import __version__
from .config import Config
from .dtypes import ArithmeticMode, CompilationMode, ElemKind, InitKind, PoolMode, TensorType
from .training import TrainingConfig
from .graph import Graph, Node, NodeKind, NodeValue, Variable
from .autodiff import AutoDiffException, add_training_pass, generate_gradient_nodes
