"""
gradgraph Automatic Differentiation (AD) System.

This module provides reverse-mode automatic differentiation for computation
graphs, synthesizing the backward pass and the parameter updates of a model.

Main Components
---------------
- **add_training_pass**: Main entry point for preparing a graph for training
- **generate_gradient_nodes**: The gradient generation pass itself
- **BackwardPassGenerator**: Core algorithm for generating backward passes
- **GraphGradMapper**: Gradient accumulation for values with several consumers
- **BackwardImplementation**: ABC for implementing operation-specific backward rules
- **BackwardContext**: Context information for backward pass generation
- **AutoDiffException**: Base exception for autodiff errors
"""

from .base_abc import (BackwardImplementation, BackwardContext, AutoDiffException, find_backward_implementation,
                       differentiable_node_types)
from .grad_mapper import GraphGradMapper, Staging
from .backward_pass_generator import BackwardPassGenerator, generate_gradient_nodes
from .autodiff import add_training_pass

__all__ = [
    # Main API
    "add_training_pass",
    "generate_gradient_nodes",
    # Core classes
    "BackwardPassGenerator",
    "BackwardContext",
    "GraphGradMapper",
    "Staging",
    # Extension points
    "BackwardImplementation",
    "find_backward_implementation",
    "differentiable_node_types",
    # Exceptions
    "AutoDiffException",
]
