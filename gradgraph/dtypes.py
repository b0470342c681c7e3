# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Element kinds, enumerations and tensor types used by the graph. """
import dataclasses
from typing import Sequence, Tuple

import aenum
import numpy

from gradgraph.registry import extensible_enum


@extensible_enum
class ElemKind(aenum.AutoNumberEnum):
    """ Element types of tensors. """

    Float32 = ()
    Float64 = ()
    Int8Q = ()  #: Quantized 8-bit integer
    Int32 = ()
    Int64 = ()  #: Used for indices and labels


class InitKind(aenum.AutoNumberEnum):
    """ How the storage of a variable is initialized. """

    Extern = ()  #: Filled by the user (inputs, labels)
    Broadcast = ()  #: Every element set to the init value
    Xavier = ()  #: Random values scaled by the init value


class CompilationMode(aenum.AutoNumberEnum):
    """ What the compiled graph is used for. """

    Infer = ()  #: Forward pass only
    Train = ()  #: Forward, backward and parameter updates
    TrainDebug = ()  #: Train, and expose every parameter gradient as a graph output


class ArithmeticMode(aenum.AutoNumberEnum):
    Add = ()
    Sub = ()
    Mul = ()
    Div = ()
    Max = ()
    Min = ()


class PoolMode(aenum.AutoNumberEnum):
    Max = ()
    Avg = ()


@dataclasses.dataclass(frozen=True)
class TensorType:
    """ Immutable type of a tensor value: element kind and dimensions. """

    elem_kind: ElemKind
    dims: Tuple[int, ...]

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        if any(d < 0 for d in dims):
            raise ValueError(f"Negative dimension in {dims}")
        object.__setattr__(self, 'dims', dims)

    @staticmethod
    def void(elem_kind: ElemKind = ElemKind.Float32) -> 'TensorType':
        """ A zero-sized placeholder type. """
        return TensorType(elem_kind, (0, ))

    @property
    def rank(self) -> int:
        return len(self.dims)

    def size(self) -> int:
        """ Number of elements. """
        return int(numpy.prod(self.dims, dtype=numpy.int64))

    def is_void(self) -> bool:
        return self.size() == 0

    def with_dims(self, dims: Sequence[int]) -> 'TensorType':
        return TensorType(self.elem_kind, tuple(dims))

    def __str__(self):
        return f"{self.elem_kind.name}<{' x '.join(str(d) for d in self.dims)}>"
