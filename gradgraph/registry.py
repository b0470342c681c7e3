# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Class decorators for extension points: classes whose subclasses (e.g.,
    backward rules) and enumerations whose members (e.g., node kinds) can be
    registered from outside the defining module. """

from typing import Any, Dict, Type

from aenum import Enum, extend_enum


def make_registry(cls: Type):
    """
    Turns ``cls`` into an extension point. The class gains

    * ``register(subclass, **kwargs)``, which records ``subclass`` together
      with its registration arguments (e.g., ``node_type`` and ``name``),
    * ``unregister(subclass)``,
    * ``extensions()``, the ``{subclass: kwargs}`` mapping in registration order.
    """
    registry: Dict[Type, Dict[str, Any]] = {}

    def register(subclass: Type, **kwargs):
        registry[subclass] = kwargs

    def unregister(subclass: Type):
        registry.pop(subclass)

    cls._registry_ = registry
    cls.register = register
    cls.unregister = unregister
    cls.extensions = lambda: registry
    return cls


def autoregister(cls: Type, **kwargs):
    """
    Registers ``cls`` with each of its direct base classes that is an
    extension point. Raises ``TypeError`` if there is none.
    """
    extension_points = [base for base in cls.__bases__ if hasattr(base, '_registry_') and hasattr(base, 'register')]
    if not extension_points:
        raise TypeError(f'{cls.__name__} does not extend a registry class')
    for base in extension_points:
        base.register(cls, **kwargs)
    return cls


def autoregister_params(**params):
    """ Class decorator form of ``autoregister``, e.g.
        ``@autoregister_params(node_type=ReluNode, name="default")``. """
    return lambda cls: autoregister(cls, **params)


def extensible_enum(cls: Type):
    """
    Adds ``register(name, *value)`` to an ``aenum.Enum``, which appends a new
    member. Without a value, the next automatic value is used. Members cannot
    be removed once added.
    """
    if not issubclass(cls, Enum):
        raise TypeError(f"{cls.__name__} is not an aenum.Enum and cannot be made extensible")

    cls.register = lambda name, *value: extend_enum(cls, name, *value)
    return cls
