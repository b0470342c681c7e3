# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
import dataclasses

from gradgraph.config import Config


@dataclasses.dataclass(frozen=True)
class TrainingConfig:
    """ Hyperparameters bound to every parameter update node. """

    learning_rate: float = 0.01
    momentum: float = 0.0
    l1_decay: float = 0.0
    l2_decay: float = 0.0
    batch_size: int = 1

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {self.batch_size}")
        if self.momentum < 0:
            raise ValueError(f"Momentum must not be negative, got {self.momentum}")

    @staticmethod
    def from_config() -> 'TrainingConfig':
        """ Creates a training configuration from the ``training`` section of :class:`~gradgraph.config.Config`. """
        return TrainingConfig(learning_rate=Config.get_float('training', 'learning_rate'),
                              momentum=Config.get_float('training', 'momentum'),
                              l1_decay=Config.get_float('training', 'l1_decay'),
                              l2_decay=Config.get_float('training', 'l2_decay'),
                              batch_size=int(Config.get('training', 'batch_size')))
