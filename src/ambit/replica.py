from __future__ import annotations

import random
from abc import ABC, abstractmethod
from itertools import count
from typing import Optional, Sequence

from ambit.base.interface import BaseInterface
from ambit.exception import AmbitError


class ReplicaSelector(ABC):
    """Strategy choosing which replica serves a read-only execution"""

    @abstractmethod
    def select(self, replicas: Sequence[BaseInterface]) -> BaseInterface: ...

    def __call__(self, replicas: Sequence[BaseInterface]) -> BaseInterface:
        if not replicas:
            raise AmbitError("No replica to select from")
        return self.select(replicas)


class FirstReplicaSelector(ReplicaSelector):
    """Always the first configured replica"""

    def select(self, replicas: Sequence[BaseInterface]) -> BaseInterface:
        return replicas[0]


class RoundRobinSelector(ReplicaSelector):
    """Rotate through the replicas in configured order"""

    def __init__(self) -> None:
        self._counter = count()

    def select(self, replicas: Sequence[BaseInterface]) -> BaseInterface:
        return replicas[next(self._counter) % len(replicas)]


class RandomSelector(ReplicaSelector):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def select(self, replicas: Sequence[BaseInterface]) -> BaseInterface:
        return self._rng.choice(replicas)
