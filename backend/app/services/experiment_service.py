"""Experiment assignment: deterministic user -> variant bucketing.

bucket = crc32(f"{user_id}{experiment_name}") % 100

Variants are matched by walking the cumulative traffic split in declared
order. The same user always lands in the same variant for a given
experiment, so no assignment rows are stored.
"""

import zlib
from dataclasses import dataclass
from typing import Iterable

from app.config import Settings, get_settings
from app.services.errors import InvalidInputError

PERSONALIZATION_EXPERIMENT = "personalization_level"
RECOMMENDATION_COUNT_EXPERIMENT = "recommendation_count"


@dataclass(frozen=True)
class Experiment:
    name: str
    variants: tuple[str, ...]
    traffic_split: tuple[int, ...]
    active: bool = True

    def __post_init__(self):
        if not self.variants:
            raise ValueError(f"Experiment {self.name!r} has no variants")
        if len(self.variants) != len(self.traffic_split):
            raise ValueError(f"Experiment {self.name!r}: variants and traffic split differ in length")
        if sum(self.traffic_split) != 100:
            raise ValueError(f"Experiment {self.name!r}: traffic split must sum to 100")

    @property
    def default_variant(self) -> str:
        return self.variants[0]


def bucket_for(user_id: int | str, experiment_name: str) -> int:
    return zlib.crc32(f"{user_id}{experiment_name}".encode("utf-8")) % 100


class ExperimentRegistry:
    """Named experiment definitions, passed to whoever needs variant assignment."""

    def __init__(self, experiments: Iterable[Experiment] = ()):
        self._experiments = {e.name: e for e in experiments}

    def __contains__(self, name: str) -> bool:
        return name in self._experiments

    def get(self, name: str) -> Experiment:
        try:
            return self._experiments[name]
        except KeyError:
            raise InvalidInputError(f"Unknown experiment: {name}") from None

    def names(self) -> list[str]:
        return list(self._experiments)

    def variant_for(self, name: str, user_id: int | str) -> str:
        experiment = self.get(name)
        if not experiment.active:
            return experiment.default_variant

        bucket = bucket_for(user_id, name)
        cumulative = 0
        for variant, share in zip(experiment.variants, experiment.traffic_split):
            cumulative += share
            if bucket < cumulative:
                return variant
        return experiment.default_variant


def build_default_registry(settings: Settings | None = None) -> ExperimentRegistry:
    settings = settings or get_settings()
    return ExperimentRegistry([
        Experiment(
            name=PERSONALIZATION_EXPERIMENT,
            variants=("none", "light", "full"),
            traffic_split=(50, 30, 20),
            active=settings.personalization_experiment_active,
        ),
        Experiment(
            name=RECOMMENDATION_COUNT_EXPERIMENT,
            variants=("15", "20", "25"),
            traffic_split=(33, 34, 33),
            active=False,
        ),
    ])
