from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FeatureCollection = dict[str, Any]
Feature = dict[str, Any]


@dataclass(frozen=True)
class Substance:
    code: str
    name: str
    short_name: str
    limit: float


@dataclass(frozen=True)
class SubstanceStat:
    code: str
    name: str
    short_name: str
    limit: float
    tested_in: int
    detected_in: int
    median_concentration: float | None

    @classmethod
    def from_substance(
        cls,
        substance: Substance,
        *,
        tested_in: int,
        detected_in: int,
        median_concentration: float | None,
    ) -> "SubstanceStat":
        return cls(
            code=substance.code,
            name=substance.name,
            short_name=substance.short_name,
            limit=substance.limit,
            tested_in=tested_in,
            detected_in=detected_in,
            median_concentration=median_concentration,
        )


@dataclass(frozen=True)
class SubstanceTest:
    substance: Substance | SubstanceStat
    samples: tuple[float, ...]
    max: float | None

    @property
    def has_data(self) -> bool:
        return self.max is not None

    @property
    def detected(self) -> bool:
        return self.max is not None and self.max > 0


@dataclass(frozen=True)
class AggregateValues:
    ibge_code: str
    category: dict[str, str | None]
    number: dict[str, float | None]


@dataclass(frozen=True)
class MapDataset:
    brazil: FeatureCollection
    fu: FeatureCollection
    internal_fu: FeatureCollection
    mun: FeatureCollection
    substances_lut: dict[str, SubstanceStat]
    national: Feature
    warnings: list[str] = field(default_factory=list)

    def layer(self, name: str) -> FeatureCollection:
        layers = {
            "brazil": self.brazil,
            "fu": self.fu,
            "internal-fu": self.internal_fu,
            "mun": self.mun,
        }
        if name not in layers:
            raise KeyError(name)
        return layers[name]
