"""
In-memory repositories for the sample Star Wars data set.

Repositories are async so they can be swapped for database-backed
implementations without touching resolvers or routes.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID

from apiforge.models import DroidRecord, Episode, HumanRecord

CharacterRecord = Union[HumanRecord, DroidRecord]

LUKE = UUID("8a3a1e4c-4b8b-4a2f-9c1d-1b0e6f6d0a01")
VADER = UUID("8a3a1e4c-4b8b-4a2f-9c1d-1b0e6f6d0a02")
HAN = UUID("8a3a1e4c-4b8b-4a2f-9c1d-1b0e6f6d0a03")
LEIA = UUID("8a3a1e4c-4b8b-4a2f-9c1d-1b0e6f6d0a04")
TARKIN = UUID("8a3a1e4c-4b8b-4a2f-9c1d-1b0e6f6d0a05")
C3PO = UUID("5c8f2d11-7e3a-4c55-8f10-2b7a9e4d1c01")
R2D2 = UUID("5c8f2d11-7e3a-4c55-8f10-2b7a9e4d1c02")

_ALL_EPISODES = [Episode.NEWHOPE, Episode.EMPIRE, Episode.JEDI]


def _seed_humans() -> List[HumanRecord]:
    return [
        HumanRecord(LUKE, "Luke Skywalker", "Tatooine", date(1977, 5, 25), [HAN, LEIA, C3PO, R2D2], list(_ALL_EPISODES)),
        HumanRecord(VADER, "Darth Vader", "Tatooine", date(1941, 9, 19), [TARKIN], list(_ALL_EPISODES)),
        HumanRecord(HAN, "Han Solo", "Corellia", date(1942, 7, 13), [LUKE, LEIA, R2D2], list(_ALL_EPISODES)),
        HumanRecord(LEIA, "Leia Organa", "Alderaan", date(1956, 10, 21), [LUKE, HAN, C3PO, R2D2], list(_ALL_EPISODES)),
        HumanRecord(TARKIN, "Wilhuff Tarkin", "Eriadu", date(1913, 5, 26), [VADER], [Episode.NEWHOPE]),
    ]


def _seed_droids() -> List[DroidRecord]:
    return [
        DroidRecord(
            C3PO,
            "C-3PO",
            "Protocol",
            timedelta(hours=4),
            datetime(1977, 1, 1, tzinfo=timezone.utc),
            [LUKE, HAN, LEIA, R2D2],
            list(_ALL_EPISODES),
        ),
        DroidRecord(
            R2D2,
            "R2-D2",
            "Astromech",
            timedelta(days=1),
            datetime(1977, 1, 1, tzinfo=timezone.utc),
            [LUKE, HAN, LEIA],
            list(_ALL_EPISODES),
        ),
    ]


class HumanRepository:
    def __init__(self, humans: Optional[Sequence[HumanRecord]] = None) -> None:
        seed = _seed_humans() if humans is None else humans
        self._humans: Dict[UUID, HumanRecord] = {human.id: human for human in seed}

    async def get(self, id: UUID) -> Optional[HumanRecord]:
        return self._humans.get(id)

    async def get_many(self, ids: Sequence[UUID]) -> List[Optional[HumanRecord]]:
        return [self._humans.get(id) for id in ids]

    async def list(self) -> List[HumanRecord]:
        return list(self._humans.values())

    async def add(self, human: HumanRecord) -> HumanRecord:
        self._humans[human.id] = human
        return human


class DroidRepository:
    def __init__(self, droids: Optional[Sequence[DroidRecord]] = None) -> None:
        seed = _seed_droids() if droids is None else droids
        self._droids: Dict[UUID, DroidRecord] = {droid.id: droid for droid in seed}

    async def get(self, id: UUID) -> Optional[DroidRecord]:
        return self._droids.get(id)

    async def get_many(self, ids: Sequence[UUID]) -> List[Optional[DroidRecord]]:
        return [self._droids.get(id) for id in ids]

    async def list(self) -> List[DroidRecord]:
        return list(self._droids.values())


__all__ = ["CharacterRecord", "DroidRepository", "HumanRepository"]
