"""Per-request data loaders batching repository lookups by id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from strawberry.dataloader import DataLoader

from apiforge.models import DroidRecord, HumanRecord
from apiforge.repositories import CharacterRecord, DroidRepository, HumanRepository


@dataclass
class Loaders:
    human: DataLoader[UUID, Optional[HumanRecord]]
    droid: DataLoader[UUID, Optional[DroidRecord]]

    @classmethod
    def create(cls, humans: HumanRepository, droids: DroidRepository) -> "Loaders":
        return cls(
            human=DataLoader(load_fn=humans.get_many),
            droid=DataLoader(load_fn=droids.get_many),
        )

    async def load_characters(self, ids: Sequence[UUID]) -> List[CharacterRecord]:
        """Load characters of either kind, preserving order and skipping unknown ids."""
        ids = list(ids)
        humans = await self.human.load_many(ids)
        droids = await self.droid.load_many(ids)
        return [human or droid for human, droid in zip(humans, droids) if human or droid]


__all__ = ["Loaders"]
