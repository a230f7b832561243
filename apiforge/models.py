"""Domain records for the sample Star Wars data set."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID


class Episode(str, Enum):
    NEWHOPE = "NEWHOPE"
    EMPIRE = "EMPIRE"
    JEDI = "JEDI"


@dataclass
class HumanRecord:
    id: UUID
    name: str
    home_planet: Optional[str] = None
    date_of_birth: Optional[date] = None
    friends: List[UUID] = field(default_factory=list)
    appears_in: List[Episode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible form used for subscription messages."""
        data = asdict(self)
        data["id"] = str(self.id)
        data["date_of_birth"] = self.date_of_birth.isoformat() if self.date_of_birth else None
        data["friends"] = [str(friend) for friend in self.friends]
        data["appears_in"] = [episode.value for episode in self.appears_in]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HumanRecord":
        date_of_birth = data.get("date_of_birth")
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            home_planet=data.get("home_planet"),
            date_of_birth=date.fromisoformat(date_of_birth) if date_of_birth else None,
            friends=[UUID(friend) for friend in data.get("friends", [])],
            appears_in=[Episode(episode) for episode in data.get("appears_in", [])],
        )


@dataclass
class DroidRecord:
    id: UUID
    name: str
    primary_function: Optional[str] = None
    charge_period: timedelta = timedelta(hours=8)
    manufactured: Optional[datetime] = None
    friends: List[UUID] = field(default_factory=list)
    appears_in: List[Episode] = field(default_factory=list)


__all__ = ["DroidRecord", "Episode", "HumanRecord"]
