from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Article:
    title: str
    link: str
    source: str
    date: str = ""
    snippet: str = ""
    thumbnail: Optional[str] = None


@dataclass
class Subject:
    label: str
    titlu_ro: str = ""
    sumar_ro: str = ""
    # selection order, not time order
    items: list[Article] = field(default_factory=list)
    thumbnail: Optional[str] = None


@dataclass
class EntityBucket:
    name: str
    subjects: list[Subject] = field(default_factory=list)


@dataclass
class Report:
    generated_at: str
    timezone: str
    entities: list[EntityBucket] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "timezone": self.timezone,
            "entities": [
                {"name": e.name, "subjects": [subject_to_dict(s) for s in e.subjects]}
                for e in self.entities
            ],
        }


def subject_to_dict(s: Subject) -> dict[str, Any]:
    return {
        "label": s.label,
        "titlu_ro": s.titlu_ro,
        "sumar_ro": s.sumar_ro,
        "items": [asdict(a) for a in s.items],
        "thumbnail": s.thumbnail,
    }


def pick_thumbnail(items: list[Article]) -> Optional[str]:
    for a in items:
        if a.thumbnail:
            return a.thumbnail
    return None
