"""The four hierarchy levels: League → Week → Section → Resource.

Each level is its own record type joined to its parent by an explicit id
field; there is no shared base class.  Content management owns these
records; the progress engine only reads them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

NodeKind = Literal["league", "week", "section", "resource"]

# Parent kind for every non-root level.
PARENT_KIND: dict[str, NodeKind] = {
    "week": "league",
    "section": "week",
    "resource": "section",
}


@dataclass(frozen=True, slots=True)
class NodeRef:
    """A hierarchy node identified by kind and id."""

    kind: NodeKind
    id: UUID


@dataclass(frozen=True, slots=True)
class League:
    id: UUID
    name: str
    description: str = ""

    @staticmethod
    def new(*, name: str, description: str = "") -> League:
        return League(id=uuid4(), name=name, description=description)


@dataclass(frozen=True, slots=True)
class Week:
    id: UUID
    league_id: UUID
    order: int
    name: str

    @staticmethod
    def new(*, league_id: UUID, order: int, name: str) -> Week:
        return Week(id=uuid4(), league_id=league_id, order=order, name=name)


@dataclass(frozen=True, slots=True)
class Section:
    id: UUID
    week_id: UUID
    order: int
    name: str

    @staticmethod
    def new(*, week_id: UUID, order: int, name: str) -> Section:
        return Section(id=uuid4(), week_id=week_id, order=order, name=name)


@dataclass(frozen=True, slots=True)
class Resource:
    id: UUID
    section_id: UUID
    order: int
    title: str
    type: str = "article"  # article|video|blog|external
    url: str = ""

    @staticmethod
    def new(
        *,
        section_id: UUID,
        order: int,
        title: str,
        type: str = "article",
        url: str = "",
    ) -> Resource:
        return Resource(
            id=uuid4(),
            section_id=section_id,
            order=order,
            title=title,
            type=type,
            url=url,
        )
