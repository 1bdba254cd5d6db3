"""Entity relationship graph.

Undirected adjacency between names, built from:
  owner        entity -> its owner ("pc" means the player character)
  location     entity -> its location
  mentions     entity -> any other entity named in its description
  skills       entity -> each skill name it lists
Endpoints need not be known entities; the scorer only looks up names.
"""

from __future__ import annotations

from collections.abc import Mapping

from lorekeeper.models import EntityBase, split_skills

EntityGraph = dict[str, set[str]]


def build_graph(entities: Mapping[str, EntityBase], player_name: str | None = None) -> EntityGraph:
    graph: EntityGraph = {name: set() for name in entities}

    def link(a: str, b: str) -> None:
        if not a or not b or a == b:
            return
        graph.setdefault(a, set()).add(b)
        graph.setdefault(b, set()).add(a)

    lowered = {name: name.lower() for name in entities}
    for name, entity in entities.items():
        owner = entity.owner
        if owner == "pc" and player_name:
            owner = player_name
        if owner:
            link(name, owner)
        if entity.location:
            link(name, entity.location)

        description = (entity.description or "").lower()
        if description:
            for other, other_lower in lowered.items():
                if other != name and other_lower and other_lower in description:
                    link(name, other)

        for skill in split_skills(getattr(entity, "skills", None)):
            link(name, skill)

    return graph


def neighbors(graph: EntityGraph, name: str) -> set[str]:
    return graph.get(name, set())
