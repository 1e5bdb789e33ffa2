#!/usr/bin/env python3
"""Graph assembly: id allocation and node/relationship records.

Node and relationship ids come from two independent counters that start at
0 and only ever grow, so ids are never reused within a run even when nodes
are removed again by skip or delete steps.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from xml_graph.models.models import BuilderNode, RelationshipDefinition, SchemaJson
from xml_graph.services.domain.xml_to_graph.elements import ElementArena

logger = logging.getLogger(__name__)

DEFAULT_RELATIONSHIP_TYPE = "contains"


@dataclass
class GraphNode:
    id: int
    labels: list[str]
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.labels[0] if self.labels else ""

    def to_record(self) -> dict[str, Any]:
        return {"type": "node", "id": self.id, "labels": list(self.labels), "properties": dict(self.properties)}


@dataclass
class GraphRelationship:
    id: int
    label: str
    start: int
    end: int
    properties: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "type": "relationship",
            "id": self.id,
            "label": self.label,
            "start": self.start,
            "end": self.end,
            "properties": dict(self.properties),
        }


class GraphAssembler:
    """Accumulates the nodes and relationships of one run in creation order."""

    def __init__(
        self,
        relationships: list[RelationshipDefinition] | None = None,
        schema: SchemaJson | None = None,
    ):
        self.relationships = list(relationships or [])
        self.schema = schema or SchemaJson()
        self.nodes: list[GraphNode] = []
        self.rels: list[GraphRelationship] = []
        self._node_counter = 0
        self._rel_counter = 0
        self._nodes_by_id: dict[int, GraphNode] = {}
        self._builder_of: dict[int, str] = {}  # node id -> BuilderNode id
        self._definitions_by_type: dict[str, RelationshipDefinition] = {}
        for definition in self.relationships:
            self._definitions_by_type.setdefault(definition.type, definition)

    # Labels and properties

    def labels_for(self, label: str, extra_labels: list[str] | None = None) -> list[str]:
        """Primary label, then schema labels, then the schema domain, then extras."""
        labels = [label]
        schema_node = self.schema.nodes.get(label)
        if schema_node is not None:
            labels.extend(schema_node.labels)
            if schema_node.domain:
                labels.append(schema_node.domain)
        labels.extend(extra_labels or [])
        # Keep first occurrence order, drop duplicates and blanks
        return [lb for i, lb in enumerate(labels) if lb and lb not in labels[:i]]

    @staticmethod
    def builder_defaults(builder: BuilderNode) -> dict[str, Any]:
        return {p.key: p.default_value for p in builder.properties if p.default_value is not None}

    # Nodes

    def create_node(
        self,
        label: str,
        properties: dict[str, Any] | None = None,
        extra_labels: list[str] | None = None,
        builder_id: str | None = None,
        use_schema: bool = True,
    ) -> GraphNode:
        """Append a node; ``use_schema=False`` keeps exactly ``[label] + extra_labels``."""
        if use_schema:
            labels = self.labels_for(label, extra_labels)
        else:
            labels = [lb for lb in [label, *(extra_labels or [])] if lb]
        node = GraphNode(id=self._node_counter, labels=labels, properties=dict(properties or {}))
        self._node_counter += 1
        self.nodes.append(node)
        self._nodes_by_id[node.id] = node
        if builder_id is not None:
            self._builder_of[node.id] = builder_id
        logger.debug(f"Created node {node.id} {node.labels}")
        return node

    def create_node_for_element(
        self,
        builder: BuilderNode,
        arena: ElementArena,
        index: int,
        label: str | None = None,
    ) -> GraphNode:
        """Node from BuilderNode defaults overlaid with the element's attributes.

        An explicit ``label`` replaces the BuilderNode label and the schema labels.
        """
        properties = self.builder_defaults(builder)
        properties.update(arena.attributes(index))
        if label:
            return self.create_node(label, properties, builder_id=builder.id, use_schema=False)
        return self.create_node(builder.label, properties, builder_id=builder.id)

    def get_node(self, node_id: int | None) -> GraphNode | None:
        if node_id is None:
            return None
        return self._nodes_by_id.get(node_id)

    def has_node(self, node_id: int | None) -> bool:
        return node_id is not None and node_id in self._nodes_by_id

    def builder_id_of(self, node_id: int) -> str | None:
        return self._builder_of.get(node_id)

    def remove_node(self, node_id: int) -> bool:
        """Remove a node and every relationship that touches it."""
        node = self._nodes_by_id.pop(node_id, None)
        if node is None:
            return False
        self.nodes = [n for n in self.nodes if n.id != node_id]
        before = len(self.rels)
        self.rels = [r for r in self.rels if r.start != node_id and r.end != node_id]
        self._builder_of.pop(node_id, None)
        logger.debug(f"Removed node {node_id} and {before - len(self.rels)} incident relationships")
        return True

    def absorb_node(self, absorbed_id: int, into_id: int) -> bool:
        """Point the relationships of ``absorbed_id`` at ``into_id`` and drop the absorbed node."""
        if absorbed_id == into_id or absorbed_id not in self._nodes_by_id:
            return False
        for rel in self.rels:
            if rel.start == absorbed_id:
                rel.start = into_id
            if rel.end == absorbed_id:
                rel.end = into_id
        return self.remove_node(absorbed_id)

    def find_nodes_by_label(self, label: str) -> list[GraphNode]:
        return [n for n in self.nodes if n.label == label]

    def get_relationship(self, rel_id: int | None) -> GraphRelationship | None:
        if rel_id is None:
            return None
        return next((r for r in self.rels if r.id == rel_id), None)

    def find_node_by_identifier(self, identifier: str | None) -> GraphNode | None:
        """First node whose ``id``, ``xml:id`` or ``_id`` property equals ``identifier``."""
        if not identifier:
            return None
        wanted = identifier[1:] if identifier.startswith("#") else identifier
        for node in self.nodes:
            for key in ("id", "xml:id", "_id"):
                value = node.properties.get(key)
                if value is not None and str(value) == wanted:
                    return node
        return None

    # Relationships

    def resolve_relationship_type(self, parent_node_id: int | None, child_builder_id: str | None) -> str:
        """Relationship type used to link a synthesized node to its parent.

        Order: a definition whose from/to match the two BuilderNodes, the
        ``contains`` definition, the first definition, literal ``contains``.
        """
        parent_builder_id = self._builder_of.get(parent_node_id) if parent_node_id is not None else None
        if parent_builder_id and child_builder_id:
            for definition in self.relationships:
                if definition.from_node == parent_builder_id and definition.to_node == child_builder_id:
                    return definition.type
        if DEFAULT_RELATIONSHIP_TYPE in self._definitions_by_type:
            return DEFAULT_RELATIONSHIP_TYPE
        if self.relationships:
            return self.relationships[0].type
        return DEFAULT_RELATIONSHIP_TYPE

    def is_known_relationship_type(self, rel_type: str) -> bool:
        return rel_type in self._definitions_by_type or rel_type in self.schema.relations

    def create_relationship(
        self,
        start: int,
        end: int,
        rel_type: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> GraphRelationship:
        """Append a relationship; unknown types are created as given.

        Defaults declared on the matching RelationshipDefinition are applied
        first and overridden by ``properties``.
        """
        label = rel_type or DEFAULT_RELATIONSHIP_TYPE
        merged: dict[str, Any] = {}
        definition = self._definitions_by_type.get(label)
        if definition is not None:
            merged.update({p.key: p.default_value for p in definition.properties if p.default_value is not None})
        merged.update(properties or {})
        rel = GraphRelationship(id=self._rel_counter, label=label, start=start, end=end, properties=merged)
        self._rel_counter += 1
        self.rels.append(rel)
        return rel

    def relationships_of(self, node_id: int) -> list[GraphRelationship]:
        return [r for r in self.rels if r.start == node_id or r.end == node_id]

    def remove_relationships(self, predicate) -> int:
        before = len(self.rels)
        self.rels = [r for r in self.rels if not predicate(r)]
        return before - len(self.rels)

    # Output

    def to_records(self) -> list[dict[str, Any]]:
        """Nodes in creation order followed by relationships in creation order."""
        return [n.to_record() for n in self.nodes] + [r.to_record() for r in self.rels]
