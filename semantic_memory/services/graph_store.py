"""
Per-owner knowledge graph store.

Every owner has an isolated ``{node_id: Node}`` map and each node carries its
own out-edges. Cascading operations (merge, delete) run as two passes: a
read pass that collects every edge to rewrite or remove, then a write pass
that applies the changes.
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..exceptions import AuthorizationError, CapacityError, NotFoundError, ValidationError
from ..models.core import Edge, EdgeKind, Node, NodeType
from ..utils.config import GraphConfig, config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now, parse_timestamp

logger = get_logger(__name__)

# Entity types produced by extraction mapped onto graph node types
ENTITY_TYPE_MAPPING = {
    'person': NodeType.CONTACT,
    'organization': NodeType.ORGANIZATION,
    'location': NodeType.LOCATION,
    'event': NodeType.EVENT,
    'product': NodeType.ENTITY,
    'technology': NodeType.CONCEPT,
    'date': NodeType.EVENT,
    'time': NodeType.EVENT,
}

CONTENT_NODE_CONFIDENCE = 0.8
TOPIC_NODE_CONFIDENCE = 0.7
TOPIC_EDGE_WEIGHT = 0.5


def _check_unit_interval(name: str, value: float) -> float:
    if value is None or not 0.0 <= value <= 1.0:
        raise ValidationError(f'{name} must be between 0 and 1, got {value}')
    return float(value)


def _clamp(weight: float) -> float:
    return max(0.0, min(1.0, weight))


def _event_timestamp(value: Any) -> datetime:
    if value is None:
        return now()
    try:
        return parse_timestamp(value)
    except ValueError as e:
        logger.warning(f'Unreadable event timestamp {value!r}, using current time: {e}')
        return now()


class GraphStore:
    """In-memory knowledge graph partitioned by owner."""

    def __init__(self, graph_config: Optional[GraphConfig] = None):
        """
        Initialize the graph store.

        Args:
            graph_config: GraphConfig instance, uses global config if None
        """
        self.config = graph_config or config.graph
        self._graphs: Dict[str, Dict[str, Node]] = {}
        self._owners: Dict[str, str] = {}

        logger.info(f'Initialized GraphStore with node ceiling {self.config.max_nodes_per_owner} per owner')

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def create_node(self,
                    owner_id: str,
                    node_type: NodeType,
                    label: str,
                    content: str = '',
                    confidence: float = 1.0,
                    properties: Optional[Dict[str, Any]] = None) -> str:
        """
        Create a node in the owner's graph.

        Args:
            owner_id: Owner of the new node
            node_type: One of NodeType
            label: Short display label
            content: Free-text content
            confidence: Confidence score (0.0 to 1.0)
            properties: Optional structured properties

        Returns:
            Id of the created node

        Raises:
            ValidationError: If the owner, type or confidence is invalid
            CapacityError: If the owner's graph is full
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError('Owner ID is required')
        confidence = _check_unit_interval('confidence', confidence)
        try:
            node_type = NodeType(node_type)
        except ValueError:
            raise ValidationError(f'Unknown node type: {node_type}')

        graph = self._graphs.setdefault(owner_id, {})
        if len(graph) >= self.config.max_nodes_per_owner:
            logger.error(f'Owner {owner_id} reached the node ceiling of {self.config.max_nodes_per_owner}')
            raise CapacityError(f'Graph for owner {owner_id} is limited to {self.config.max_nodes_per_owner} nodes')

        timestamp = now()
        node = Node(id=str(uuid.uuid4()),
                    owner_id=owner_id,
                    type=node_type,
                    label=label,
                    content=content,
                    confidence=confidence,
                    created_at=timestamp,
                    updated_at=timestamp,
                    properties=dict(properties or {}))

        graph[node.id] = node
        self._owners[node.id] = owner_id
        logger.debug(f'Created {node_type.value} node {node.id} for owner {owner_id}')
        return node.id

    def get_node(self, owner_id: str, node_id: str) -> Node:
        """
        Fetch a node, enforcing ownership.

        Raises:
            NotFoundError: If the node does not exist
            AuthorizationError: If the node belongs to another owner
        """
        owner = self._owners.get(node_id)
        if owner is None:
            raise NotFoundError(f'Node not found: {node_id}')
        if owner != owner_id:
            logger.warning(f'Owner {owner_id} attempted to access node {node_id} of another owner')
            raise AuthorizationError(f'Node {node_id} does not belong to owner {owner_id}')
        return self._graphs[owner][node_id]

    def update_node(self,
                    owner_id: str,
                    node_id: str,
                    label: Optional[str] = None,
                    content: Optional[str] = None,
                    confidence: Optional[float] = None,
                    properties: Optional[Dict[str, Any]] = None) -> Node:
        """Patch the given fields of a node; omitted fields are left as they are."""
        node = self.get_node(owner_id, node_id)
        if confidence is not None:
            node.confidence = _check_unit_interval('confidence', confidence)
        if label is not None:
            node.label = label
        if content is not None:
            node.content = content
        if properties is not None:
            node.properties = dict(properties)

        node.updated_at = now()
        logger.debug(f'Updated node {node_id}')
        return node

    def list_nodes(self,
                   owner_id: str,
                   node_type: Optional[NodeType] = None,
                   min_confidence: float = 0.0,
                   limit: int = 50) -> List[Node]:
        """List the owner's nodes, optionally filtered by type and minimum confidence."""
        if limit < 1:
            raise ValidationError(f'limit must be at least 1, got {limit}')

        nodes = [
            node for node in self._graphs.get(owner_id, {}).values()
            if (node_type is None or node.type == node_type) and node.confidence >= min_confidence
        ]
        return nodes[:limit]

    def snapshot(self, owner_id: str) -> Dict[str, Node]:
        """Copy of the owner's node map for read-only traversal and scoring."""
        return dict(self._graphs.get(owner_id, {}))

    def node_count(self, owner_id: str) -> int:
        return len(self._graphs.get(owner_id, {}))

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def create_edge(self,
                    owner_id: str,
                    source_id: str,
                    target_id: str,
                    kind: EdgeKind,
                    weight: float,
                    bidirectional: bool = False) -> Edge:
        """
        Create or reinforce an edge between two nodes of the same owner.

        An existing edge is softly reinforced to ``min(1, w + weight * factor)``
        and takes the new kind; otherwise a new edge is appended.

        Args:
            owner_id: Owner of both nodes
            source_id: Source node ID
            target_id: Target node ID
            kind: One of EdgeKind
            weight: Edge weight (0.0 to 1.0)
            bidirectional: Apply the same logic to target -> source

        Returns:
            The source -> target edge

        Raises:
            ValidationError: If weight, kind or endpoints are invalid
            NotFoundError: If either node does not exist
            AuthorizationError: If either node belongs to another owner
        """
        weight = _check_unit_interval('weight', weight)
        try:
            kind = EdgeKind(kind)
        except ValueError:
            raise ValidationError(f'Unknown edge kind: {kind}')
        if source_id == target_id:
            raise ValidationError(f'Self-loop edges are not allowed: {source_id}')

        source = self.get_node(owner_id, source_id)
        target = self.get_node(owner_id, target_id)

        edge = self._reinforce_or_append(source, target_id, kind, weight)
        if bidirectional:
            self._reinforce_or_append(target, source_id, kind, weight)

        logger.debug(f'Edge {source_id} -[{kind.value}]-> {target_id} now has weight {edge.weight:.3f}')
        return edge

    def strengthen_edge(self, owner_id: str, source_id: str, target_id: str, increment: Optional[float] = None) -> Edge:
        """
        Strengthen one out-edge of ``source`` and decay all the others.

        The targeted edge gains ``increment`` (clamped to 1); every other out-edge
        of the source is multiplied by the decay factor.

        Raises:
            ValidationError: If increment is outside [0, 1]
            NotFoundError: If a node or the source -> target edge does not exist
            AuthorizationError: If a node belongs to another owner
        """
        increment = _check_unit_interval('increment',
                                         self.config.strengthen_increment if increment is None else increment)
        source = self.get_node(owner_id, source_id)
        self.get_node(owner_id, target_id)

        strengthened = source.find_edge(target_id)
        if strengthened is None:
            raise NotFoundError(f'No edge from {source_id} to {target_id}')

        for edge in source.edges:
            if edge is strengthened:
                edge.weight = _clamp(edge.weight + increment)
            else:
                edge.weight = _clamp(edge.weight * self.config.decay_factor)

        source.updated_at = now()
        logger.debug(f'Strengthened edge {source_id} -> {target_id} to {strengthened.weight:.3f}')
        return strengthened

    def remove_edge(self, owner_id: str, source_id: str, target_id: str) -> bool:
        """Remove the source -> target edge; returns False when there was none."""
        source = self.get_node(owner_id, source_id)
        remaining = [edge for edge in source.edges if edge.target_node_id != target_id]
        if len(remaining) == len(source.edges):
            return False

        source.edges = remaining
        source.updated_at = now()
        logger.debug(f'Removed edge {source_id} -> {target_id}')
        return True

    def _reinforce_or_append(self, node: Node, target_id: str, kind: EdgeKind, weight: float) -> Edge:
        existing = node.find_edge(target_id)
        if existing is not None:
            existing.weight = _clamp(existing.weight + weight * self.config.reinforcement_factor)
            existing.kind = kind
            edge = existing
        else:
            edge = Edge(target_node_id=target_id, kind=kind, weight=weight)
            node.edges.append(edge)

        node.updated_at = now()
        return edge

    # ------------------------------------------------------------------
    # Cascading operations
    # ------------------------------------------------------------------

    def merge_nodes(self,
                    owner_id: str,
                    source_id: str,
                    target_id: str,
                    merged_content: str,
                    merged_confidence: float) -> Node:
        """
        Merge ``source`` into ``target`` and delete ``source``.

        Edge lists are united by target id with the target's edges winning. Every
        edge in the owner's graph that points at ``source`` is redirected to
        ``target``; where that would duplicate an existing edge, the higher weight
        is kept. Edges that would become self-loops on ``target`` are dropped.

        Args:
            owner_id: Owner of both nodes
            source_id: Node to merge away
            target_id: Node that survives
            merged_content: Content for the surviving node
            merged_confidence: Confidence for the surviving node (0.0 to 1.0)

        Returns:
            The updated target node

        Raises:
            ValidationError: If source and target are the same or confidence is invalid
            NotFoundError: If either node does not exist
            AuthorizationError: If either node belongs to another owner
        """
        merged_confidence = _check_unit_interval('merged_confidence', merged_confidence)
        if source_id == target_id:
            raise ValidationError('Cannot merge a node into itself')

        source = self.get_node(owner_id, source_id)
        target = self.get_node(owner_id, target_id)
        graph = self._graphs[owner_id]

        # Read pass: merged edge list for target and every node that points at source
        merged_edges = [
            Edge(edge.target_node_id, edge.kind, edge.weight) for edge in target.edges if edge.target_node_id != source_id
        ]
        seen_targets = {edge.target_node_id for edge in merged_edges}
        for edge in source.edges:
            if edge.target_node_id in (source_id, target_id) or edge.target_node_id in seen_targets:
                continue
            merged_edges.append(Edge(edge.target_node_id, edge.kind, edge.weight))
            seen_targets.add(edge.target_node_id)

        rewrites = [
            node_id for node_id, node in graph.items()
            if node_id not in (source_id, target_id) and node.find_edge(source_id) is not None
        ]

        # Write pass
        timestamp = now()
        target.edges = merged_edges
        target.content = merged_content
        target.confidence = merged_confidence
        target.properties['merged_from'] = target.properties.get('merged_from', []) + [source_id]
        target.updated_at = timestamp

        for node_id in rewrites:
            self._redirect_edges(graph[node_id], source_id, target_id)
            graph[node_id].updated_at = timestamp

        del graph[source_id]
        del self._owners[source_id]

        logger.info(f'Merged node {source_id} into {target_id}, redirected edges on {len(rewrites)} nodes')
        return target

    def delete_node(self, owner_id: str, node_id: str) -> int:
        """
        Delete a node and every edge in the owner's graph that targets it.

        Returns:
            Number of incoming edges removed

        Raises:
            NotFoundError: If the node does not exist
            AuthorizationError: If the node belongs to another owner
        """
        self.get_node(owner_id, node_id)
        graph = self._graphs[owner_id]

        # Read pass
        affected = [other_id for other_id, other in graph.items() if other_id != node_id and other.find_edge(node_id)]

        # Write pass
        timestamp = now()
        removed = 0
        for other_id in affected:
            other = graph[other_id]
            remaining = [edge for edge in other.edges if edge.target_node_id != node_id]
            removed += len(other.edges) - len(remaining)
            other.edges = remaining
            other.updated_at = timestamp

        del graph[node_id]
        del self._owners[node_id]

        logger.info(f'Deleted node {node_id} and {removed} incoming edges')
        return removed

    def clear_graph(self, owner_id: str, confirm: bool = False) -> int:
        """
        Delete every node of an owner.

        Raises:
            ValidationError: If the clear was not explicitly confirmed
        """
        if not confirm:
            raise ValidationError('Clear must be explicitly confirmed')

        graph = self._graphs.pop(owner_id, {})
        for node_id in graph:
            del self._owners[node_id]

        logger.info(f'Cleared {len(graph)} nodes for owner {owner_id}')
        return len(graph)

    @staticmethod
    def _redirect_edges(node: Node, source_id: str, target_id: str) -> None:
        existing = node.find_edge(target_id)
        retained = []
        for edge in node.edges:
            if edge.target_node_id != source_id:
                retained.append(edge)
            elif existing is None:
                existing = Edge(target_id, edge.kind, edge.weight)
                retained.append(existing)
            else:
                existing.weight = max(existing.weight, edge.weight)
        node.edges = retained

    # ------------------------------------------------------------------
    # Extraction and statistics
    # ------------------------------------------------------------------

    def create_nodes_from_event(self, owner_id: str, event: Dict[str, Any]) -> List[str]:
        """
        Turn an extracted event into graph nodes.

        A content node is created for the page (when a url or title exists), one
        node per extracted entity and one node per topic not already in the
        graph. The content node is linked to its entities (MENTIONED) and topics
        (RELATED_TO). Missing optional fields fall back to neutral defaults.

        Args:
            owner_id: Owner of the nodes
            event: Dict with optional 'url', 'title', 'content', 'entities'
                   ([{'text', 'type', 'confidence'}]), 'topics', 'sentiment', 'timestamp'

        Returns:
            Ids of newly created nodes
        """
        created = []
        content_node_id = None

        if event.get('url') or event.get('title'):
            timestamp = _event_timestamp(event.get('timestamp'))
            content_node_id = self.create_node(owner_id,
                                               NodeType.CONTENT,
                                               label=event.get('title') or 'Content',
                                               content=event.get('title') or event.get('url'),
                                               confidence=CONTENT_NODE_CONFIDENCE,
                                               properties={
                                                   'url': event.get('url'),
                                                   'timestamp': timestamp,
                                                   'sentiment': event.get('sentiment', 0.0),
                                               })
            created.append(content_node_id)

        for entity in event.get('entities') or []:
            text = str(entity.get('text') or '').strip()
            if not text:
                logger.warning('Skipping extracted entity without text')
                continue
            node_type = ENTITY_TYPE_MAPPING.get(str(entity.get('type', '')).lower(), NodeType.ENTITY)
            confidence = _clamp(float(entity.get('confidence', 0.5)))
            entity_id = self.create_node(owner_id, node_type, label=text, content=text, confidence=confidence)
            created.append(entity_id)
            if content_node_id:
                self.create_edge(owner_id, content_node_id, entity_id, EdgeKind.MENTIONED, confidence)

        existing_topics = {node.label: node.id for node in self.list_nodes(owner_id, NodeType.TOPIC, limit=self.config.max_nodes_per_owner)}
        for topic in event.get('topics') or []:
            topic_id = existing_topics.get(topic)
            if topic_id is None:
                topic_id = self.create_node(owner_id, NodeType.TOPIC, label=topic, content=topic, confidence=TOPIC_NODE_CONFIDENCE)
                existing_topics[topic] = topic_id
                created.append(topic_id)
            if content_node_id:
                self.create_edge(owner_id, content_node_id, topic_id, EdgeKind.RELATED_TO, TOPIC_EDGE_WEIGHT)

        logger.debug(f'Created {len(created)} nodes from event for owner {owner_id}')
        return created

    def statistics(self, owner_id: str) -> Dict[str, Any]:
        """Summary statistics for the owner's graph."""
        nodes = list(self._graphs.get(owner_id, {}).values())
        node_count = len(nodes)
        edges = [edge for node in nodes for edge in node.edges]
        edge_count = len(edges)

        max_possible_edges = node_count * (node_count - 1)
        recent_cutoff = now() - timedelta(days=1)

        return {
            'total_nodes': node_count,
            'total_edges': edge_count,
            'density': edge_count / max_possible_edges if max_possible_edges > 0 else 0.0,
            'average_confidence': sum(n.confidence for n in nodes) / node_count if node_count else 0.0,
            'average_edge_weight': sum(e.weight for e in edges) / edge_count if edge_count else 0.0,
            'average_connections_per_node': edge_count / node_count if node_count else 0.0,
            'node_type_distribution': dict(Counter(n.type.value for n in nodes)),
            'edge_kind_distribution': dict(Counter(e.kind.value for e in edges)),
            'recent_nodes_24h': sum(1 for n in nodes if n.created_at >= recent_cutoff),
        }
