"""
Relationship strength, connection suggestions, content similarity, topic
clusters and edge analytics.
"""

from collections import defaultdict
from typing import Any, Dict, List

from ..exceptions import ValidationError
from ..models.core import (ConnectionSuggestion, EdgeKind, Node, NodeType, RelationshipStrength, SimilarContent,
                           TopicCluster)
from ..utils.logging_config import get_logger
from .graph_store import GraphStore

logger = get_logger(__name__)

DIRECT_WEIGHT = 0.4
REVERSE_WEIGHT = 0.3
JACCARD_WEIGHT = 0.3
SAME_TYPE_SCORE = 0.3
HUB_THRESHOLD = 5
TOPIC_OVERLAP_WEIGHT = 0.4
WORD_OVERLAP_WEIGHT = 0.3
LINK_BONUS_WEIGHT = 0.3

TOPIC_EDGE_KINDS = (EdgeKind.RELATED_TO, EdgeKind.PART_OF)
CONTENT_RELATIONSHIPS = {
    EdgeKind.SIMILAR_TO: 'similar',
    EdgeKind.PRECEDES: 'prerequisite',
    EdgeKind.FOLLOWS: 'followup',
}


def jaccard(a: set, b: set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def overlap(a: set, b: set) -> float:
    """Shared items relative to the smaller of the two sets."""
    return len(a & b) / max(1, min(len(a), len(b)))


class RelationshipScorer:
    """Scores how strongly two nodes of one owner are related."""

    def __init__(self, graph_store: GraphStore):
        self.graph_store = graph_store
        logger.debug('Initialized RelationshipScorer')

    def strength(self, owner_id: str, source_id: str, target_id: str) -> RelationshipStrength:
        """
        Combined relationship strength of ``source`` towards ``target``.

        ``0.4 * direct + 0.3 * reverse + 0.3 * jaccard`` where direct and reverse
        are the edge weights in each direction (0 when absent) and jaccard is
        taken over the two nodes' out-neighbor sets.

        Raises:
            NotFoundError: If either node does not exist
            AuthorizationError: If either node belongs to another owner
        """
        source = self.graph_store.get_node(owner_id, source_id)
        target = self.graph_store.get_node(owner_id, target_id)

        direct = source.find_edge(target_id)
        reverse = target.find_edge(source_id)
        source_neighbors = source.neighbor_ids()
        target_neighbors = target.neighbor_ids()

        direct_weight = direct.weight if direct else 0.0
        reverse_weight = reverse.weight if reverse else 0.0
        similarity = jaccard(source_neighbors, target_neighbors)

        return RelationshipStrength(direct_weight=direct_weight,
                                    reverse_weight=reverse_weight,
                                    jaccard_similarity=similarity,
                                    common_neighbors=len(source_neighbors & target_neighbors),
                                    total_strength=(DIRECT_WEIGHT * direct_weight + REVERSE_WEIGHT * reverse_weight +
                                                    JACCARD_WEIGHT * similarity),
                                    kind=direct.kind if direct else None)

    def suggest_connections(self, owner_id: str, node_id: str, limit: int = 10) -> List[ConnectionSuggestion]:
        """
        Suggest nodes ``node_id`` is not yet connected to.

        Candidates sharing out-neighbors are scored ``shared / candidate out-degree``;
        candidates of the same type without shared neighbors get a flat 0.3.

        Args:
            owner_id: Owner of the graph
            node_id: Node to suggest connections for
            limit: Maximum number of suggestions

        Returns:
            Suggestions sorted by descending score
        """
        if limit < 1:
            raise ValidationError(f'limit must be at least 1, got {limit}')
        node = self.graph_store.get_node(owner_id, node_id)
        neighbors = node.neighbor_ids()

        suggestions = []
        for candidate in self.graph_store.snapshot(owner_id).values():
            if candidate.id == node_id or candidate.id in neighbors:
                continue

            candidate_neighbors = candidate.neighbor_ids()
            shared = len(neighbors & candidate_neighbors)
            if shared > 0:
                suggestions.append(
                    ConnectionSuggestion(candidate.id, candidate.label, shared / len(candidate_neighbors),
                                         f'{shared} shared connections'))
            elif candidate.type == node.type:
                suggestions.append(
                    ConnectionSuggestion(candidate.id, candidate.label, SAME_TYPE_SCORE,
                                         f'Same type: {candidate.type.value}'))

        suggestions.sort(key=lambda s: s.score, reverse=True)
        logger.debug(f'Found {len(suggestions)} connection candidates for node {node_id}')
        return suggestions[:limit]

    def relationship_analytics(self, owner_id: str) -> Dict[str, Any]:
        """Edge kind distribution, average weight per kind, isolated nodes and hubs."""
        graph = self.graph_store.snapshot(owner_id)

        kind_counts: Dict[str, int] = defaultdict(int)
        kind_weights: Dict[str, float] = defaultdict(float)
        targeted = set()
        for node in graph.values():
            for edge in node.edges:
                kind_counts[edge.kind.value] += 1
                kind_weights[edge.kind.value] += edge.weight
                targeted.add(edge.target_node_id)

        hubs = [
            {'node_id': node.id, 'label': node.label, 'connections': len(node.edges)}
            for node in graph.values() if len(node.edges) > HUB_THRESHOLD
        ]
        hubs.sort(key=lambda hub: hub['connections'], reverse=True)

        return {
            'total_edges': sum(kind_counts.values()),
            'edge_kind_distribution': dict(kind_counts),
            'average_weight_by_kind': {kind: kind_weights[kind] / count for kind, count in kind_counts.items()},
            'isolated_nodes': [node.id for node in graph.values() if not node.edges and node.id not in targeted],
            'hub_nodes': hubs,
        }

    def find_similar_content(self,
                             owner_id: str,
                             node_id: str,
                             limit: int = 10,
                             min_similarity: float = 0.3) -> List[SimilarContent]:
        """
        Content and entity nodes that resemble ``node_id``.

        The score is ``0.4 * topic overlap + 0.3 * word overlap + 0.3 * link weight``.
        Topics are the labels of RELATED_TO / PART_OF targets, words come from the
        node content, both overlaps are taken relative to the smaller set, and the
        link weight is that of a direct edge from ``node_id`` to the candidate.

        Args:
            owner_id: Owner of the graph
            node_id: Node to compare against
            limit: Maximum number of results
            min_similarity: Lowest score kept

        Returns:
            Matches sorted by descending score
        """
        if limit < 1:
            raise ValidationError(f'limit must be at least 1, got {limit}')
        source = self.graph_store.get_node(owner_id, node_id)
        graph = self.graph_store.snapshot(owner_id)

        source_topics = _topic_labels(source, graph)
        source_words = _words(source)

        matches = []
        for candidate in graph.values():
            if candidate.id == node_id or candidate.type not in (NodeType.CONTENT, NodeType.ENTITY):
                continue

            candidate_topics = _topic_labels(candidate, graph)
            link = source.find_edge(candidate.id)
            score = (TOPIC_OVERLAP_WEIGHT * overlap(source_topics, candidate_topics) +
                     WORD_OVERLAP_WEIGHT * overlap(source_words, _words(candidate)) +
                     (LINK_BONUS_WEIGHT * link.weight if link else 0.0))
            if score < min_similarity:
                continue

            matches.append(
                SimilarContent(node_id=candidate.id,
                               label=candidate.label,
                               score=score,
                               shared_topics=sorted(source_topics & candidate_topics),
                               relationship=CONTENT_RELATIONSHIPS.get(link.kind, 'related') if link else 'related',
                               url=candidate.properties.get('url')))

        matches.sort(key=lambda match: match.score, reverse=True)
        logger.debug(f'Found {len(matches)} similar content nodes for node {node_id}')
        return matches[:limit]

    def build_topic_clusters(self, owner_id: str, min_cluster_size: int = 2) -> List[TopicCluster]:
        """
        Group topics that are linked from the same content.

        Topics are visited in creation order. Each unassigned topic seeds a
        cluster and pulls in every other unassigned topic that shares at least
        one RELATED_TO source with it.

        Args:
            owner_id: Owner of the graph
            min_cluster_size: Smallest number of topics a cluster must hold

        Returns:
            Clusters sorted by the number of content nodes linked to their seed topic
        """
        if min_cluster_size < 1:
            raise ValidationError(f'min_cluster_size must be at least 1, got {min_cluster_size}')
        graph = self.graph_store.snapshot(owner_id)

        sources: Dict[str, set] = defaultdict(set)
        for node in graph.values():
            for edge in node.edges:
                if edge.kind == EdgeKind.RELATED_TO:
                    sources[edge.target_node_id].add(node.id)

        topics = sorted((node for node in graph.values() if node.type == NodeType.TOPIC), key=lambda n: n.created_at)
        assigned = set()
        clusters = []
        for seed in topics:
            if seed.id in assigned:
                continue
            assigned.add(seed.id)
            members = [seed]
            for other in topics:
                if other.id not in assigned and sources[seed.id] & sources[other.id]:
                    members.append(other)
                    assigned.add(other.id)

            if len(members) >= min_cluster_size:
                clusters.append(
                    TopicCluster(topics=[member.label for member in members],
                                 content_count=len(sources[seed.id]),
                                 average_confidence=sum(m.confidence for m in members) / len(members)))

        clusters.sort(key=lambda cluster: cluster.content_count, reverse=True)
        logger.debug(f'Built {len(clusters)} topic clusters for owner {owner_id}')
        return clusters


def _topic_labels(node: Node, graph: Dict[str, Node]) -> set:
    return {
        graph[edge.target_node_id].label
        for edge in node.edges
        if edge.kind in TOPIC_EDGE_KINDS and edge.target_node_id in graph
    }


def _words(node: Node) -> set:
    return set((node.content or node.label).lower().split())
