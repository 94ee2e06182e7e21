"""
Breadth-first graph algorithms over a single owner's knowledge graph.
"""

from collections import deque
from typing import Dict, Iterable, List, Optional

from ..exceptions import ValidationError
from ..models.core import (CentralityEntry, EdgeKind, Node, NodeType, PathResult, PathStep, Subgraph, SubgraphEdge,
                           TraversalEntry)
from ..utils.logging_config import get_logger
from .graph_store import GraphStore

logger = get_logger(__name__)


def _check_weight(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f'{name} must be between 0 and 1, got {value}')


class GraphTraversal:
    """Traversal, path finding, subgraph extraction and centrality.

    All algorithms work on a snapshot of the owner's node map, so they never
    observe a partially applied mutation.
    """

    def __init__(self, graph_store: GraphStore):
        self.graph_store = graph_store
        logger.debug('Initialized GraphTraversal')

    def traverse(self,
                 owner_id: str,
                 start_id: str,
                 max_depth: int = 2,
                 edge_kinds: Optional[Iterable[EdgeKind]] = None,
                 min_weight: float = 0.1) -> List[TraversalEntry]:
        """
        Breadth-first walk from ``start_id``.

        Args:
            owner_id: Owner of the graph
            start_id: Node to start from (never part of the result)
            max_depth: Maximum number of hops
            edge_kinds: Only follow edges of these kinds (all kinds if None)
            min_weight: Skip edges lighter than this

        Returns:
            Reached nodes in BFS order with their depth and the path taken

        Raises:
            ValidationError: If max_depth is negative or min_weight is outside [0, 1]
            NotFoundError: If the start node does not exist
            AuthorizationError: If the start node belongs to another owner
        """
        if max_depth < 0:
            raise ValidationError(f'max_depth must be non-negative, got {max_depth}')
        _check_weight('min_weight', min_weight)
        self.graph_store.get_node(owner_id, start_id)

        try:
            kinds = {EdgeKind(kind) for kind in edge_kinds} if edge_kinds else None
        except ValueError:
            raise ValidationError(f'Unknown edge kind in filter: {edge_kinds}')
        graph = self.graph_store.snapshot(owner_id)

        results = []
        visited = {start_id}
        queue = deque([(start_id, 0, [])])
        while queue:
            node_id, depth, path = queue.popleft()
            if depth >= max_depth:
                continue

            for edge in graph[node_id].edges:
                if edge.weight < min_weight or (kinds and edge.kind not in kinds):
                    continue
                if edge.target_node_id in visited or edge.target_node_id not in graph:
                    continue

                visited.add(edge.target_node_id)
                next_path = path + [PathStep(edge.target_node_id, edge.kind, edge.weight)]
                results.append(TraversalEntry(graph[edge.target_node_id], depth + 1, next_path))
                queue.append((edge.target_node_id, depth + 1, next_path))

        logger.debug(f'Traversal from {start_id} reached {len(results)} nodes within depth {max_depth}')
        return results

    def find_shortest_path(self, owner_id: str, source_id: str, target_id: str, max_depth: int = 5) -> PathResult:
        """
        Fewest-hop path between two nodes, ignoring edge weights.

        Returns:
            PathResult with ``found=False`` and ``length=-1`` when no path exists
            within ``max_depth`` hops
        """
        if max_depth < 0:
            raise ValidationError(f'max_depth must be non-negative, got {max_depth}')
        self.graph_store.get_node(owner_id, source_id)
        self.graph_store.get_node(owner_id, target_id)

        graph = self.graph_store.snapshot(owner_id)
        visited = {source_id}
        queue = deque([(source_id, [])])
        while queue:
            node_id, path = queue.popleft()
            if node_id == target_id:
                return PathResult(found=True, path=path, length=len(path))
            if len(path) >= max_depth:
                continue

            for edge in graph[node_id].edges:
                if edge.target_node_id in visited or edge.target_node_id not in graph:
                    continue
                visited.add(edge.target_node_id)
                queue.append((edge.target_node_id, path + [PathStep(edge.target_node_id, edge.kind, edge.weight)]))

        return PathResult(found=False)

    def extract_subgraph(self, owner_id: str, seed_id: str, min_weight: float = 0.3, max_nodes: int = 50) -> Subgraph:
        """
        Grow a subgraph breadth-first from ``seed_id`` along edges of at least
        ``min_weight``, stopping at ``max_nodes`` nodes.

        Only edges between included nodes are returned.
        """
        if max_nodes < 1:
            raise ValidationError(f'max_nodes must be at least 1, got {max_nodes}')
        _check_weight('min_weight', min_weight)
        self.graph_store.get_node(owner_id, seed_id)

        graph = self.graph_store.snapshot(owner_id)
        included: Dict[str, Node] = {seed_id: graph[seed_id]}
        queue = deque([seed_id])
        while queue and len(included) < max_nodes:
            node_id = queue.popleft()
            for edge in graph[node_id].edges:
                if len(included) >= max_nodes:
                    break
                if edge.weight < min_weight or edge.target_node_id in included or edge.target_node_id not in graph:
                    continue
                included[edge.target_node_id] = graph[edge.target_node_id]
                queue.append(edge.target_node_id)

        edges = [
            SubgraphEdge(node.id, edge.target_node_id, edge.kind, edge.weight)
            for node in included.values()
            for edge in node.edges
            if edge.weight >= min_weight and edge.target_node_id in included
        ]
        return Subgraph(nodes=list(included.values()), edges=edges)

    def rank_by_centrality(self,
                           owner_id: str,
                           node_type: Optional[NodeType] = None,
                           limit: int = 10) -> List[CentralityEntry]:
        """
        Rank the owner's nodes by weighted degree centrality.

        In-degrees are counted over the whole owner graph before the type filter
        is applied, so a filtered node still gets credit for edges from other types.
        """
        if limit < 1:
            raise ValidationError(f'limit must be at least 1, got {limit}')
        if node_type is not None:
            try:
                node_type = NodeType(node_type)
            except ValueError:
                raise ValidationError(f'Unknown node type: {node_type}')

        graph = self.graph_store.snapshot(owner_id)
        in_degree: Dict[str, int] = {}
        weighted_in: Dict[str, float] = {}
        for node in graph.values():
            for edge in node.edges:
                in_degree[edge.target_node_id] = in_degree.get(edge.target_node_id, 0) + 1
                weighted_in[edge.target_node_id] = weighted_in.get(edge.target_node_id, 0.0) + edge.weight

        entries = []
        for node in graph.values():
            if node_type is not None and node.type != node_type:
                continue
            weighted_out = sum(edge.weight for edge in node.edges)
            weighted_in_degree = weighted_in.get(node.id, 0.0)
            entries.append(
                CentralityEntry(node=node,
                                out_degree=len(node.edges),
                                in_degree=in_degree.get(node.id, 0),
                                weighted_out_degree=weighted_out,
                                weighted_in_degree=weighted_in_degree,
                                centrality=(weighted_out + weighted_in_degree) / 2))

        entries.sort(key=lambda entry: entry.centrality, reverse=True)
        return entries[:limit]
