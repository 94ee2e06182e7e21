"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from semantic_memory.exceptions import SemanticMemoryError
from semantic_memory.services.memory_service import SemanticMemoryService
from semantic_memory.utils.config import config
from semantic_memory.utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Semantic Memory')
memory_service = SemanticMemoryService()


@mcp.tool()
def search_memories(user_id: str,
                    query_vector: List[float],
                    namespaces: Optional[List[str]] = None,
                    limit: int = 10,
                    min_similarity: float = 0.5,
                    diversify: bool = False) -> List[Dict[str, Any]]:
    """Search a user's stored embeddings by similarity to a query vector.

    Args:
        user_id: User ID
        query_vector: Query embedding
        namespaces: Namespaces the user consented to search (all if omitted)
        limit: Maximum number of results to return (default: 10)
        min_similarity: Minimum cosine similarity (default: 0.5)
        diversify: Re-rank results for diversity with MMR

    Returns:
        List of dicts with record id, summary and scores
    """
    try:
        if not user_id or not user_id.strip():
            raise ToolError('User ID is required')

        options = memory_service.ranker.default_options()
        options.limit = limit
        options.min_similarity = min_similarity
        results = memory_service.search(user_id, query_vector, namespaces=namespaces, options=options, diversify=diversify)

        logger.debug(f'MCP search returned {len(results)} records for user {user_id}')
        return [{
            'id': result.record.id,
            'summary': result.record.content_summary,
            'similarity': result.similarity,
            'weighted_score': result.weighted_score,
        } for result in results]

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP search: {e}')
        raise ToolError(f'Memory search failed: {e}')


@mcp.tool()
def traverse_graph(user_id: str, node_id: str, max_depth: int = 2, min_weight: float = 0.1) -> List[Dict[str, Any]]:
    """Walk a user's knowledge graph breadth-first from a node.

    Returns:
        List of dicts with the reached node, its depth and the edge kinds along the path
    """
    try:
        entries = memory_service.traversal.traverse(user_id, node_id, max_depth=max_depth, min_weight=min_weight)
        return [{
            'node_id': entry.node.id,
            'label': entry.node.label,
            'type': entry.node.type.value,
            'depth': entry.depth,
            'path': [step.kind.value for step in entry.path],
        } for entry in entries]

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP traversal: {e}')
        raise ToolError(f'Graph traversal failed: {e}')


@mcp.tool()
def find_shortest_path(user_id: str, source_id: str, target_id: str, max_depth: int = 5) -> Dict[str, Any]:
    """Fewest-hop path between two nodes of a user's graph."""
    try:
        result = memory_service.traversal.find_shortest_path(user_id, source_id, target_id, max_depth=max_depth)
        return {'found': result.found, 'length': result.length, 'path': [step.node_id for step in result.path]}

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP path search: {e}')
        raise ToolError(f'Path search failed: {e}')


@mcp.tool()
def suggest_connections(user_id: str, node_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Suggest nodes a user's node could be connected to."""
    try:
        suggestions = memory_service.scorer.suggest_connections(user_id, node_id, limit=limit)
        return [{
            'node_id': s.node_id,
            'label': s.label,
            'score': s.score,
            'reason': s.reason
        } for s in suggestions]

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP suggestions: {e}')
        raise ToolError(f'Connection suggestion failed: {e}')


@mcp.tool()
def find_similar_content(user_id: str, node_id: str, limit: int = 10, min_similarity: float = 0.3) -> List[Dict[str, Any]]:
    """Content nodes that share topics, wording or a direct link with a user's content node."""
    try:
        matches = memory_service.scorer.find_similar_content(user_id, node_id, limit=limit,
                                                             min_similarity=min_similarity)
        return [{
            'node_id': m.node_id,
            'label': m.label,
            'url': m.url,
            'score': m.score,
            'shared_topics': m.shared_topics,
            'relationship': m.relationship
        } for m in matches]

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP content similarity: {e}')
        raise ToolError(f'Similar content lookup failed: {e}')


@mcp.tool()
def rank_central_nodes(user_id: str, node_type: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
    """Most connected nodes of a user's graph by weighted degree centrality."""
    try:
        entries = memory_service.traversal.rank_by_centrality(user_id, node_type=node_type, limit=limit)
        return [{
            'node_id': entry.node.id,
            'label': entry.node.label,
            'centrality': entry.centrality
        } for entry in entries]

    except SemanticMemoryError as e:
        logger.error(f'Semantic memory error in MCP centrality ranking: {e}')
        raise ToolError(f'Centrality ranking failed: {e}')


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
