"""
Semantic memory service combining the graph, embedding storage, fusion and ranking.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ValidationError
from ..models.core import ContentType, EmbeddingRecord, ModalityVector, RankedResult
from ..utils.logging_config import get_logger
from .embedding_fusion import EmbeddingFusion
from .embedding_store import EmbeddingStore
from .graph_store import GraphStore
from .graph_traversal import GraphTraversal
from .relationship_scorer import RelationshipScorer
from .similarity_ranker import SearchOptions, SimilarityRanker

logger = get_logger(__name__)


class SemanticMemoryService:
    """Unified entry point for graph context, fused embeddings and vector search."""

    def __init__(self,
                 graph_store: Optional[GraphStore] = None,
                 embedding_store: Optional[EmbeddingStore] = None,
                 fusion: Optional[EmbeddingFusion] = None,
                 ranker: Optional[SimilarityRanker] = None):
        """Initialize the service, creating any collaborator not supplied."""
        self.graph = graph_store or GraphStore()
        self.embeddings = embedding_store or EmbeddingStore()
        self.fusion = fusion or EmbeddingFusion()
        self.ranker = ranker or SimilarityRanker()
        self.traversal = GraphTraversal(self.graph)
        self.scorer = RelationshipScorer(self.graph)

        logger.info('Initialized SemanticMemoryService')

    def search(self,
               owner_id: str,
               query_vector: Sequence[float],
               namespaces: Optional[Sequence[str]] = None,
               content_types: Optional[Sequence[ContentType]] = None,
               domains: Optional[Sequence[str]] = None,
               tags: Optional[Sequence[str]] = None,
               language: Optional[str] = None,
               exclude_ids: Optional[Sequence[str]] = None,
               options: Optional[SearchOptions] = None,
               diversify: bool = False,
               mmr_lambda: Optional[float] = None,
               now: Optional[datetime] = None) -> List[RankedResult]:
        """Search an owner's embeddings.

        Args:
            owner_id: Owner whose records are searched
            query_vector: Query embedding
            namespaces: Allowed namespaces (all when None)
            content_types: Allowed content types (all when None or empty)
            domains: Allowed domains (all when None or empty)
            tags: Records must carry at least one of these tags
            language: Required language
            exclude_ids: Record ids to leave out
            options: Ranking options
            diversify: Re-rank the results with MMR
            mmr_lambda: MMR trade-off, config default if None
            now: Reference time for recency decay

        Returns:
            Ranked results
        """
        candidates = self._filter_candidates(owner_id, namespaces, content_types, domains, tags, language, exclude_ids)
        results = self.ranker.rank(query_vector, candidates, options, now)
        if diversify and results:
            results = self.ranker.mmr_rerank(results, mmr_lambda, limit=len(results))

        logger.debug(f'Search for owner {owner_id} ranked {len(results)} of {len(candidates)} candidates')
        return results

    def cluster_search(self,
                       owner_id: str,
                       query_vectors: Sequence[Sequence[float]],
                       namespaces: Optional[Sequence[str]] = None,
                       options: Optional[SearchOptions] = None,
                       now: Optional[datetime] = None) -> List[RankedResult]:
        """Search with several query vectors at once, favoring records close to more than one."""
        candidates = self._filter_candidates(owner_id, namespaces)
        return self.ranker.cluster_rank(query_vectors, candidates, options, now)

    def find_related(self,
                     owner_id: str,
                     record_id: str,
                     limit: int = 10,
                     min_similarity: float = 0.7,
                     now: Optional[datetime] = None) -> List[RankedResult]:
        """Records in the same namespace that are similar to ``record_id``."""
        record = self.embeddings.get(owner_id, record_id)
        candidates = self._filter_candidates(owner_id, namespaces=[record.namespace])
        return self.ranker.find_related(record, candidates, limit, min_similarity, now)

    def fuse_and_store(self,
                       owner_id: str,
                       inputs: Sequence[ModalityVector],
                       content_hash: str,
                       method: Optional[str] = None,
                       **metadata: Any) -> str:
        """
        Fuse modality vectors and store the result as one embedding record.

        Args:
            owner_id: Owner of the record
            inputs: Per-modality vectors
            content_hash: Deduplication key of the fused content
            method: Fusion method, config default if None
            **metadata: Extra keyword arguments for EmbeddingStore.store; a
                ``content_type`` or ``confidence`` given here replaces the derived one

        Returns:
            Id of the stored (or already existing) record
        """
        result = self.fusion.fuse(inputs, method)
        if len(result.modalities) == 1:
            content_type = ContentType(result.modalities[0].value)
        else:
            content_type = ContentType.MULTIMODAL
        content_type = metadata.pop('content_type', content_type)
        confidence = metadata.pop('confidence', result.confidence)

        return self.embeddings.store(owner_id,
                                     result.vector,
                                     result.model_id,
                                     content_hash,
                                     content_type=content_type,
                                     confidence=confidence,
                                     **metadata)

    def ingest_event(self, owner_id: str, event: Dict[str, Any]) -> List[str]:
        """Add the content, entities and topics of an extracted event to the owner's graph."""
        node_ids = self.graph.create_nodes_from_event(owner_id, event)
        logger.info(f'Ingested event into {len(node_ids)} graph nodes for owner {owner_id}')
        return node_ids

    def graph_context(self,
                      owner_id: str,
                      node_id: str,
                      max_depth: int = 2,
                      min_weight: float = 0.1,
                      suggestion_limit: int = 5) -> Dict[str, Any]:
        """Neighborhood of a node plus suggested new connections, for a reasoning layer."""
        if suggestion_limit < 1:
            raise ValidationError(f'suggestion_limit must be at least 1, got {suggestion_limit}')

        node = self.graph.get_node(owner_id, node_id)
        related = self.traversal.traverse(owner_id, node_id, max_depth=max_depth, min_weight=min_weight)
        suggestions = self.scorer.suggest_connections(owner_id, node_id, limit=suggestion_limit)

        return {'node': node, 'related': related, 'suggestions': suggestions}

    def _filter_candidates(self,
                           owner_id: str,
                           namespaces: Optional[Sequence[str]] = None,
                           content_types: Optional[Sequence[ContentType]] = None,
                           domains: Optional[Sequence[str]] = None,
                           tags: Optional[Sequence[str]] = None,
                           language: Optional[str] = None,
                           exclude_ids: Optional[Sequence[str]] = None) -> List[EmbeddingRecord]:
        excluded = set(exclude_ids or [])
        candidates = []
        for record in self.embeddings.list_records(owner_id):
            if record.id in excluded:
                continue
            if namespaces is not None and record.namespace not in namespaces:
                continue
            if content_types and record.content_type not in content_types:
                continue
            if domains and record.domain not in domains:
                continue
            if tags and not any(tag in record.tags for tag in tags):
                continue
            if language and record.language != language:
                continue
            candidates.append(record)
        return candidates
