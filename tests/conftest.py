"""
Shared fixtures for the semantic memory tests.
"""

from datetime import datetime, timedelta

import pytest

from semantic_memory.models.core import ContentType, EmbeddingRecord, NodeType
from semantic_memory.utils.config import EmbeddingStoreConfig, FusionConfig, GraphConfig, SearchConfig

OWNER = 'user-1'
OTHER_OWNER = 'user-2'
NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture
def graph_config():
    """Graph configuration with the default reinforcement constants and a small node ceiling."""
    return GraphConfig(max_nodes_per_owner=50, reinforcement_factor=0.1, strengthen_increment=0.05, decay_factor=0.99)


@pytest.fixture
def fusion_config():
    return FusionConfig(text_weight=0.4, image_weight=0.3, audio_weight=0.2, video_weight=0.1,
                        default_method='weighted_concat')


@pytest.fixture
def search_config():
    return SearchConfig(limit=20,
                        min_similarity=0.5,
                        half_life_days=30,
                        similarity_weight=0.6,
                        confidence_weight=0.3,
                        recency_weight=0.1,
                        max_results=100,
                        mmr_lambda=0.5)


@pytest.fixture
def store_config():
    return EmbeddingStoreConfig(default_confidence=0.5, cleanup_batch_size=100)


@pytest.fixture
def graph_store(graph_config):
    from semantic_memory.services.graph_store import GraphStore
    return GraphStore(graph_config)


@pytest.fixture
def traversal(graph_store):
    from semantic_memory.services.graph_traversal import GraphTraversal
    return GraphTraversal(graph_store)


@pytest.fixture
def scorer(graph_store):
    from semantic_memory.services.relationship_scorer import RelationshipScorer
    return RelationshipScorer(graph_store)


@pytest.fixture
def fusion(fusion_config):
    from semantic_memory.services.embedding_fusion import EmbeddingFusion
    return EmbeddingFusion(fusion_config)


@pytest.fixture
def ranker(search_config):
    from semantic_memory.services.similarity_ranker import SimilarityRanker
    return SimilarityRanker(search_config)


@pytest.fixture
def embedding_store(store_config):
    from semantic_memory.services.embedding_store import EmbeddingStore
    return EmbeddingStore(store_config)


@pytest.fixture
def memory_service(graph_store, embedding_store, fusion, ranker):
    from semantic_memory.services.memory_service import SemanticMemoryService
    return SemanticMemoryService(graph_store, embedding_store, fusion, ranker)


@pytest.fixture
def make_node(graph_store):
    """Factory creating topic nodes for OWNER unless told otherwise."""

    def _make(label, node_type=NodeType.TOPIC, confidence=0.9, owner_id=OWNER):
        return graph_store.create_node(owner_id, node_type, label, content=f'{label} content', confidence=confidence)

    return _make


@pytest.fixture
def make_record():
    """Factory for embedding records used as ranking candidates."""

    def _make(record_id, vector, confidence=0.5, age_days=0.0, domain=None, namespace='default'):
        return EmbeddingRecord(id=record_id,
                               owner_id=OWNER,
                               vector=list(vector),
                               dimension=len(vector),
                               model_id='test-model',
                               content_type=ContentType.TEXT,
                               source_ref=f'event-{record_id}',
                               content_hash=f'hash-{record_id}',
                               created_at=NOW - timedelta(days=age_days),
                               confidence=confidence,
                               namespace=namespace,
                               domain=domain)

    return _make
