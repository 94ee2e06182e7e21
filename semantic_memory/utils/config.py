"""
Configuration management for graph, fusion and retrieval settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class GraphConfig:
    """Configuration for the per-owner knowledge graph."""
    max_nodes_per_owner: int
    reinforcement_factor: float
    strengthen_increment: float
    decay_factor: float


@dataclass
class FusionConfig:
    """Configuration for multi-modal embedding fusion."""
    text_weight: float
    image_weight: float
    audio_weight: float
    video_weight: float
    default_method: str


@dataclass
class SearchConfig:
    """Configuration for similarity ranking."""
    limit: int
    min_similarity: float
    half_life_days: float
    similarity_weight: float
    confidence_weight: float
    recency_weight: float
    max_results: int
    mmr_lambda: float


@dataclass
class EmbeddingStoreConfig:
    """Configuration for embedding record storage."""
    default_confidence: float
    cleanup_batch_size: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    graph: GraphConfig
    fusion: FusionConfig
    search: SearchConfig
    embedding_store: EmbeddingStoreConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Graph configuration
    graph_config = GraphConfig(max_nodes_per_owner=int(os.getenv('GRAPH_MAX_NODES_PER_OWNER', '10000')),
                               reinforcement_factor=float(os.getenv('GRAPH_REINFORCEMENT_FACTOR', '0.1')),
                               strengthen_increment=float(os.getenv('GRAPH_STRENGTHEN_INCREMENT', '0.05')),
                               decay_factor=float(os.getenv('GRAPH_DECAY_FACTOR', '0.99')))

    # Fusion configuration
    fusion_config = FusionConfig(text_weight=float(os.getenv('FUSION_TEXT_WEIGHT', '0.4')),
                                 image_weight=float(os.getenv('FUSION_IMAGE_WEIGHT', '0.3')),
                                 audio_weight=float(os.getenv('FUSION_AUDIO_WEIGHT', '0.2')),
                                 video_weight=float(os.getenv('FUSION_VIDEO_WEIGHT', '0.1')),
                                 default_method=os.getenv('FUSION_DEFAULT_METHOD', 'weighted_concat'))

    # Search configuration
    search_config = SearchConfig(limit=int(os.getenv('SEARCH_LIMIT', '20')),
                                 min_similarity=float(os.getenv('SEARCH_MIN_SIMILARITY', '0.5')),
                                 half_life_days=float(os.getenv('SEARCH_HALF_LIFE_DAYS', '30')),
                                 similarity_weight=float(os.getenv('SEARCH_SIMILARITY_WEIGHT', '0.6')),
                                 confidence_weight=float(os.getenv('SEARCH_CONFIDENCE_WEIGHT', '0.3')),
                                 recency_weight=float(os.getenv('SEARCH_RECENCY_WEIGHT', '0.1')),
                                 max_results=int(os.getenv('SEARCH_MAX_RESULTS', '100')),
                                 mmr_lambda=float(os.getenv('SEARCH_MMR_LAMBDA', '0.5')))

    # Embedding store configuration
    embedding_store_config = EmbeddingStoreConfig(
        default_confidence=float(os.getenv('EMBEDDING_DEFAULT_CONFIDENCE', '0.5')),
        cleanup_batch_size=int(os.getenv('EMBEDDING_CLEANUP_BATCH_SIZE', '100')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     graph=graph_config,
                     fusion=fusion_config,
                     search=search_config,
                     embedding_store=embedding_store_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
