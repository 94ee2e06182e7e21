"""
Core data models for the personalized semantic memory.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeType(str, Enum):
    """Closed set of knowledge graph node types."""
    USER = 'user'
    CONTENT = 'content'
    CONTACT = 'contact'
    SESSION = 'session'
    TASK = 'task'
    EVENT = 'event'
    LOCATION = 'location'
    TOPIC = 'topic'
    ENTITY = 'entity'
    CONCEPT = 'concept'
    PREFERENCE = 'preference'
    SKILL = 'skill'
    PROJECT = 'project'
    ORGANIZATION = 'organization'


class EdgeKind(str, Enum):
    """Closed set of relation types between two nodes."""
    VISITED = 'VISITED'
    INTERACTED_WITH = 'INTERACTED_WITH'
    KNOWS = 'KNOWS'
    COMPLETED = 'COMPLETED'
    ATTENDED = 'ATTENDED'
    CREATED = 'CREATED'
    MODIFIED = 'MODIFIED'
    MENTIONED = 'MENTIONED'
    RELATED_TO = 'RELATED_TO'
    PART_OF = 'PART_OF'
    FOLLOWS = 'FOLLOWS'
    PRECEDES = 'PRECEDES'
    SIMILAR_TO = 'SIMILAR_TO'
    CONTRADICTS = 'CONTRADICTS'
    SUPPORTS = 'SUPPORTS'
    LOCATED_AT = 'LOCATED_AT'
    WORKS_ON = 'WORKS_ON'
    INTERESTED_IN = 'INTERESTED_IN'
    LEARNED_FROM = 'LEARNED_FROM'


class ContentType(str, Enum):
    """Kind of content an embedding record was produced from."""
    TEXT = 'text'
    AUDIO = 'audio'
    VIDEO = 'video'
    IMAGE = 'image'
    MULTIMODAL = 'multimodal'


class Modality(str, Enum):
    """Input modalities accepted by embedding fusion, in concatenation order."""
    TEXT = 'text'
    IMAGE = 'image'
    AUDIO = 'audio'
    VIDEO = 'video'


@dataclass
class Edge:
    """Directed, weighted relation owned by its source node."""
    target_node_id: str
    kind: EdgeKind
    weight: float  # Always kept within [0, 1]


@dataclass
class Node:
    """Atomic unit of personalized knowledge within one user's graph.

    Each node belongs to exactly one owner and carries its own out-edges, so
    there is no graph state shared between users.
    """
    id: str
    owner_id: str
    type: NodeType
    label: str
    content: str
    confidence: float
    created_at: datetime
    updated_at: datetime
    properties: Dict[str, Any] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)

    def find_edge(self, target_node_id: str) -> Optional[Edge]:
        """Return the out-edge pointing at ``target_node_id``, if any."""
        for edge in self.edges:
            if edge.target_node_id == target_node_id:
                return edge
        return None

    def neighbor_ids(self) -> set:
        """Ids of every node this node has an out-edge to."""
        return {edge.target_node_id for edge in self.edges}


@dataclass
class EmbeddingRecord:
    """Stored embedding vector with the metadata retrieval ranks on."""
    id: str
    owner_id: str
    vector: List[float]
    dimension: int  # Must equal len(vector)
    model_id: str
    content_type: ContentType
    source_ref: str
    content_hash: str  # Dedup key, unique per owner
    created_at: datetime
    expires_at: Optional[datetime] = None
    quality_score: Optional[float] = None
    confidence: float = 0.5
    namespace: str = 'default'
    domain: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    language: Optional[str] = None
    content_summary: Optional[str] = None
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0  # Dedup hits on the same content

    def is_expired(self, reference: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < reference


@dataclass
class ModalityVector:
    """One per-modality vector handed to fusion; weight falls back to the configured default."""
    vector: List[float]
    modality: Modality
    weight: Optional[float] = None


@dataclass
class FusionResult:
    """Normalized fused vector with its confidence estimate."""
    vector: List[float]
    dimension: int
    model_id: str
    confidence: float
    modalities: List[Modality]


@dataclass
class PathStep:
    """One hop of a traversal or shortest path."""
    node_id: str
    kind: EdgeKind
    weight: float


@dataclass
class TraversalEntry:
    node: Node
    depth: int
    path: List[PathStep]


@dataclass
class PathResult:
    found: bool
    path: List[PathStep] = field(default_factory=list)
    length: int = -1


@dataclass
class SubgraphEdge:
    source: str
    target: str
    kind: EdgeKind
    weight: float


@dataclass
class Subgraph:
    nodes: List[Node]
    edges: List[SubgraphEdge]

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)


@dataclass
class CentralityEntry:
    """Degree centrality of a node: mean of weighted out- and in-degree."""
    node: Node
    out_degree: int
    in_degree: int
    weighted_out_degree: float
    weighted_in_degree: float
    centrality: float


@dataclass
class RelationshipStrength:
    direct_weight: float
    reverse_weight: float
    jaccard_similarity: float
    common_neighbors: int
    total_strength: float
    kind: Optional[EdgeKind]  # Kind of the direct edge, None when absent


@dataclass
class ConnectionSuggestion:
    node_id: str
    label: str
    score: float
    reason: str


@dataclass
class SimilarContent:
    """A content node resembling another one through shared topics, wording or a direct link."""
    node_id: str
    label: str
    score: float
    shared_topics: List[str]
    relationship: str  # similar, prerequisite, followup or related
    url: Optional[str] = None


@dataclass
class TopicCluster:
    topics: List[str]
    content_count: int
    average_confidence: float


@dataclass
class RankedResult:
    """A candidate record scored against a query vector."""
    record: EmbeddingRecord
    similarity: float
    confidence: float
    recency_score: float
    weighted_score: float
    vector: List[float]  # Vector actually compared, after any dimension alignment


@dataclass
class BatchItemOutcome:
    index: int
    status: str  # 'stored', 'deduplicated' or 'failed'
    record_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchStoreResult:
    """Per-item manifest of a batch store; invalid items are skipped, not fatal."""
    outcomes: List[BatchItemOutcome] = field(default_factory=list)

    @property
    def stored_ids(self) -> List[str]:
        return [o.record_id for o in self.outcomes if o.record_id is not None]

    @property
    def failed(self) -> List[BatchItemOutcome]:
        return [o for o in self.outcomes if o.status == 'failed']
