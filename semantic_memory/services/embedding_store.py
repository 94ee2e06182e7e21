"""
In-memory, per-owner store of embedding records.

Records are deduplicated on ``content_hash`` within an owner: storing the same
content twice refreshes the record already stored and returns its id.
"""

import hashlib
import uuid
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import AuthorizationError, DimensionMismatchError, NotFoundError, SemanticMemoryError, ValidationError
from ..models.core import BatchItemOutcome, BatchStoreResult, ContentType, EmbeddingRecord
from ..utils.config import EmbeddingStoreConfig, config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import now as current_time

logger = get_logger(__name__)

# Expected output dimension of embedding models whose size is fixed
KNOWN_EMBEDDING_MODELS = {
    'text-embedding-ada-002': 1536,
    'text-embedding-3-small': 1536,
    'text-embedding-3-large': 3072,
    'clip-vit-base-patch32': 512,
    'whisper-embedding': 1280,
    'multimodal-embedding-001': 1408,
}


def generate_content_hash(content: str) -> str:
    """SHA-256 hex digest used as the deduplication key of a record."""
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def _check_score(name: str, value: Optional[float]) -> None:
    if value is not None and not 0.0 <= value <= 1.0:
        raise ValidationError(f'{name} must be between 0 and 1, got {value}')


def _check_vector(vector: Sequence[float], model_id: str) -> None:
    if not vector:
        raise ValidationError('Embedding vector must not be empty')
    expected = KNOWN_EMBEDDING_MODELS.get(model_id)
    if expected is not None and len(vector) != expected:
        raise DimensionMismatchError(f'Embedding dimension mismatch for {model_id}: expected {expected}, got {len(vector)}')


class EmbeddingStore:
    """Keeps each owner's embedding records and their content-hash index."""

    def __init__(self, store_config: Optional[EmbeddingStoreConfig] = None):
        """
        Initialize the embedding store.

        Args:
            store_config: EmbeddingStoreConfig instance, uses global config if None
        """
        self.config = store_config or config.embedding_store
        self._records: Dict[str, Dict[str, EmbeddingRecord]] = {}
        self._hash_index: Dict[str, Dict[str, str]] = {}
        self._owners: Dict[str, str] = {}

        logger.info('Initialized EmbeddingStore')

    def store(self,
              owner_id: str,
              vector: Sequence[float],
              model_id: str,
              content_hash: str,
              content_type: Optional[ContentType] = None,
              source_ref: str = '',
              expires_at: Optional[datetime] = None,
              quality_score: Optional[float] = None,
              confidence: Optional[float] = None,
              namespace: Optional[str] = None,
              domain: Optional[str] = None,
              tags: Optional[List[str]] = None,
              language: Optional[str] = None,
              content_summary: Optional[str] = None) -> str:
        """
        Store an embedding, or refresh the stored record with the same hash.

        On a hash hit the existing record takes the new vector and model, any
        metadata passed here overrides the stored value, ``access_count`` goes up
        by one and confidence becomes ``min(1, (previous + new) / 2 + 0.1)``.

        Args:
            owner_id: Owner of the record
            vector: Embedding vector
            model_id: Name of the model that produced the vector
            content_hash: Deduplication key (see generate_content_hash)
            content_type: Kind of source content (text for new records if None)
            source_ref: Reference to the source event or media item
            expires_at: Optional expiry time
            quality_score: Optional quality score (0.0 to 1.0)
            confidence: Confidence (0.0 to 1.0), config default if None
            namespace: Namespace of the record ('default' for new records if None)

        Returns:
            Id of the new record, or of the existing record with the same hash

        Raises:
            ValidationError: If the owner, vector or scores are invalid
            DimensionMismatchError: If a known model's dimension does not match
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError('Owner ID is required')
        if not content_hash:
            raise ValidationError('Content hash is required')

        _check_vector(vector, model_id)
        confidence = self.config.default_confidence if confidence is None else confidence
        _check_score('confidence', confidence)
        _check_score('quality_score', quality_score)
        if content_type is not None:
            try:
                content_type = ContentType(content_type)
            except ValueError:
                raise ValidationError(f'Unknown content type: {content_type}')

        existing_id = self._hash_index.get(owner_id, {}).get(content_hash)
        if existing_id is not None:
            record = self._records[owner_id][existing_id]
            previous = record.confidence
            record.vector = [float(v) for v in vector]
            record.dimension = len(record.vector)
            record.model_id = model_id
            record.confidence = min(1.0, (previous + confidence) / 2 + 0.1)
            record.last_accessed_at = current_time()
            record.access_count += 1
            overrides = {
                'content_type': content_type,
                'source_ref': source_ref or None,
                'expires_at': expires_at,
                'quality_score': quality_score,
                'namespace': namespace,
                'domain': domain,
                'tags': list(tags) if tags is not None else None,
                'language': language,
                'content_summary': content_summary,
            }
            for name, value in overrides.items():
                if value is not None:
                    setattr(record, name, value)

            logger.debug(f'Refreshed embedding {existing_id} for owner {owner_id}, '
                         f'confidence {previous:.2f} -> {record.confidence:.2f}')
            return existing_id

        content_type = content_type or ContentType.TEXT
        namespace = namespace or 'default'
        record = EmbeddingRecord(id=str(uuid.uuid4()),
                                 owner_id=owner_id,
                                 vector=[float(v) for v in vector],
                                 dimension=len(vector),
                                 model_id=model_id,
                                 content_type=content_type,
                                 source_ref=source_ref,
                                 content_hash=content_hash,
                                 created_at=current_time(),
                                 expires_at=expires_at,
                                 quality_score=quality_score,
                                 confidence=confidence,
                                 namespace=namespace,
                                 domain=domain,
                                 tags=list(tags or []),
                                 language=language,
                                 content_summary=content_summary)

        self._records.setdefault(owner_id, {})[record.id] = record
        self._hash_index.setdefault(owner_id, {})[content_hash] = record.id
        self._owners[record.id] = owner_id

        logger.debug(f'Stored {record.dimension}-d {content_type.value} embedding {record.id} for owner {owner_id}')
        return record.id

    def store_batch(self, owner_id: str, items: Sequence[Dict[str, Any]]) -> BatchStoreResult:
        """
        Store many embeddings, skipping invalid ones.

        Args:
            owner_id: Owner of every record
            items: Keyword arguments for ``store`` (without owner_id), one dict per record

        Returns:
            BatchStoreResult with one outcome per item, in input order
        """
        result = BatchStoreResult()
        for index, item in enumerate(items):
            content_hash = item.get('content_hash')
            duplicate = content_hash is not None and content_hash in self._hash_index.get(owner_id, {})
            try:
                record_id = self.store(owner_id, **item)
            except (SemanticMemoryError, TypeError) as e:
                logger.warning(f'Skipping batch item {index}: {e}')
                result.outcomes.append(BatchItemOutcome(index=index, status='failed', error=str(e)))
                continue

            status = 'deduplicated' if duplicate else 'stored'
            result.outcomes.append(BatchItemOutcome(index=index, status=status, record_id=record_id))

        logger.info(f'Batch store for owner {owner_id}: {len(result.stored_ids)} stored, {len(result.failed)} failed')
        return result

    def get(self, owner_id: str, record_id: str) -> EmbeddingRecord:
        """
        Fetch a record, enforcing ownership.

        Raises:
            NotFoundError: If the record does not exist
            AuthorizationError: If the record belongs to another owner
        """
        owner = self._owners.get(record_id)
        if owner is None:
            raise NotFoundError(f'Embedding not found: {record_id}')
        if owner != owner_id:
            logger.warning(f'Owner {owner_id} attempted to access embedding {record_id} of another owner')
            raise AuthorizationError(f'Embedding {record_id} does not belong to owner {owner_id}')
        return self._records[owner][record_id]

    def update(self,
               owner_id: str,
               record_id: str,
               vector: Optional[Sequence[float]] = None,
               quality_score: Optional[float] = None,
               content_summary: Optional[str] = None) -> EmbeddingRecord:
        """Replace the vector, quality score or summary of a stored record."""
        record = self.get(owner_id, record_id)
        if vector is not None:
            _check_vector(vector, record.model_id)
            record.vector = [float(v) for v in vector]
            record.dimension = len(record.vector)
        if quality_score is not None:
            _check_score('quality_score', quality_score)
            record.quality_score = quality_score
        if content_summary is not None:
            record.content_summary = content_summary

        logger.debug(f'Updated embedding {record_id}')
        return record

    def mark_accessed(self, owner_id: str, record_id: str, accessed_at: Optional[datetime] = None) -> None:
        """Record a retrieval so recency decay restarts from now."""
        self.get(owner_id, record_id).last_accessed_at = accessed_at or current_time()

    def delete(self, owner_id: str, record_id: str) -> None:
        record = self.get(owner_id, record_id)
        self._remove(record)
        logger.debug(f'Deleted embedding {record_id}')

    def list_records(self,
                     owner_id: str,
                     content_type: Optional[ContentType] = None,
                     limit: Optional[int] = None) -> List[EmbeddingRecord]:
        """Owner's records, newest first, optionally filtered by content type."""
        records = [
            record for record in self._records.get(owner_id, {}).values()
            if content_type is None or record.content_type == content_type
        ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return records if limit is None else records[:limit]

    def cleanup_expired(self, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> int:
        """
        Delete expired records across all owners.

        Args:
            now: Reference time (current time if None)
            batch_size: Maximum records to delete in one call (config default if None)

        Returns:
            Number of records deleted
        """
        reference = now or current_time()
        batch_size = batch_size or self.config.cleanup_batch_size

        expired = [
            record for records in self._records.values() for record in records.values() if record.is_expired(reference)
        ][:batch_size]
        for record in expired:
            self._remove(record)

        logger.info(f'Cleaned up {len(expired)} expired embeddings')
        return len(expired)

    def delete_owner(self, owner_id: str) -> int:
        """Remove every record of an owner; returns how many were deleted."""
        records = self._records.pop(owner_id, {})
        self._hash_index.pop(owner_id, None)
        for record_id in records:
            del self._owners[record_id]

        logger.info(f'Deleted {len(records)} embeddings for owner {owner_id}')
        return len(records)

    def statistics(self, owner_id: str) -> Dict[str, Any]:
        records = list(self._records.get(owner_id, {}).values())
        scored = [record.quality_score for record in records if record.quality_score is not None]
        reference = current_time()

        return {
            'total_embeddings': len(records),
            'content_type_distribution': dict(Counter(record.content_type.value for record in records)),
            'model_distribution': dict(Counter(record.model_id for record in records)),
            'namespace_distribution': dict(Counter(record.namespace for record in records)),
            'average_quality_score': sum(scored) / len(scored) if scored else None,
            'average_confidence': sum(r.confidence for r in records) / len(records) if records else 0.0,
            'expired': sum(1 for record in records if record.is_expired(reference)),
        }

    def _remove(self, record: EmbeddingRecord) -> None:
        del self._records[record.owner_id][record.id]
        self._hash_index[record.owner_id].pop(record.content_hash, None)
        del self._owners[record.id]
