"""
Weighted similarity ranking of embedding records against query vectors, with
multi-query clustering and MMR diversity re-ranking.

Candidates arrive already filtered by the caller (namespace, content type,
domain, tags, language, exclusions); this module only scores and orders them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..exceptions import ValidationError
from ..models.core import EmbeddingRecord, RankedResult
from ..utils.config import SearchConfig, config
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import age_in_days, now as current_time
from ..utils.vector_math import cosine_similarity, project_to_dimension

logger = get_logger(__name__)

WEIGHT_TOLERANCE = 0.01
CLUSTER_REPEAT_BOOST = 0.5


@dataclass
class SearchOptions:
    """Tunable parameters of a single ranking call."""
    limit: int = 20
    min_similarity: float = 0.5
    min_confidence: float = 0.0
    apply_time_decay: bool = True
    half_life_days: float = 30.0
    similarity_weight: float = 0.6
    confidence_weight: float = 0.3
    recency_weight: float = 0.1
    domain_boosts: Dict[str, float] = field(default_factory=dict)
    align_dimensions: bool = False  # Project mismatched candidates instead of skipping them

    @classmethod
    def from_config(cls, search_config: SearchConfig) -> 'SearchOptions':
        return cls(limit=search_config.limit,
                   min_similarity=search_config.min_similarity,
                   half_life_days=search_config.half_life_days,
                   similarity_weight=search_config.similarity_weight,
                   confidence_weight=search_config.confidence_weight,
                   recency_weight=search_config.recency_weight)

    def validate(self, max_results: int = 100) -> None:
        """
        Check every option is within range.

        Raises:
            ValidationError: Listing every problem found
        """
        errors = []
        if not 1 <= self.limit <= max_results:
            errors.append(f'limit must be between 1 and {max_results}')
        if not 0.0 <= self.min_similarity <= 1.0:
            errors.append('min_similarity must be between 0 and 1')
        if not 0.0 <= self.min_confidence <= 1.0:
            errors.append('min_confidence must be between 0 and 1')
        if self.half_life_days <= 0:
            errors.append('half_life_days must be positive')

        weights = (self.similarity_weight, self.confidence_weight, self.recency_weight)
        if any(weight < 0 for weight in weights):
            errors.append('weights must be non-negative')
        if abs(sum(weights) - 1.0) > WEIGHT_TOLERANCE:
            errors.append(f'weights must sum to 1 (got {sum(weights):.3f})')

        for domain, boost in self.domain_boosts.items():
            if boost < -1:
                errors.append(f'domain boost for {domain} must be at least -1')

        if errors:
            raise ValidationError('; '.join(errors))


def recency_score(record: EmbeddingRecord, half_life_days: float, reference: Optional[datetime] = None) -> float:
    """Exponential decay ``0.5 ** (age / half_life)`` from the last access (or creation) time."""
    last_seen = record.last_accessed_at or record.created_at
    return 0.5 ** (age_in_days(last_seen, reference) / half_life_days)


def confidence_adjusted_similarity(similarity: float, confidence: float, confidence_weight: float = 0.3) -> float:
    """Blend similarity with confidence: a confident match keeps its similarity,
    an unconfident one is dampened by up to half of ``confidence_weight``.
    """
    multiplier = 0.5 + confidence * 0.5
    blended = similarity * (1 - confidence_weight) + similarity * multiplier * confidence_weight
    return min(1.0, max(0.0, blended))


class SimilarityRanker:
    """Scores candidate embedding records against query vectors."""

    def __init__(self, search_config: Optional[SearchConfig] = None):
        """
        Initialize the ranker.

        Args:
            search_config: SearchConfig instance, uses global config if None
        """
        self.config = search_config or config.search
        logger.debug(f'Initialized SimilarityRanker (max results {self.config.max_results})')

    def default_options(self) -> SearchOptions:
        return SearchOptions.from_config(self.config)

    def rank(self,
             query: Sequence[float],
             candidates: Sequence[EmbeddingRecord],
             options: Optional[SearchOptions] = None,
             now: Optional[datetime] = None) -> List[RankedResult]:
        """
        Rank candidates by weighted score.

        ``weighted = similarity * sim_w + confidence * conf_w + recency * rec_w``,
        multiplied by ``1 + boost`` for boosted domains and clamped to [0, 1].

        Args:
            query: Query vector
            candidates: Pre-filtered candidate records
            options: SearchOptions (defaults from config if None)
            now: Reference time for recency decay (current time if None)

        Returns:
            Results sorted by non-increasing weighted score, at most
            ``min(limit, max_results)`` of them

        Raises:
            ValidationError: If the options are invalid or the query is empty
        """
        options = options or self.default_options()
        options.validate(self.config.max_results)
        if not query:
            raise ValidationError('Query vector must not be empty')
        reference = now or current_time()

        results = []
        skipped = 0
        for record in candidates:
            if record.confidence < options.min_confidence:
                continue

            vector = record.vector
            if len(vector) != len(query):
                if not options.align_dimensions:
                    skipped += 1
                    continue
                vector = project_to_dimension(vector, len(query))

            similarity = cosine_similarity(query, vector)
            if similarity < options.min_similarity:
                continue

            score = similarity * options.similarity_weight + record.confidence * options.confidence_weight
            recency = 0.0
            if options.apply_time_decay:
                recency = recency_score(record, options.half_life_days, reference)
                score += recency * options.recency_weight

            boost = options.domain_boosts.get(record.domain) if record.domain else None
            if boost:
                score *= 1 + boost

            results.append(
                RankedResult(record=record,
                             similarity=similarity,
                             confidence=record.confidence,
                             recency_score=recency,
                             weighted_score=min(1.0, max(0.0, score)),
                             vector=vector))

        if skipped:
            logger.warning(f'Skipped {skipped} candidates whose dimension differs from the query ({len(query)})')

        results.sort(key=lambda r: r.weighted_score, reverse=True)
        return results[:min(options.limit, self.config.max_results)]

    def cluster_rank(self,
                     queries: Sequence[Sequence[float]],
                     candidates: Sequence[EmbeddingRecord],
                     options: Optional[SearchOptions] = None,
                     now: Optional[datetime] = None) -> List[RankedResult]:
        """
        Rank candidates clustered around several query vectors.

        Each query is ranked with twice the limit; a record hit by more than one
        query gains half of each further score. Accumulated scores are not clamped.
        """
        if not queries:
            raise ValidationError('At least one query vector must be provided')
        options = options or self.default_options()
        per_query = replace(options, limit=min(options.limit * 2, self.config.max_results))

        merged: Dict[str, RankedResult] = {}
        for query in queries:
            for result in self.rank(query, candidates, per_query, now):
                existing = merged.get(result.record.id)
                if existing:
                    existing.weighted_score += result.weighted_score * CLUSTER_REPEAT_BOOST
                else:
                    merged[result.record.id] = result

        ranked = sorted(merged.values(), key=lambda r: r.weighted_score, reverse=True)
        logger.debug(f'Cluster ranking over {len(queries)} queries matched {len(merged)} records')
        return ranked[:options.limit]

    def mmr_rerank(self,
                   results: Sequence[RankedResult],
                   lambda_: Optional[float] = None,
                   limit: int = 10) -> List[RankedResult]:
        """
        Re-rank for diversity with Maximal Marginal Relevance.

        Each step picks the remaining result maximising
        ``lambda * relevance + (1 - lambda) * (1 - max similarity to selected)``.
        Ties go to the more relevant result, so the first pick is always the
        most relevant one whatever the input order.

        Args:
            results: Ranked results (their compared vectors are used)
            lambda_: Relevance/diversity trade-off in [0, 1] (config default if None)
            limit: Maximum number of results to keep

        Returns:
            Selected results in pick order
        """
        lambda_ = self.config.mmr_lambda if lambda_ is None else lambda_
        if not 0.0 <= lambda_ <= 1.0:
            raise ValidationError(f'lambda must be between 0 and 1, got {lambda_}')
        if limit < 1:
            raise ValidationError(f'limit must be at least 1, got {limit}')

        remaining = list(results)
        selected: List[RankedResult] = []
        while remaining and len(selected) < limit:
            best_index = 0
            best_key = (float('-inf'), float('-inf'))
            for index, candidate in enumerate(remaining):
                penalty = self._max_similarity(candidate.vector, selected)
                score = lambda_ * candidate.weighted_score + (1 - lambda_) * (1 - penalty)
                key = (score, candidate.weighted_score)
                if key > best_key:
                    best_key = key
                    best_index = index
            selected.append(remaining.pop(best_index))

        return selected

    def find_related(self,
                     record: EmbeddingRecord,
                     candidates: Sequence[EmbeddingRecord],
                     limit: int = 10,
                     min_similarity: float = 0.7,
                     now: Optional[datetime] = None) -> List[RankedResult]:
        """Rank candidates against an existing record's vector, excluding the record itself."""
        options = replace(self.default_options(), limit=limit, min_similarity=min_similarity)
        others = [candidate for candidate in candidates if candidate.id != record.id]
        return self.rank(record.vector, others, options, now)

    @staticmethod
    def _max_similarity(vector: List[float], selected: Sequence[RankedResult]) -> float:
        max_similarity = 0.0
        for chosen in selected:
            # Cluster results can mix query dimensions; such pairs are not comparable
            if len(chosen.vector) != len(vector):
                continue
            max_similarity = max(max_similarity, cosine_similarity(vector, chosen.vector))
        return max_similarity
