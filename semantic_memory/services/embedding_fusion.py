"""
Multi-modal embedding fusion: combines text/image/audio/video vectors into a
single normalized vector with a confidence estimate.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ValidationError
from ..models.core import FusionResult, Modality, ModalityVector
from ..utils.config import FusionConfig, config
from ..utils.logging_config import get_logger
from ..utils.vector_math import average_vectors, normalize, project_to_dimension

logger = get_logger(__name__)

WEIGHTED_CONCAT = 'weighted_concat'
ATTENTION = 'attention'
AVERAGE = 'average'
FUSION_METHODS = (WEIGHTED_CONCAT, ATTENTION, AVERAGE)

MODALITY_ORDER = (Modality.TEXT, Modality.IMAGE, Modality.AUDIO, Modality.VIDEO)

# (vector, weight) pairs in modality order
WeightedVectors = List[Tuple[List[float], float]]


def weighted_concat_fusion(inputs: WeightedVectors) -> List[float]:
    """Scale each vector by its share of the total weight and concatenate."""
    total_weight = sum(weight for _, weight in inputs)
    parts = [np.asarray(vector, dtype=np.float64) * (weight / total_weight) for vector, weight in inputs]
    return np.concatenate(parts).tolist()


def attention_fusion(inputs: WeightedVectors) -> List[float]:
    """Weighted sum after projecting every vector to the largest input dimension.

    The weights act as fixed attention coefficients (``weight / total``).
    """
    target_dim = max(len(vector) for vector, _ in inputs)
    total_weight = sum(weight for _, weight in inputs)

    fused = np.zeros(target_dim)
    for vector, weight in inputs:
        fused += np.asarray(project_to_dimension(vector, target_dim)) * (weight / total_weight)
    return fused.tolist()


def average_fusion(inputs: WeightedVectors) -> List[float]:
    """Unweighted mean after projecting every vector to the largest input dimension."""
    target_dim = max(len(vector) for vector, _ in inputs)
    return average_vectors([project_to_dimension(vector, target_dim) for vector, _ in inputs])


def fusion_confidence(weights: Sequence[float]) -> float:
    """Confidence of a fused vector: more modalities and heavier inputs raise it, capped at 0.95."""
    modality_bonus = min(0.3, 0.1 * len(weights))
    avg_weight = sum(weights) / len(weights)
    return min(0.95, 0.7 + modality_bonus + 0.1 * avg_weight)


_FUSERS = {
    WEIGHTED_CONCAT: weighted_concat_fusion,
    ATTENTION: attention_fusion,
    AVERAGE: average_fusion,
}


class EmbeddingFusion:
    """Fuse per-modality embeddings using configurable default weights."""

    def __init__(self, fusion_config: Optional[FusionConfig] = None):
        """
        Initialize embedding fusion.

        Args:
            fusion_config: FusionConfig instance, uses global config if None
        """
        self.config = fusion_config or config.fusion
        self.default_weights: Dict[Modality, float] = {
            Modality.TEXT: self.config.text_weight,
            Modality.IMAGE: self.config.image_weight,
            Modality.AUDIO: self.config.audio_weight,
            Modality.VIDEO: self.config.video_weight,
        }

        if self.config.default_method not in FUSION_METHODS:
            raise ValidationError(f'Unknown default fusion method: {self.config.default_method}')

        logger.debug(f'Initialized EmbeddingFusion with default method: {self.config.default_method}')

    def fuse(self, inputs: Sequence[ModalityVector], method: Optional[str] = None) -> FusionResult:
        """Fuse modality vectors into one normalized vector.

        Args:
            inputs: Per-modality vectors; empty vectors are treated as absent
            method: 'weighted_concat', 'attention' or 'average' (default from config)

        Returns:
            FusionResult with the normalized vector and confidence

        Raises:
            ValidationError: If no vector is present, a modality repeats, or the weights are invalid
        """
        method = method or self.config.default_method
        if method not in _FUSERS:
            raise ValidationError(f'Unknown fusion method: {method}')

        ordered = self._collect(inputs)
        weighted = [(item.vector, weight) for item, weight in ordered]
        fused = normalize(_FUSERS[method](weighted))
        weights = [weight for _, weight in ordered]

        result = FusionResult(vector=fused,
                              dimension=len(fused),
                              model_id=f'multimodal-{method}',
                              confidence=fusion_confidence(weights),
                              modalities=[item.modality for item, _ in ordered])

        logger.debug(f'Fused {len(ordered)} modalities with {method} into {result.dimension} dimensions')
        return result

    def pool_frames(self, frame_vectors: Sequence[Sequence[float]]) -> List[float]:
        """Average-pool per-frame vectors into one video vector.

        Raises:
            ValidationError: If no frames are given
        """
        if not frame_vectors:
            raise ValidationError('At least one frame embedding must be provided')
        return average_vectors(frame_vectors)

    def _collect(self, inputs: Sequence[ModalityVector]) -> List[Tuple[ModalityVector, float]]:
        """Drop absent modalities, resolve default weights and sort into modality order."""
        present: Dict[Modality, Tuple[ModalityVector, float]] = {}
        for item in inputs:
            if not item.vector:
                continue
            try:
                modality = Modality(item.modality)
            except ValueError:
                raise ValidationError(f'Unknown modality: {item.modality}')
            if modality in present:
                raise ValidationError(f'Modality provided more than once: {modality.value}')

            weight = self.default_weights[modality] if item.weight is None else float(item.weight)
            if weight < 0:
                raise ValidationError(f'Modality weight must be non-negative, got {weight} for {modality.value}')
            present[modality] = (item, weight)

        if not present:
            logger.error('Fusion called without any modality embedding')
            raise ValidationError('At least one embedding must be provided')

        if sum(weight for _, weight in present.values()) <= 0:
            raise ValidationError('Modality weights must not all be zero')

        return [present[modality] for modality in MODALITY_ORDER if modality in present]
