"""
Error types shared by the graph, fusion and retrieval components.
"""


class SemanticMemoryError(Exception):
    """Base exception for semantic memory errors."""
    pass


class NotFoundError(SemanticMemoryError):
    """Raised when a node, edge or embedding reference does not exist."""
    pass


class AuthorizationError(SemanticMemoryError):
    """Raised when a caller touches data owned by another user."""
    pass


class ValidationError(SemanticMemoryError):
    """Raised when an argument is outside its allowed range."""
    pass


class DimensionMismatchError(ValidationError):
    """Raised when two vectors must have the same length but do not."""
    pass


class CapacityError(SemanticMemoryError):
    """Raised when an owner's graph would exceed the configured node ceiling."""
    pass
