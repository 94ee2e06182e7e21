"""
Personalized semantic memory: per-owner knowledge graph, embedding fusion and similarity ranking.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()
