"""
Adapter implementations for job stores, object stores and the external
generation services.

This module exposes the abstract base classes and the in-process
implementations; the network-backed adapters (Postgres, S3, OpenAI,
Pexels, FFmpeg) are imported from their own modules.
"""

from .base import (
    JobStore,
    ObjectStore,
    TextGenerator,
    SpeechSynthesizer,
    StockMediaSearch,
    MediaEngine,
    StockCandidate,
    MuxRequest,
)
from .memory_adapter import InMemoryJobStore, LocalObjectStore

__all__ = [
    'JobStore',
    'ObjectStore',
    'TextGenerator',
    'SpeechSynthesizer',
    'StockMediaSearch',
    'MediaEngine',
    'StockCandidate',
    'MuxRequest',
    'InMemoryJobStore',
    'LocalObjectStore'
]
