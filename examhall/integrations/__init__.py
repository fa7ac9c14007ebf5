"""
External collaborators of the engine.

Modules:
- producer_client: HTTP client for the question-pool producer
- schemas: Producer payload validation and normalization
"""
from .producer_client import Producer, ProducerClient
from .schemas import EntryPayload, OptionPayload, PolicyPayload, parse_entries

__all__ = [
    "EntryPayload",
    "OptionPayload",
    "PolicyPayload",
    "Producer",
    "ProducerClient",
    "parse_entries",
]
