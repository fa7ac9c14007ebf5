"""
Examhall - timed assessment delivery engine.

Subpackages:
- core: Data model, allocation and correctness rules
- storage: Durable local records
- integrations: Producer API client and payload schemas
- engine: Session loading, deadline, recording, submission, offline sync
- cli: Terminal front end
"""

__version__ = "1.0.0"
