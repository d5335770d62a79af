"""External collaborators of the matching engine."""

from .entity_directory import (
    EntityDirectory,
    EntityRef,
    HttpEntityDirectory,
    InMemoryEntityDirectory,
)
from .records import InMemoryMatchRecordSource, MatchRecordSource

__all__ = [
    "EntityDirectory",
    "EntityRef",
    "HttpEntityDirectory",
    "InMemoryEntityDirectory",
    "MatchRecordSource",
    "InMemoryMatchRecordSource",
]
