"""Filtering layer - Deal change classification and notification synthesis."""

from deal_relay.filter.deal_filter import DealChangeFilter, NotificationPolicy, squish
from deal_relay.filter.stages import (
    UNKNOWN_STAGE,
    InMemoryStageDirectory,
    PipedriveStageDirectory,
    StageDirectory,
    StageNameResolver,
)

__all__ = [
    "UNKNOWN_STAGE",
    "DealChangeFilter",
    "InMemoryStageDirectory",
    "NotificationPolicy",
    "PipedriveStageDirectory",
    "StageDirectory",
    "StageNameResolver",
    "squish",
]
