"""Reaction services: membership, submission, queries and settings."""
from __future__ import annotations

from .feed_info import FeedInfoProvider, GroupFeedInfoProvider, InMemoryFeedDirectory
from .membership import MembershipService
from .membership_events import MembershipCommandHandler
from .memory import InMemoryStore
from .pipeline import ReactionSubmissionPipeline
from .queries import ReactionQueryService
from .settings import ReactionsSettings, Settings, VerifierSettings, load_settings

__all__ = [
    "FeedInfoProvider",
    "GroupFeedInfoProvider",
    "InMemoryFeedDirectory",
    "InMemoryStore",
    "MembershipCommandHandler",
    "MembershipService",
    "ReactionQueryService",
    "ReactionSubmissionPipeline",
    "ReactionsSettings",
    "Settings",
    "VerifierSettings",
    "load_settings",
]
