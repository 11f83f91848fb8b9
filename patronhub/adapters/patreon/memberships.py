"""
Membership discovery with a degradation ladder.

Patreon's current_user payload has drifted over time. Each stage below
reads a different shape and returns a typed StageResult; the resolver
moves on only when a stage comes back empty or hit an upstream failure.
Anything else (a parsing bug, say) propagates.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ...exceptions import UpstreamError
from ...jsonapi import ResourceGraph
from ..base import Membership
from .client import PatreonClient
from .parsers import (
    campaign_to_membership,
    extract_campaign_ids_from_html,
    extract_membership_overrides_from_html,
    membership_fetch_candidates,
    membership_refs,
    merge_overrides,
    parse_memberships,
    scan_included_memberships,
)

logger = logging.getLogger(__name__)

CURRENT_USER_CANDIDATES = [
    "/api/current_user?include=memberships.campaign.creator,memberships.currently_entitled_tiers"
    "&json-api-version=1.0",
    "/api/current_user?include=memberships&json-api-version=1.0",
]
MEMBERSHIP_PAGES = ["/memberships", "/home", "/settings/memberships"]


class StageOutcome(Enum):
    FOUND = "found"
    EMPTY = "empty"
    UPSTREAM_ERROR = "upstream_error"


@dataclass
class StageResult:
    """What one ladder stage produced and why."""
    stage: str
    outcome: StageOutcome
    memberships: list[Membership] = field(default_factory=list)
    errors: list[UpstreamError] = field(default_factory=list)

    @classmethod
    def from_rows(
        cls,
        stage: str,
        memberships: list[Membership],
        errors: list[UpstreamError] | None = None,
        attempted: int = 0,
    ) -> "StageResult":
        """Classify a stage: any rows is FOUND, all sub-fetches failing is UPSTREAM_ERROR."""
        errors = errors or []
        if memberships:
            outcome = StageOutcome.FOUND
        elif errors and len(errors) >= attempted > 0:
            outcome = StageOutcome.UPSTREAM_ERROR
        else:
            outcome = StageOutcome.EMPTY
        return cls(stage, outcome, memberships, errors)


@dataclass
class MembershipResolution:
    memberships: list[Membership]
    stages: list[StageResult]

    @property
    def resolved_by(self) -> str | None:
        for stage in self.stages:
            if stage.outcome is StageOutcome.FOUND:
                return stage.stage
        return None


def dedupe_memberships(memberships: list[Membership]) -> list[Membership]:
    seen: set[str] = set()
    unique = []
    for membership in memberships:
        if not membership.campaign_id or membership.campaign_id in seen:
            continue
        seen.add(membership.campaign_id)
        unique.append(membership)
    return unique


class MembershipResolver:
    """Runs the membership ladder against one authenticated client."""

    def __init__(self, client: PatreonClient):
        self.client = client

    async def resolve(self) -> MembershipResolution:
        """
        Discover the user's memberships.

        Raises:
            UpstreamError: If every stage came back empty and the primary
                current_user request itself failed
        """
        stages: list[StageResult] = []

        primary, graph = await self._current_user()
        stages.append(primary)

        if graph is not None and primary.outcome is not StageOutcome.FOUND:
            by_id = await self._fetch_refs(graph)
            stages.append(by_id)
            if by_id.outcome is not StageOutcome.FOUND:
                stages.append(self._scan_included(graph))

        if stages[-1].outcome is not StageOutcome.FOUND:
            stages.append(await self._scrape_html())

        for stage in stages:
            logger.debug(f"Membership stage {stage.stage}: {stage.outcome.value} "
                         f"({len(stage.memberships)} rows, {len(stage.errors)} errors)")

        found = next((s for s in stages if s.outcome is StageOutcome.FOUND), None)
        if found is None:
            if primary.outcome is StageOutcome.UPSTREAM_ERROR:
                raise primary.errors[-1]
            return MembershipResolution([], stages)

        memberships = dedupe_memberships(found.memberships)
        logger.info(f"Resolved {len(memberships)} memberships via {found.stage}")
        return MembershipResolution(memberships, stages)

    async def _current_user(self) -> tuple[StageResult, ResourceGraph | None]:
        try:
            graph = await self.client.fetch_json_candidates(CURRENT_USER_CANDIDATES)
        except UpstreamError as e:
            logger.warning(f"current_user request failed: {e}")
            return StageResult("current_user", StageOutcome.UPSTREAM_ERROR, errors=[e]), None
        return StageResult.from_rows("current_user", parse_memberships(graph)), graph

    async def _fetch_refs(self, graph: ResourceGraph) -> StageResult:
        """Fetch memberships one by one when the user only carried references."""
        refs = membership_refs(graph)
        memberships: list[Membership] = []
        errors: list[UpstreamError] = []
        for ref in refs:
            try:
                member_graph = await self.client.fetch_json_candidates(
                    membership_fetch_candidates(ref)
                )
            except UpstreamError as e:
                logger.warning(f"Failed to fetch membership {ref.key}: {e}")
                errors.append(e)
                continue
            memberships.extend(parse_memberships(member_graph))
        return StageResult.from_rows("membership_by_id", memberships, errors, attempted=len(refs))

    def _scan_included(self, graph: ResourceGraph) -> StageResult:
        return StageResult.from_rows("included_scan", scan_included_memberships(graph))

    async def _scrape_html(self) -> StageResult:
        """Last resort: pull campaign ids out of account pages and fetch each campaign."""
        campaign_ids: dict[str, None] = {}
        overrides: dict[str, dict] = {}
        errors: list[UpstreamError] = []

        for page in MEMBERSHIP_PAGES:
            try:
                html = await self.client.fetch_html(page)
            except UpstreamError as e:
                logger.warning(f"Failed to fetch {page}: {e}")
                errors.append(e)
                continue
            for campaign_id in extract_campaign_ids_from_html(html):
                campaign_ids.setdefault(campaign_id)
            merge_overrides(overrides, extract_membership_overrides_from_html(html))

        memberships: list[Membership] = []
        for campaign_id in campaign_ids:
            try:
                campaign_graph = await self.client.fetch_json_candidates([
                    f"/api/campaigns/{campaign_id}?include=creator&json-api-version=1.0",
                    f"/api/campaigns/{campaign_id}?json-api-version=1.0",
                ])
            except UpstreamError as e:
                logger.warning(f"Failed to fetch campaign {campaign_id}: {e}")
                errors.append(e)
                continue
            membership = campaign_to_membership(campaign_graph, campaign_id, overrides.get(campaign_id))
            if membership:
                memberships.append(membership)

        attempted = len(MEMBERSHIP_PAGES) + len(campaign_ids)
        return StageResult.from_rows("html_scrape", memberships, errors, attempted=attempted)
