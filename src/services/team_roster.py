"""Team roster - reduce roster rows and team-office settings to a TeamScope."""

import asyncio
from typing import Any, Optional

from src.models.query import TeamMember, TeamScope
from src.services.supabase_client import get_active_team_members, get_site_settings_row
from src.utils.errors import TeamRosterError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def office_names_from_settings(settings: Optional[dict]) -> frozenset[str]:
    """Office names listed under ``team_sync_offices`` ({officeName} entries)."""
    if not settings:
        return frozenset()
    offices = settings.get("team_sync_offices") or []
    if not isinstance(offices, list):
        return frozenset()
    names = set()
    for office in offices:
        name = _clean(office.get("officeName")) if isinstance(office, dict) else _clean(office)
        if name:
            names.add(name)
    return frozenset(names)


def build_team_scope(members: list[TeamMember], office_names: frozenset[str] = frozenset()) -> TeamScope:
    """Agent ids (active and sold), agent names and office names of the active roster."""
    agent_ids = set()
    agent_names = set()
    for member in members:
        if member.inactive:
            continue
        for agent_id in (member.mls_agent_id, member.mls_agent_id_sold):
            agent_id = _clean(agent_id)
            if agent_id:
                agent_ids.add(agent_id)
        name = _clean(member.name)
        if name:
            agent_names.add(name)

    return TeamScope(
        agent_ids=frozenset(agent_ids),
        agent_names=frozenset(agent_names),
        office_names=office_names,
    )


async def load_team_scope() -> TeamScope:
    """Fetch roster and settings concurrently.

    Raises:
        TeamRosterError: if either source cannot be read. A failed roster is
            never treated as "no team filter".
    """
    try:
        with log_timing("load_team_scope", logger=logger):
            member_rows, settings = await asyncio.gather(
                get_active_team_members(),
                get_site_settings_row(),
            )
        members = [TeamMember.model_validate(row) for row in member_rows]
    except Exception as e:
        logger.error("Team roster unavailable", error=str(e))
        raise TeamRosterError(f"Failed to load team roster: {e}") from e

    scope = build_team_scope(members, office_names_from_settings(settings))
    logger.info(
        "Team scope loaded",
        agent_ids=len(scope.agent_ids),
        agent_names=len(scope.agent_names),
        office_names=len(scope.office_names)
    )
    return scope
