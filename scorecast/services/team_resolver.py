# scorecast/services/team_resolver.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple

from scorecast.core.errors import UnresolvedTeamError
from scorecast.core.store import Store
from scorecast.models.types import Team, TeamAlias

logger = logging.getLogger("scorecast.teams")


class TeamResolver:
    """
    Snapshot of the team alias table, taken once per ingestion run.

    Lookup order: exact (provider, label) alias, then the label as a team
    abbreviation regardless of provider. A rename published after the
    snapshot is taken is only seen by the next run.
    """

    def __init__(
        self,
        aliases: Mapping[Tuple[str, str], str],
        abbreviations: Mapping[str, str],
    ):
        self._aliases = dict(aliases)
        self._abbreviations = {k.upper(): v for k, v in abbreviations.items()}

    @classmethod
    def from_rows(
        cls,
        teams: Iterable[Team],
        aliases: Iterable[TeamAlias],
    ) -> "TeamResolver":
        alias_map: Dict[Tuple[str, str], str] = {}
        for a in aliases:
            alias_map[(str(a["provider"]), str(a["alias"]).strip())] = str(a["team_id"])
        abbr_map = {
            str(t["abbreviation"]).strip(): str(t["id"])
            for t in teams
            if t.get("abbreviation")
        }
        return cls(alias_map, abbr_map)

    @classmethod
    async def load(cls, store: Store) -> "TeamResolver":
        teams = await store.select_many("teams")
        aliases = await store.select_many("team_aliases")
        resolver = cls.from_rows(teams, aliases)
        logger.info("Loaded %d team aliases, %d teams", len(resolver._aliases), len(resolver._abbreviations))
        return resolver

    def __len__(self) -> int:
        return len(self._aliases) + len(self._abbreviations)

    def resolve(self, provider: str, label: Optional[str]) -> str:
        key = (label or "").strip()
        if key:
            team_id = self._aliases.get((provider, key))
            if team_id:
                return team_id
            team_id = self._abbreviations.get(key.upper())
            if team_id:
                return team_id
        raise UnresolvedTeamError(provider, label or "")
