from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller behind a verified bearer token.

    ``user_id`` is the token's ``sub`` as an int; ``roles`` come from the
    ``roles`` claim (student, instructor, admin).
    """

    user_id: int
    roles: frozenset[str]

    def has_any_role(self, roles: set[str]) -> bool:
        return not self.roles.isdisjoint(roles)
