from __future__ import annotations

from dataclasses import dataclass

GRADER_ROLES = frozenset({"instructor", "admin"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.
    user_id is the JWT subject; for students it is also the student id
    that keys their attempts.
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return bool(self.roles & roles)

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles

    def is_grader(self) -> bool:
        return self.has_any_role(GRADER_ROLES)
