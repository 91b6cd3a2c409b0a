"""Authenticated caller identity handed to every service call."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """Verified caller: profile id plus the single platform role it holds."""

    id: str
    role: str
    email: str | None = None
    full_name: str | None = None
    org_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.id
