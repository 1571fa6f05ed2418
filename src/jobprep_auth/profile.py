"""Profile completeness gate.

New users are routed through the setup wizard until their profile has a
name and at least one skill.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ProfileRecord

SETUP_ROUTE = "/profile-setup"
HOME_ROUTE = "/"


def is_profile_complete(profile: ProfileRecord | None) -> bool:
    """A profile is complete once it has a non-blank name and a skill."""
    if profile is None:
        return False
    return bool(profile.full_name and profile.full_name.strip() and profile.skills)


def next_route(profile: ProfileRecord | None) -> str:
    """Where a signed-in user should land."""
    return HOME_ROUTE if is_profile_complete(profile) else SETUP_ROUTE


__all__: list[str] = ["is_profile_complete", "next_route", "SETUP_ROUTE", "HOME_ROUTE"]
