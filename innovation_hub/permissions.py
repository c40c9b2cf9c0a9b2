"""Roles and the capabilities they grant.

Call sites ask for a capability (``can(user, Capability.CREATE_CHALLENGES)``)
instead of matching role names, so the role table below is the only place that
decides who may do what.
"""
from typing import Iterable, List, Optional
import enum

from innovation_hub.models import User


class Role(enum.StrEnum):
    USER = "user"
    MANAGER = "manager"
    ADMINISTRATOR = "administrator"
    DEVELOPER = "developer"
    CHALLENGE_REVIEWER = "challenge_reviewer"


class Capability(enum.StrEnum):
    CREATE_CHALLENGES = "create_challenges"
    REVIEW_SUBMISSIONS = "review_submissions"
    VIEW_SUBMISSIONS = "view_submissions"


ROLE_CAPABILITIES = {
    Role.USER: frozenset(),
    Role.MANAGER: frozenset({Capability.CREATE_CHALLENGES, Capability.REVIEW_SUBMISSIONS, Capability.VIEW_SUBMISSIONS}),
    Role.ADMINISTRATOR: frozenset({Capability.CREATE_CHALLENGES, Capability.REVIEW_SUBMISSIONS, Capability.VIEW_SUBMISSIONS}),
    # developers can open submission lists but are not notified as reviewers
    Role.DEVELOPER: frozenset({Capability.CREATE_CHALLENGES, Capability.VIEW_SUBMISSIONS}),
    Role.CHALLENGE_REVIEWER: frozenset({Capability.REVIEW_SUBMISSIONS, Capability.VIEW_SUBMISSIONS}),
}


def user_roles(user: Optional[User]) -> set:
    if user is None:
        return set()
    known = {r.value for r in Role}
    return {Role(r) for r in user.role_set if r in known}


def has_any_role(user: Optional[User], roles: Iterable[str]) -> bool:
    wanted = {str(r) for r in roles}
    return any(str(r) in wanted for r in user_roles(user))


def capabilities(user: Optional[User]) -> set:
    granted = set()
    for role in user_roles(user):
        granted |= ROLE_CAPABILITIES[role]
    return granted


def can(user: Optional[User], capability: Capability) -> bool:
    return capability in capabilities(user)


def roles_with(capability: Capability) -> List[Role]:
    return [role for role, caps in ROLE_CAPABILITIES.items() if capability in caps]
