"""
LTI Launch Records

Typed, immutable view of a verified Basic LTI launch. The extractor reads
the launch parameters once the request signature has been checked and
never validates them further: a missing optional parameter simply leaves
the corresponding field as ``None``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Final, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

ROLE_SEPARATOR: Final[str] = ","

INSTRUCTOR_ROLES: Final[frozenset] = frozenset({
    "instructor",
    "teachingassistant",
    "contentdeveloper",
})
LEARNER_ROLES: Final[frozenset] = frozenset({
    "learner",
    "student",
})

_ROLE_SEGMENT = re.compile(r"[/:#]")


class LaunchParameterReader(Protocol):
    """Anything that can look up a single launch parameter by name."""

    def get_parameter(self, name: str) -> Optional[str]:
        ...


def _role_name(role: str) -> str:
    # urn:lti:role:ims/lis/Instructor and .../membership#Instructor reduce
    # to their last segment.
    return _ROLE_SEGMENT.split(role.strip())[-1].lower()


def parse_roles(roles: Optional[str]) -> Tuple[str, ...]:
    """
    Split a comma-delimited ``roles`` parameter.

    Each segment is stripped of surrounding whitespace. Order is kept and
    duplicates are preserved. An absent or blank parameter yields no roles.

    Args:
        roles: Raw ``roles`` launch parameter

    Returns:
        Tuple of role strings
    """
    if roles is None or not roles.strip():
        return ()
    return tuple(segment.strip() for segment in roles.split(ROLE_SEPARATOR))


@dataclass(frozen=True)
class User:
    """The launching user as asserted by the tool consumer."""

    identifier: Optional[str] = None
    roles: Tuple[str, ...] = field(default_factory=tuple)

    def has_role(self, role: str) -> bool:
        """
        Check for a role by its short name.

        ``Instructor`` matches ``Instructor``, ``instructor`` and
        ``urn:lti:role:ims/lis/Instructor``.
        """
        wanted = _role_name(role)
        return any(_role_name(candidate) == wanted for candidate in self.roles)

    @property
    def is_instructor(self) -> bool:
        return any(_role_name(role) in INSTRUCTOR_ROLES for role in self.roles)

    @property
    def is_learner(self) -> bool:
        return any(_role_name(role) in LEARNER_ROLES for role in self.roles)


@dataclass(frozen=True)
class LtiLaunchResult:
    """
    Immutable record of a verified launch.

    ``resource_link_id`` is required by LTI but is passed through as
    ``None`` when the consumer leaves it out; enforcing it is up to the
    caller.
    """

    user: User
    version: Optional[str] = None
    message_type: Optional[str] = None
    resource_link_id: Optional[str] = None
    context_id: Optional[str] = None
    launch_presentation_return_url: Optional[str] = None
    tool_consumer_instance_guid: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": {
                "id": self.user.identifier,
                "roles": list(self.user.roles),
            },
            "version": self.version,
            "message_type": self.message_type,
            "resource_link_id": self.resource_link_id,
            "context_id": self.context_id,
            "launch_presentation_return_url": self.launch_presentation_return_url,
            "tool_consumer_instance_guid": self.tool_consumer_instance_guid,
        }


def extract_launch_result(source: LaunchParameterReader) -> LtiLaunchResult:
    """
    Build the launch record from verified launch parameters.

    Args:
        source: Parameter source of a launch whose signature already verified

    Returns:
        LtiLaunchResult instance
    """
    user = User(
        identifier=source.get_parameter("user_id"),
        roles=parse_roles(source.get_parameter("roles")),
    )
    record = LtiLaunchResult(
        user=user,
        version=source.get_parameter("lti_version"),
        message_type=source.get_parameter("lti_message_type"),
        resource_link_id=source.get_parameter("resource_link_id"),
        context_id=source.get_parameter("context_id"),
        launch_presentation_return_url=source.get_parameter("launch_presentation_return_url"),
        tool_consumer_instance_guid=source.get_parameter("tool_consumer_instance_guid"),
    )
    logger.debug("Extracted launch for user %s with %d roles", user.identifier, len(user.roles))
    return record


__all__ = [
    "User",
    "LtiLaunchResult",
    "parse_roles",
    "extract_launch_result",
]
