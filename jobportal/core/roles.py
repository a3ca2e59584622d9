"""Account roles and the capabilities they grant."""
from enum import Enum
from typing import Dict, FrozenSet, Union


class Role(str, Enum):
    """Closed set of account roles."""

    JOBSEEKER = "jobseeker"
    EMPLOYER = "employer"


class Capability(str, Enum):
    """Actions gated by role."""

    APPLY_TO_JOBS = "apply_to_jobs"
    SAVE_JOBS = "save_jobs"
    POST_JOBS = "post_jobs"
    REVIEW_APPLICATIONS = "review_applications"
    VIEW_AUDIT_LOG = "view_audit_log"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.JOBSEEKER: frozenset({
        Capability.APPLY_TO_JOBS,
        Capability.SAVE_JOBS,
    }),
    Role.EMPLOYER: frozenset({
        Capability.POST_JOBS,
        Capability.REVIEW_APPLICATIONS,
        Capability.VIEW_AUDIT_LOG,
    }),
}


def has_capability(role: Union[Role, str], capability: Capability) -> bool:
    """Return True when ``role`` grants ``capability``; unknown roles grant nothing."""
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
