"""Tests for roles and capabilities."""
from jobportal.core.roles import Capability, Role, has_capability


def test_employer_capabilities():
    assert has_capability(Role.EMPLOYER, Capability.POST_JOBS)
    assert has_capability("employer", Capability.VIEW_AUDIT_LOG)
    assert not has_capability(Role.EMPLOYER, Capability.APPLY_TO_JOBS)


def test_jobseeker_capabilities():
    assert has_capability(Role.JOBSEEKER, Capability.APPLY_TO_JOBS)
    assert not has_capability("jobseeker", Capability.VIEW_AUDIT_LOG)


def test_unknown_role_grants_nothing():
    assert not has_capability("admin", Capability.SAVE_JOBS)
