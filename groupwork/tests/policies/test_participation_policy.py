from datetime import datetime, timedelta, timezone

import pytest

from groupwork.core.errors import Forbidden, PolicyViolation
from groupwork.models.enums import PrincipalRole
from groupwork.models.project import Project
from groupwork.policies.participation_policy import (
    can_form_or_modify_groups,
    can_join_group,
    can_leave,
    require_can_form_or_modify_groups,
    require_can_join_group,
    require_can_leave,
    require_student_group_formation,
    require_team_project,
)
from groupwork.policies.rbac import Principal, require_lecturer, require_student

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def project(**kw) -> Project:
    values = dict(
        title="P",
        type="TEAM",
        participation_mode="optional",
        allow_student_form_team=True,
        join_deadline=None,
        form_group_deadline=None,
    )
    values.update(kw)
    return Project(**values)


def test_no_deadline_never_closes():
    p = project()
    assert can_join_group(p, NOW) is True
    assert can_form_or_modify_groups(p, NOW) is True


def test_deadline_is_exclusive():
    p = project(join_deadline=NOW, form_group_deadline=NOW)
    assert can_join_group(p, NOW - timedelta(seconds=1)) is True
    assert can_join_group(p, NOW) is False
    assert can_form_or_modify_groups(p, NOW) is False
    assert can_form_or_modify_groups(p, NOW + timedelta(days=1)) is False


def test_join_and_formation_deadlines_are_independent():
    p = project(join_deadline=NOW - timedelta(days=1), form_group_deadline=NOW + timedelta(days=1))
    assert can_join_group(p, NOW) is False
    assert can_form_or_modify_groups(p, NOW) is True


def test_naive_deadline_is_read_as_utc():
    p = project(form_group_deadline=datetime(2026, 3, 2, 10, 0))
    assert can_form_or_modify_groups(p, NOW) is True
    assert can_form_or_modify_groups(p, NOW + timedelta(hours=2)) is False


def test_only_optional_participation_can_leave():
    assert can_leave(project(participation_mode="optional")) is True
    assert can_leave(project(participation_mode="mandatory")) is False


def test_raising_guards():
    closed = project(
        type="SOLO",
        participation_mode="mandatory",
        allow_student_form_team=False,
        join_deadline=NOW - timedelta(minutes=1),
        form_group_deadline=NOW - timedelta(minutes=1),
    )
    with pytest.raises(PolicyViolation):
        require_team_project(closed)
    with pytest.raises(PolicyViolation):
        require_can_join_group(closed, NOW)
    with pytest.raises(PolicyViolation):
        require_can_form_or_modify_groups(closed, NOW)
    with pytest.raises(PolicyViolation):
        require_can_leave(closed)
    with pytest.raises(PolicyViolation):
        require_student_group_formation(closed)

    # PolicyViolation is also a PermissionError
    with pytest.raises(PermissionError):
        require_can_leave(closed)

    open_ = project()
    require_team_project(open_)
    require_can_join_group(open_, NOW)
    require_can_form_or_modify_groups(open_, NOW)
    require_can_leave(open_)
    require_student_group_formation(open_)


def test_rbac_guards():
    lecturer = Principal(user_id="l1", role=PrincipalRole.LECTURER, display_name="L")
    student = Principal(user_id="s1", role=PrincipalRole.STUDENT, display_name="S")

    require_lecturer(lecturer)
    require_student(student)
    with pytest.raises(Forbidden):
        require_lecturer(student)
    with pytest.raises(Forbidden):
        require_student(lecturer)
