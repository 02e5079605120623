from datetime import timedelta

import pytest
from sqlalchemy import select

from groupwork.core.deps import acting_participant
from groupwork.core.errors import Conflict, Forbidden, InvalidParameter, NotFound, PolicyViolation
from groupwork.models.enums import ApplyType, PrincipalRole
from groupwork.models.group import Group
from groupwork.models.join_request import JoinRequest
from groupwork.models.sprint import Sprint
from groupwork.policies.rbac import Principal
from groupwork.services.audit_service import AuditAction, AuditService
from groupwork.services.group_formation_service import GroupFormationService
from groupwork.services.membership_service import (
    MembershipService,
    assert_group_invariants,
    group_invariant_violations,
)
from groupwork.tests.factories import (
    NOW,
    create_group,
    create_join_request,
    create_project,
    create_sprint,
    enroll,
    roster_snapshot,
)


def roles(db, group):
    db.expire_all()
    return [(p.user_id, p.role_in_group) for p in MembershipService().list_members(db, group.id)]


# ─────────────────────────────────────────────────────────────
# create_own_group
# ─────────────────────────────────────────────────────────────

def test_create_own_group_makes_student_leader(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    create_group(db, project, people[0])
    other = create_group(db, project, people[1])
    create_join_request(db, people[2], other)

    group = MembershipService().create_own_group(
        db, project_id=project.id, participant_id=people[2].id, now=NOW
    )

    assert group.number == 3
    assert roles(db, group) == [("s03", "LEADER")]
    # founding a group drops the founder's pending requests
    assert db.execute(select(JoinRequest)).scalars().all() == []
    assert_group_invariants(db, project.id)


def test_create_own_group_when_already_grouped(db):
    project = create_project(db)
    people = enroll(db, project, 1)
    create_group(db, project, people[0])

    with pytest.raises(Conflict):
        MembershipService().create_own_group(db, project_id=project.id, participant_id=people[0].id, now=NOW)


def test_create_own_group_policy_gates(db):
    closed = create_project(db, form_group_deadline=NOW - timedelta(seconds=1))
    late = enroll(db, closed, 1, prefix="late")[0]
    with pytest.raises(PolicyViolation):
        MembershipService().create_own_group(db, project_id=closed.id, participant_id=late.id, now=NOW)
    db.rollback()

    lecturer_only = create_project(db, allow_student_form_team=False)
    student = enroll(db, lecturer_only, 1, prefix="x")[0]
    with pytest.raises(PolicyViolation):
        MembershipService().create_own_group(db, project_id=lecturer_only.id, participant_id=student.id, now=NOW)
    db.rollback()

    # enrolled elsewhere
    with pytest.raises(NotFound):
        MembershipService().create_own_group(db, project_id=closed.id, participant_id=student.id, now=NOW)

    assert db.execute(select(Group)).scalars().all() == []


# ─────────────────────────────────────────────────────────────
# join requests
# ─────────────────────────────────────────────────────────────

def test_request_accept_flow(db):
    project = create_project(db)
    people = enroll(db, project, 4)
    g1 = create_group(db, project, people[0], people[1])
    g2 = create_group(db, project, people[2])
    svc = MembershipService()

    req1 = svc.request_to_join(db, group_id=g1.id, participant_id=people[3].id, now=NOW)
    svc.request_to_join(db, group_id=g2.id, participant_id=people[3].id, now=NOW)
    assert len(svc.list_join_requests(db, g1.id)) == 1

    summaries = svc.list_groups(db, project_id=project.id, viewer_participant_id=people[3].id)
    assert [(s.group.number, s.number_of_members, s.join_request_created) for s in summaries] == [
        (1, 2, True),
        (2, 1, True),
    ]
    assert summaries[0].leader.user_id == "s01"

    member = svc.accept_join_request(
        db, group_id=g1.id, request_id=req1.id, acting_participant_id=people[0].id, now=NOW
    )

    assert member.id == people[3].id
    assert roles(db, g1) == [("s01", "LEADER"), ("s02", "MEMBER"), ("s04", "MEMBER")]
    # every other pending request of the new member is gone too
    assert db.execute(select(JoinRequest)).scalars().all() == []
    assert svc.list_unassigned(db, project_id=project.id) == []
    assert_group_invariants(db, project.id)


def test_request_to_join_rejections(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0])
    svc = MembershipService()

    with pytest.raises(Conflict):
        svc.request_to_join(db, group_id=g.id, participant_id=people[0].id, now=NOW)
    db.rollback()

    svc.request_to_join(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    with pytest.raises(Conflict):
        svc.request_to_join(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    db.rollback()

    other = create_project(db)
    stranger = enroll(db, other, 1, prefix="o")[0]
    with pytest.raises(InvalidParameter):
        svc.request_to_join(db, group_id=g.id, participant_id=stranger.id, now=NOW)
    db.rollback()

    with pytest.raises(NotFound):
        svc.request_to_join(db, group_id=other.id, participant_id=people[2].id, now=NOW)


def test_request_to_join_after_join_deadline(db):
    project = create_project(db, join_deadline=NOW - timedelta(minutes=5))
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0])

    with pytest.raises(PolicyViolation):
        MembershipService().request_to_join(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    db.rollback()
    assert db.execute(select(JoinRequest)).scalars().all() == []


def test_only_leader_accepts(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1])
    req = create_join_request(db, people[2], g)

    with pytest.raises(Forbidden):
        MembershipService().accept_join_request(
            db, group_id=g.id, request_id=req.id, acting_participant_id=people[1].id, now=NOW
        )
    db.rollback()
    assert db.get(JoinRequest, req.id) is not None


def test_accept_when_requester_already_joined_elsewhere(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g1 = create_group(db, project, people[0])
    g2 = create_group(db, project, people[1])
    req = create_join_request(db, people[2], g1)
    people[2].group_id = g2.id
    people[2].role_in_group = "MEMBER"
    db.commit()

    with pytest.raises(Conflict):
        MembershipService().accept_join_request(
            db, group_id=g1.id, request_id=req.id, acting_participant_id=people[0].id, now=NOW
        )


def test_accept_request_of_another_group(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g1 = create_group(db, project, people[0])
    g2 = create_group(db, project, people[1])
    req = create_join_request(db, people[2], g2)

    with pytest.raises(NotFound):
        MembershipService().accept_join_request(
            db, group_id=g1.id, request_id=req.id, acting_participant_id=people[0].id, now=NOW
        )


def test_withdraw_join_request(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0])
    req = create_join_request(db, people[1], g)
    svc = MembershipService()

    with pytest.raises(Forbidden):
        svc.withdraw_join_request(db, group_id=g.id, request_id=req.id, acting_participant_id=people[2].id)
    db.rollback()

    svc.withdraw_join_request(db, group_id=g.id, request_id=req.id, acting_participant_id=people[1].id)
    assert db.get(JoinRequest, req.id) is None

    with pytest.raises(NotFound):
        svc.withdraw_join_request(db, group_id=g.id, request_id=req.id, acting_participant_id=people[1].id)


# ─────────────────────────────────────────────────────────────
# leadership / removal / leaving
# ─────────────────────────────────────────────────────────────

def test_transfer_leadership_swaps_roles(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1], people[2])

    new_leader = MembershipService().transfer_leadership(
        db, group_id=g.id, new_leader_id=people[2].id, acting_participant_id=people[0].id
    )

    assert new_leader.id == people[2].id
    assert roles(db, g) == [("s01", "MEMBER"), ("s02", "MEMBER"), ("s03", "LEADER")]
    assert_group_invariants(db, project.id)


def test_transfer_leadership_rejections(db):
    project = create_project(db)
    people = enroll(db, project, 4)
    g = create_group(db, project, people[0], people[1])
    create_group(db, project, people[2])
    svc = MembershipService()
    before = roster_snapshot(db, project)

    with pytest.raises(Forbidden):
        svc.transfer_leadership(db, group_id=g.id, new_leader_id=people[0].id, acting_participant_id=people[1].id)
    db.rollback()
    with pytest.raises(InvalidParameter):
        svc.transfer_leadership(db, group_id=g.id, new_leader_id=people[2].id, acting_participant_id=people[0].id)
    db.rollback()
    with pytest.raises(InvalidParameter):
        svc.transfer_leadership(db, group_id=g.id, new_leader_id=people[3].id, acting_participant_id=people[0].id)
    db.rollback()
    with pytest.raises(InvalidParameter):
        svc.transfer_leadership(db, group_id=g.id, new_leader_id=people[0].id, acting_participant_id=people[0].id)
    db.rollback()

    assert roster_snapshot(db, project) == before


def test_transfer_leadership_ignores_formation_deadline(db):
    project = create_project(db, form_group_deadline=NOW - timedelta(days=1))
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0], people[1])

    MembershipService().transfer_leadership(
        db, group_id=g.id, new_leader_id=people[1].id, acting_participant_id=people[0].id
    )
    assert roles(db, g) == [("s01", "MEMBER"), ("s02", "LEADER")]


def test_leader_removes_member(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1], people[2])

    MembershipService().remove_member(
        db, group_id=g.id, target_participant_id=people[1].id, acting_participant_id=people[0].id, now=NOW
    )

    assert roles(db, g) == [("s01", "LEADER"), ("s03", "MEMBER")]
    assert [p.user_id for p in MembershipService().list_unassigned(db, project_id=project.id)] == ["s02"]
    assert_group_invariants(db, project.id)


def test_remove_member_rejections(db):
    project = create_project(db)
    people = enroll(db, project, 4)
    g = create_group(db, project, people[0], people[1], people[2])
    svc = MembershipService()
    before = roster_snapshot(db, project)

    cases = [
        (Forbidden, people[2].id, people[1].id),   # not the leader
        (Forbidden, people[0].id, people[0].id),   # leader removing self
        (NotFound, people[3].id, people[0].id),    # not in the group
    ]
    for error, target, acting in cases:
        with pytest.raises(error):
            svc.remove_member(db, group_id=g.id, target_participant_id=target, acting_participant_id=acting, now=NOW)
        db.rollback()

    assert roster_snapshot(db, project) == before


def test_remove_member_after_formation_deadline(db):
    project = create_project(db, form_group_deadline=NOW - timedelta(seconds=1))
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0], people[1])
    before = roster_snapshot(db, project)

    with pytest.raises(PolicyViolation):
        MembershipService().remove_member(
            db, group_id=g.id, target_participant_id=people[1].id, acting_participant_id=people[0].id, now=NOW
        )
    db.rollback()

    assert roster_snapshot(db, project) == before


def test_member_leaves(db):
    project = create_project(db)
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0], people[1])

    deleted = MembershipService().leave(db, group_id=g.id, participant_id=people[1].id, now=NOW)

    assert deleted is False
    assert roles(db, g) == [("s01", "LEADER")]
    assert_group_invariants(db, project.id)


def test_sole_leader_leaving_deletes_group(db):
    project = create_project(db)
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0])
    create_join_request(db, people[1], g)
    create_sprint(db, g)
    group_id = g.id

    deleted = MembershipService().leave(db, group_id=group_id, participant_id=people[0].id, now=NOW)

    assert deleted is True
    db.expire_all()
    assert db.get(Group, group_id) is None
    assert db.execute(select(JoinRequest)).scalars().all() == []
    assert db.execute(select(Sprint)).scalars().all() == []
    assert people[0].group_id is None
    assert people[0].role_in_group is None
    assert_group_invariants(db, project.id)


def test_leave_rejections(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1])
    svc = MembershipService()

    # leader with others still in the group
    with pytest.raises(Conflict):
        svc.leave(db, group_id=g.id, participant_id=people[0].id, now=NOW)
    db.rollback()

    with pytest.raises(NotFound):
        svc.leave(db, group_id=g.id, participant_id=people[2].id, now=NOW)
    db.rollback()

    assert roles(db, g) == [("s01", "LEADER"), ("s02", "MEMBER")]


def test_leave_mandatory_project(db):
    project = create_project(db, participation_mode="mandatory")
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0], people[1])

    with pytest.raises(PolicyViolation):
        MembershipService().leave(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    db.rollback()

    assert roles(db, g) == [("s01", "LEADER"), ("s02", "MEMBER")]


def test_leave_after_formation_deadline(db):
    project = create_project(db, form_group_deadline=NOW - timedelta(hours=1))
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0], people[1])

    with pytest.raises(PolicyViolation):
        MembershipService().leave(db, group_id=g.id, participant_id=people[1].id, now=NOW)


# ─────────────────────────────────────────────────────────────
# lecturer overrides
# ─────────────────────────────────────────────────────────────

def test_lecturer_assigns_student(db):
    project = create_project(db, allow_student_form_team=False)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0])
    create_join_request(db, people[1], g)
    svc = MembershipService()

    assigned = svc.assign_participant(db, group_id=g.id, participant_id=people[1].id, actor_user_id="lect", now=NOW)

    assert assigned.role_in_group == "MEMBER"
    assert roles(db, g) == [("s01", "LEADER"), ("s02", "MEMBER")]
    assert db.execute(select(JoinRequest)).scalars().all() == []

    with pytest.raises(Conflict):
        svc.assign_participant(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    db.rollback()
    assert_group_invariants(db, project.id)


def test_lecturer_unassigns_leader_and_successor_takes_over(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[2], people[1])
    svc = MembershipService()

    successor = svc.unassign_participant(db, group_id=g.id, participant_id=people[0].id, now=NOW)

    # earliest joined, not lowest id
    assert successor.id == people[2].id
    assert roles(db, g) == [("s03", "LEADER"), ("s02", "MEMBER")]
    assert_group_invariants(db, project.id)


def test_lecturer_unassigns_last_member(db):
    project = create_project(db)
    people = enroll(db, project, 1)
    g = create_group(db, project, people[0])
    group_id = g.id

    successor = MembershipService().unassign_participant(db, group_id=group_id, participant_id=people[0].id, now=NOW)

    assert successor is None
    db.expire_all()
    assert db.get(Group, group_id) is None
    assert_group_invariants(db, project.id)


def test_lecturer_overrides_respect_formation_deadline(db):
    project = create_project(db, form_group_deadline=NOW - timedelta(minutes=1))
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1])
    svc = MembershipService()
    before = roster_snapshot(db, project)

    with pytest.raises(PolicyViolation):
        svc.assign_participant(db, group_id=g.id, participant_id=people[2].id, now=NOW)
    db.rollback()
    with pytest.raises(PolicyViolation):
        svc.unassign_participant(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    db.rollback()

    assert roster_snapshot(db, project) == before


# ─────────────────────────────────────────────────────────────
# invariant guard
# ─────────────────────────────────────────────────────────────

def test_invariant_guard_reports_broken_rosters(db):
    project = create_project(db)
    people = enroll(db, project, 3)
    g = create_group(db, project, people[0], people[1])
    assert group_invariant_violations(db, project.id) == []

    people[1].role_in_group = "LEADER"
    db.add(Group(project_id=project.id, number=7))
    people[2].role_in_group = "MEMBER"
    db.commit()

    problems = group_invariant_violations(db, project.id)
    assert "group 1: 2 leaders" in problems
    assert "group 7: empty" in problems
    assert "participant s03: group link and role disagree" in problems
    with pytest.raises(AssertionError):
        assert_group_invariants(db, project.id)
    assert g.number == 1


def test_mutations_leave_an_audit_trail(db):
    project = create_project(db)
    people = enroll(db, project, 2)
    g = create_group(db, project, people[0])
    svc = MembershipService()

    req = svc.request_to_join(db, group_id=g.id, participant_id=people[1].id, now=NOW)
    svc.accept_join_request(db, group_id=g.id, request_id=req.id, acting_participant_id=people[0].id, now=NOW)

    trail = AuditService().history(db, project_id=project.id, group_id=g.id)
    assert sorted((a.action, a.actor_user_id) for a in trail) == [
        (AuditAction.JOIN_ACCEPTED, "s01"),
        (AuditAction.JOIN_REQUESTED, "s02"),
    ]


# ─────────────────────────────────────────────────────────────
# concurrent sessions
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def sessions(session_factory):
    first, second = session_factory(), session_factory()
    try:
        yield first, second
    finally:
        first.close()
        second.close()


def as_student(user_id):
    return Principal(user_id=user_id, role=PrincipalRole.STUDENT, display_name=user_id)


def test_transfer_by_a_leader_who_was_replaced_meanwhile(db, sessions):
    first, second = sessions
    project = create_project(db)
    a, b, c = enroll(db, project, 3)
    g = create_group(db, project, a, b, c)

    # the request resolves its caller before the service takes any lock
    stale_leader = acting_participant(second, as_student("s01"), project.id)
    assert stale_leader.role_in_group == "LEADER"

    MembershipService().transfer_leadership(
        first, group_id=g.id, new_leader_id=b.id, acting_participant_id=a.id
    )

    with pytest.raises(Forbidden):
        MembershipService().transfer_leadership(
            second, group_id=g.id, new_leader_id=c.id, acting_participant_id=stale_leader.id
        )
    second.rollback()

    assert roles(db, g) == [("s01", "MEMBER"), ("s02", "LEADER"), ("s03", "MEMBER")]
    assert group_invariant_violations(db, project.id) == []


def test_leave_by_a_member_who_was_promoted_meanwhile(db, sessions):
    first, second = sessions
    project = create_project(db)
    a, b = enroll(db, project, 2)
    g = create_group(db, project, a, b)

    stale_member = acting_participant(second, as_student("s02"), project.id)
    assert stale_member.role_in_group == "MEMBER"

    MembershipService().transfer_leadership(
        first, group_id=g.id, new_leader_id=b.id, acting_participant_id=a.id
    )

    with pytest.raises(Conflict):
        MembershipService().leave(second, group_id=g.id, participant_id=stale_member.id, now=NOW)
    second.rollback()

    assert roles(db, g) == [("s01", "MEMBER"), ("s02", "LEADER")]
    assert group_invariant_violations(db, project.id) == []


def test_join_request_after_repartition_removed_the_group(db, sessions):
    first, second = sessions
    project = create_project(db)
    people = enroll(db, project, 4)
    g = create_group(db, project, people[0], people[1])

    requester = acting_participant(second, as_student("s04"), project.id)
    MembershipService().get_group(second, g.id)

    result = GroupFormationService().partition(
        first, project_id=project.id, group_size=2, apply_type=ApplyType.all, now=NOW
    )
    assert result.dissolved_groups == 1

    with pytest.raises(NotFound):
        MembershipService().request_to_join(second, group_id=g.id, participant_id=requester.id, now=NOW)
    second.rollback()

    db.expire_all()
    assert db.execute(select(JoinRequest)).scalars().all() == []
    assert group_invariant_violations(db, project.id) == []


def test_two_leaders_accept_the_same_requester(db, sessions):
    first, second = sessions
    project = create_project(db)
    a, b, r = enroll(db, project, 3)
    g1 = create_group(db, project, a)
    g2 = create_group(db, project, b)
    req1 = create_join_request(db, r, g1)
    req2 = create_join_request(db, r, g2)

    leader_two = acting_participant(second, as_student("s02"), project.id)
    assert [j.id for j in MembershipService().list_join_requests(second, g2.id)] == [req2.id]

    MembershipService().accept_join_request(
        first, group_id=g1.id, request_id=req1.id, acting_participant_id=a.id, now=NOW
    )

    with pytest.raises(NotFound):
        MembershipService().accept_join_request(
            second, group_id=g2.id, request_id=req2.id, acting_participant_id=leader_two.id, now=NOW
        )
    second.rollback()

    assert roles(db, g1) == [("s01", "LEADER"), ("s03", "MEMBER")]
    assert roles(db, g2) == [("s02", "LEADER")]
    assert db.execute(select(JoinRequest)).scalars().all() == []
    assert group_invariant_violations(db, project.id) == []
