"""Tests for the desired-vs-current membership diff."""

from gm_sync.models import PendingRemoval
from gm_sync.reconciler import find_additions, find_removals, reconcile
from gm_sync.roles import RoleResolver

from .factories import CUSTOM_ADMIN, DEFAULT_ROLES, desired, member, snapshot


def _resolver(*extra):
    return RoleResolver([*DEFAULT_ROLES, *extra])


def test_exact_match_converges():
    snap = snapshot([member("bob@acme.com", ("Acme", "collaborator"))])
    diff = reconcile(snap, _resolver(), [desired("bob@acme.com", "Acme", "COLLABORATOR")])
    assert diff.is_empty


def test_email_match_ignores_case():
    snap = snapshot([member("Bob@Acme.com", ("Acme", "admin"))])
    diff = reconcile(snap, _resolver(), [desired("bob@acme.com", "Acme", "admin")])
    assert diff.is_empty


def test_role_change_is_an_addition_for_existing_org_member():
    snap = snapshot([member("bob@acme.com", ("Acme", "COLLABORATOR"))])
    additions = find_additions(snap, _resolver(), [desired("bob@acme.com", "Acme", "ADMIN")])
    assert len(additions) == 1
    assert additions[0].user_email == "bob@acme.com"
    assert additions[0].role == "ADMIN"
    assert additions[0].user_exists_in_org is True


def test_new_org_membership_is_flagged_as_not_in_org():
    snap = snapshot([member("bob@acme.com", ("Acme", "admin"))])
    additions = find_additions(snap, _resolver(), [desired("bob@acme.com", "Globex", "admin")])
    assert [(a.org, a.user_exists_in_org) for a in additions] == [("Globex", False)]


def test_unknown_user_is_an_addition():
    additions = find_additions(snapshot(), _resolver(), [desired("erin@acme.com", "Acme", "admin")])
    assert additions[0].user_exists_in_org is False


def test_custom_admin_forces_role_update():
    snap = snapshot([member("bob@acme.com", ("Acme", "admin"))], roles=[*DEFAULT_ROLES, CUSTOM_ADMIN])
    diff = reconcile(snap, _resolver(CUSTOM_ADMIN), [desired("bob@acme.com", "Acme", "ADMIN")])

    assert len(diff.additions) == 1
    assert diff.additions[0].user_exists_in_org is True
    # Removal comparison stays literal
    assert diff.removals == ()


def test_custom_admin_does_not_affect_collaborator_matches():
    snap = snapshot([member("bob@acme.com", ("Acme", "collaborator"))])
    diff = reconcile(snap, _resolver(CUSTOM_ADMIN), [desired("bob@acme.com", "Acme", "collaborator")])
    assert diff.is_empty


def test_group_admins_are_never_touched():
    snap = snapshot([
        member("gina@acme.com", ("Acme", "admin"), ("Globex", "collaborator"), group_role="admin"),
    ])
    diff = reconcile(snap, _resolver(), [desired("gina@acme.com", "Acme", "collaborator")])

    assert diff.removals == ()
    # Group admins are skipped in the member scan, so the row is an addition
    assert [a.user_exists_in_org for a in diff.additions] == [False]


def test_unlisted_membership_is_removed():
    snap = snapshot([member("carol@acme.com", ("Acme", "admin"), ("Globex", "collaborator"))])
    removals = find_removals(snap, [desired("carol@acme.com", "Acme", "admin")])
    assert removals == [PendingRemoval(user_email="carol@acme.com", role="collaborator", org="Globex")]


def test_role_mismatch_is_a_removal_candidate():
    snap = snapshot([member("bob@acme.com", ("Acme", "COLLABORATOR"))])
    diff = reconcile(snap, _resolver(), [desired("bob@acme.com", "Acme", "ADMIN")])
    assert diff.removals == (
        PendingRemoval(user_email="bob@acme.com", role="COLLABORATOR", org="Acme"),
    )


def test_member_absent_from_file_loses_every_org():
    snap = snapshot([member("dan@acme.com", ("Acme", "admin"), ("Globex", "admin"))])
    removals = find_removals(snap, [])
    assert {r.org for r in removals} == {"Acme", "Globex"}


def test_summary_counts():
    snap = snapshot([member("dan@acme.com", ("Acme", "admin"))])
    diff = reconcile(snap, _resolver(), [desired("erin@acme.com", "Acme", "admin")])
    assert diff.summary == {"additions": 1, "removals": 1}
