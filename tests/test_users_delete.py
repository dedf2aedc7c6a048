from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from accounts_api.db.models.user import User as UserModel
from accounts_api.domain.account_state import AccountState, state_of
from accounts_api.domain.auth_context import AuthContext
from accounts_api.domain.roles import Role
from accounts_api.errors import NotFoundError
import accounts_api.repositories.user as user_repo
from accounts_api.schemas.event import EventType
from accounts_api.services.user import soft_delete_user


def test_super_admin_soft_deletes_partner(client, notifier, auth_headers, super_admin, partner, db: Session):
    response = client.delete(f"/api/v1/users/{partner.id}", headers=auth_headers(super_admin))
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == partner.id
    assert data["deleted_at"] is not None

    stored = db.get(UserModel, partner.id)
    assert state_of(
        role=stored.role, is_valid=stored.is_valid, deleted_at=stored.deleted_at
    ) is AccountState.DELETED

    events = notifier.of_type(EventType.USER_DELETED)
    assert len(events) == 1
    assert events[0].payload["id"] == partner.id
    assert events[0].routing_key == "user.user_deleted"


def test_second_delete_is_not_found(client, notifier, auth_headers, super_admin, partner):
    assert client.delete(
        f"/api/v1/users/{partner.id}", headers=auth_headers(super_admin)
    ).status_code == 200

    response = client.delete(f"/api/v1/users/{partner.id}", headers=auth_headers(super_admin))
    assert response.status_code == 404
    assert response.json()["detail"] == f"User with ID {partner.id} not found."

    assert len(notifier.of_type(EventType.USER_DELETED)) == 1
    failed = notifier.of_type(EventType.USER_DELETION_FAILED)
    assert len(failed) == 1
    assert failed[0].payload["user_id"] == partner.id


def test_deleted_user_disappears_from_reads(client, auth_headers, super_admin, driver):
    client.delete(f"/api/v1/users/{driver.id}", headers=auth_headers(super_admin))

    response = client.get(f"/api/v1/users/{driver.id}", headers=auth_headers(super_admin))
    assert response.status_code == 404

    response = client.get("/api/v1/users", headers=auth_headers(super_admin))
    assert driver.id not in [u["id"] for u in response.json()["items"]]


def test_admin_cannot_delete_admin(client, notifier, auth_headers, admin, other_admin):
    response = client.delete(f"/api/v1/users/{other_admin.id}", headers=auth_headers(admin))
    assert response.status_code == 403
    assert response.json()["detail"] == (
        "You can only delete Assistant Admin, Partner or Driver users."
    )
    assert notifier.events == []


def test_super_admin_cannot_delete_itself(client, notifier, auth_headers, super_admin):
    response = client.delete(f"/api/v1/users/{super_admin.id}", headers=auth_headers(super_admin))
    assert response.status_code == 403
    assert notifier.events == []


@pytest.mark.parametrize(
    "actor_fixture, target_fixture, status_code",
    [
        ("admin", "assistant", 200),
        ("admin", "driver", 200),
        ("admin", "client_account", 403),
        ("assistant", "partner", 200),
        ("assistant", "admin", 403),
        ("partner", "client_account", 200),
        ("driver", "partner", 403),
        ("client_account", "partner", 403),
    ],
)
def test_delete_matrix(client, request, auth_headers, actor_fixture, target_fixture, status_code):
    actor = request.getfixturevalue(actor_fixture)
    target = request.getfixturevalue(target_fixture)
    response = client.delete(f"/api/v1/users/{target.id}", headers=auth_headers(actor))
    assert response.status_code == status_code


def test_partner_cannot_delete_foreign_client(client, auth_headers, make_user, partner):
    other_partner = make_user(Role.PARTNER, "other.partner@example.com", is_valid=True)
    foreign = make_user(Role.CLIENT, "foreign@example.com", created_by=other_partner.id)
    response = client.delete(f"/api/v1/users/{foreign.id}", headers=auth_headers(partner))
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only delete your own Client users."


def test_delete_missing_user_emits_failure(client, notifier, auth_headers, super_admin):
    missing = "00000000-0000-0000-0000-000000000000"
    response = client.delete(f"/api/v1/users/{missing}", headers=auth_headers(super_admin))
    assert response.status_code == 404
    assert notifier.types() == ["USER_DELETION_FAILED"]


def test_storage_failure_emits_critical_error(db: Session, notifier, super_admin, partner):
    actor = AuthContext.from_account(super_admin)
    with patch(
        "accounts_api.services.user.user_repo.conditional_update",
        side_effect=OperationalError("UPDATE users", {}, Exception("disk I/O error")),
    ):
        with pytest.raises(OperationalError):
            soft_delete_user(db, notifier, actor, partner.id)

    events = notifier.of_type(EventType.CRITICAL_ERROR)
    assert len(events) == 1
    assert events[0].payload["action"] == "USER_SOFT_REMOVE"
    assert events[0].payload["user_id"] == partner.id
    assert "disk I/O error" in events[0].payload["error"]
    assert notifier.of_type(EventType.USER_DELETED) == []


def test_concurrent_delete_has_one_winner(db: Session, notifier, super_admin, partner):
    actor = AuthContext.from_account(super_admin)
    real_get_user_by_id = user_repo.get_user_by_id
    raced = []

    def load_then_lose_race(session, user_id):
        user = real_get_user_by_id(session, user_id)
        if not raced:
            raced.append(user_id)
            with Session(bind=db.get_bind()) as rival:
                soft_delete_user(rival, notifier, actor, user_id)
        return user

    with patch(
        "accounts_api.services.user.user_repo.get_user_by_id", side_effect=load_then_lose_race
    ):
        with pytest.raises(NotFoundError):
            soft_delete_user(db, notifier, actor, partner.id)

    assert notifier.types() == ["USER_DELETED", "USER_DELETION_FAILED"]
    assert notifier.of_type(EventType.USER_DELETION_FAILED)[0].payload["user_id"] == partner.id
