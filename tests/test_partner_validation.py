from accounts_api.schemas.event import EventType


def test_assistant_validates_partner(client, notifier, auth_headers, assistant, pending_partner):
    response = client.post(
        f"/api/v1/users/{pending_partner.id}/validate", headers=auth_headers(assistant)
    )
    assert response.status_code == 200
    assert response.json()["is_valid"] is True

    events = notifier.of_type(EventType.PARTNER_VALIDATED)
    assert len(events) == 1
    assert events[0].payload["id"] == pending_partner.id
    assert events[0].routing_key == "user.partner_validated"


def test_admin_invalidates_partner(client, notifier, auth_headers, admin, partner):
    response = client.post(f"/api/v1/users/{partner.id}/invalidate", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["is_valid"] is False
    assert notifier.types() == ["PARTNER_INVALIDATED"]


def test_validate_non_partner_is_forbidden(client, notifier, auth_headers, admin, driver):
    response = client.post(f"/api/v1/users/{driver.id}/validate", headers=auth_headers(admin))
    assert response.status_code == 403
    assert response.json()["detail"] == "Only PARTNER users can be validated."
    assert notifier.events == []


def test_invalidate_non_partner_is_forbidden(client, auth_headers, admin, driver):
    response = client.post(f"/api/v1/users/{driver.id}/invalidate", headers=auth_headers(admin))
    assert response.status_code == 403
    assert response.json()["detail"] == "Only PARTNER users can be invalidated."


def test_super_admin_cannot_validate_partner(client, auth_headers, super_admin, pending_partner):
    response = client.post(
        f"/api/v1/users/{pending_partner.id}/validate", headers=auth_headers(super_admin)
    )
    assert response.status_code == 403


def test_partner_cannot_validate_itself(client, auth_headers, partner):
    response = client.post(f"/api/v1/users/{partner.id}/validate", headers=auth_headers(partner))
    assert response.status_code == 403


def test_validate_missing_partner(client, auth_headers, admin):
    response = client.post(
        "/api/v1/users/00000000-0000-0000-0000-000000000000/validate",
        headers=auth_headers(admin),
    )
    assert response.status_code == 404


def test_validation_round_trip(client, notifier, auth_headers, admin, pending_partner):
    headers = auth_headers(admin)
    client.post(f"/api/v1/users/{pending_partner.id}/validate", headers=headers)
    client.post(f"/api/v1/users/{pending_partner.id}/invalidate", headers=headers)

    response = client.get(f"/api/v1/users/{pending_partner.id}", headers=headers)
    assert response.json()["is_valid"] is False
    assert notifier.types() == ["PARTNER_VALIDATED", "PARTNER_INVALIDATED"]
