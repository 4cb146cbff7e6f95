from uuid import UUID

from fastapi import status

from src.radorder.infra.db import inmemory as inmemory_repos
from src.radorder.services.patients.service import patient_service


def auth(token):
    return {"Authorization": f"Bearer {token}"}


COMPLETE_DEMOGRAPHICS = {
    "address_line1": "12 Oak Street",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62704",
    "phone_number": "555-123-4567",
}


def _order_payload(radiology_org_id, **overrides):
    payload = {
        "radiology_organization_id": radiology_org_id,
        "patient_first_name": "Jamie",
        "patient_last_name": "Rivera",
        "patient_date_of_birth": "1979-04-02",
        "original_dictation": "Right shoulder pain, suspected labral tear. MRI requested.",
        "modality": "MRI",
        "body_part": "shoulder",
        "laterality": "right",
        "icd10_codes": [{"code": "M25.511"}, {"code": "Z99.999", "description": "Submitted description"}],
        "cpt_code": {"code": "73221"},
        "validation_status": "valid",
        "compliance_score": 8,
        "validation_notes": "Usually appropriate.",
    }
    payload.update(overrides)
    return payload


async def test_process_dictation_uses_fallback_without_credentials(client, linked_orgs, shoulder_dictation):
    orgs = await linked_orgs()

    response = await client.post(
        "/api/v1/orders/process-dictation",
        json={"dictation_text": shoulder_dictation, "specialty": "Orthopedics"},
        headers=auth(orgs["referring"]["access_token"]),
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["source"] == "fallback"
    assert body["fallback_reason"] == "missing_credentials"
    assert body["specialty"] == "Orthopedics"
    assert body["result"]["validationStatus"] == "valid"
    assert sum(code["isPrimary"] for code in body["result"]["diagnosisCodes"]) == 1


async def test_process_dictation_rejects_short_text(client, linked_orgs):
    orgs = await linked_orgs()
    response = await client.post(
        "/api/v1/orders/process-dictation",
        json={"dictation_text": "MRI shoulder"},
        headers=auth(orgs["referring"]["access_token"]),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_order_lifecycle(client, linked_orgs):
    orgs = await linked_orgs()
    referring = auth(orgs["referring"]["access_token"])
    radiology = auth(orgs["radiology"]["access_token"])

    created = await client.post(
        "/api/v1/orders", json=_order_payload(orgs["radiology"]["organization"]["id"]), headers=referring
    )
    assert created.status_code == status.HTTP_201_CREATED, created.text
    order = created.json()
    order_id = order["id"]
    assert order["status"] == "pending_signature"
    assert order["order_number"].startswith("ROP-")
    assert order["icd10_codes"] == "M25.511,Z99.999"
    assert order["icd10_code_descriptions"] == "M25.511: Pain in right shoulder,Z99.999: Submitted description"
    assert order["cpt_code_description"] == "MRI upper extremity joint without contrast"
    assert [event["event_type"] for event in order["history"]] == ["created"]

    patient = await client.get(f"/api/v1/patients/{order['patient_id']}", headers=referring)
    assert patient.status_code == status.HTTP_200_OK
    assert patient.json()["last_name"] == "Rivera"

    updated = await client.patch(
        f"/api/v1/orders/{order_id}",
        json={"priority": "urgent", "note": "Patient prefers mornings."},
        headers=referring,
    )
    assert updated.status_code == status.HTTP_200_OK
    assert updated.json()["priority"] == "urgent"
    assert updated.json()["notes"][0]["note"] == "Patient prefers mornings."

    signed = await client.post(f"/api/v1/orders/{order_id}/sign", headers=referring)
    assert signed.status_code == status.HTTP_200_OK
    signed_order = signed.json()
    assert signed_order["status"] == "pending_patient_info"
    assert signed_order["signed_by_user_id"] == orgs["referring"]["user"]["id"]
    assert signed_order["signature_date"] is not None

    locked = await client.patch(f"/api/v1/orders/{order_id}", json={"priority": "stat"}, headers=referring)
    assert locked.status_code == status.HTTP_409_CONFLICT

    hidden = await client.get(f"/api/v1/orders/{order_id}", headers=radiology)
    assert hidden.status_code == status.HTTP_403_FORBIDDEN
    assert (await client.get("/api/v1/orders", headers=radiology)).json() == []

    pending = await client.get("/api/v1/orders/pending-patient-info", headers=referring)
    assert [o["id"] for o in pending.json()] == [order_id]

    incomplete = await client.post(
        f"/api/v1/orders/{order_id}/complete-patient-info",
        json={"address_line1": "12 Oak Street"},
        headers=referring,
    )
    assert incomplete.status_code == status.HTTP_400_BAD_REQUEST
    assert incomplete.json()["code"] == "PATIENT_INFO_INCOMPLETE"

    completed = await client.post(
        f"/api/v1/orders/{order_id}/complete-patient-info",
        json={**COMPLETE_DEMOGRAPHICS, "insurance_provider": "Acme Health", "note": "Insurance verified."},
        headers=referring,
    )
    assert completed.status_code == status.HTTP_200_OK
    final = completed.json()
    assert final["status"] == "complete"
    assert final["insurance_provider"] == "Acme Health"
    assert [event["event_type"] for event in final["history"]] == ["created", "updated", "signed", "status_changed"]
    assert final["history"][-1]["previous_status"] == "pending_patient_info"

    visible = await client.get(f"/api/v1/orders/{order_id}", headers=radiology)
    assert visible.status_code == status.HTTP_200_OK
    assert [o["id"] for o in (await client.get("/api/v1/orders", headers=radiology)).json()] == [order_id]


async def test_signing_complete_patient_goes_straight_to_complete(client, linked_orgs):
    orgs = await linked_orgs()
    referring = auth(orgs["referring"]["access_token"])
    order = (
        await client.post(
            "/api/v1/orders", json=_order_payload(orgs["radiology"]["organization"]["id"]), headers=referring
        )
    ).json()

    patient_service.update_demographics(UUID(order["patient_id"]), **COMPLETE_DEMOGRAPHICS)

    signed = await client.post(f"/api/v1/orders/{order['id']}/sign", headers=referring)
    assert signed.json()["status"] == "complete"


async def test_unvalidated_order_cannot_be_signed(client, linked_orgs):
    orgs = await linked_orgs()
    referring = auth(orgs["referring"]["access_token"])
    payload = _order_payload(orgs["radiology"]["organization"]["id"], validation_status="invalid")
    order = (await client.post("/api/v1/orders", json=payload, headers=referring)).json()

    response = await client.post(f"/api/v1/orders/{order['id']}/sign", headers=referring)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "VALIDATION_REQUIRED"


async def test_override_justification_allows_signing(client, linked_orgs):
    orgs = await linked_orgs()
    referring = auth(orgs["referring"]["access_token"])
    payload = _order_payload(
        orgs["radiology"]["organization"]["id"],
        validation_status="invalid",
        override_justification="Orthopedic surgeon requested pre-operative imaging.",
    )
    order = (await client.post("/api/v1/orders", json=payload, headers=referring)).json()
    assert order["validation_status"] == "override"

    response = await client.post(f"/api/v1/orders/{order['id']}/sign", headers=referring)
    assert response.status_code == status.HTTP_200_OK


async def test_order_requires_active_relationship(client, register_org):
    referring = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")
    radiology = await register_org("Metro Imaging", "radiology_group", "admin@metro.example.com")

    response = await client.post(
        "/api/v1/orders",
        json=_order_payload(radiology["organization"]["id"]),
        headers=auth(referring["access_token"]),
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "NO_ACTIVE_RELATIONSHIP"


async def test_radiology_group_cannot_create_orders(client, linked_orgs):
    orgs = await linked_orgs()
    response = await client.post(
        "/api/v1/orders",
        json=_order_payload(orgs["radiology"]["organization"]["id"]),
        headers=auth(orgs["radiology"]["access_token"]),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_only_the_creator_signs(client, linked_orgs):
    orgs = await linked_orgs()
    admin = auth(orgs["referring"]["access_token"])
    order = (
        await client.post("/api/v1/orders", json=_order_payload(orgs["radiology"]["organization"]["id"]), headers=admin)
    ).json()

    invite = await client.post(
        "/api/v1/invitations",
        json={"email": "doctor@lakeside.example.com", "role": "physician"},
        headers=admin,
    )
    await client.post(
        "/api/v1/invitations/accept",
        json={"token": invite.json()["token"], "password": "doctor-pass", "first_name": "Dana", "last_name": "Reyes"},
    )
    login = await client.post(
        "/api/v1/auth/login", json={"email": "doctor@lakeside.example.com", "password": "doctor-pass"}
    )
    physician = auth(login.json()["access_token"])

    response = await client.post(f"/api/v1/orders/{order['id']}/sign", headers=physician)
    assert response.status_code == status.HTTP_403_FORBIDDEN

    # Physicians cannot work the patient-information queue.
    queue = await client.get("/api/v1/orders/pending-patient-info", headers=physician)
    assert queue.status_code == status.HTTP_403_FORBIDDEN


async def test_unrelated_organization_gets_404(client, linked_orgs, register_org):
    orgs = await linked_orgs()
    order = (
        await client.post(
            "/api/v1/orders",
            json=_order_payload(orgs["radiology"]["organization"]["id"]),
            headers=auth(orgs["referring"]["access_token"]),
        )
    ).json()
    stranger = await register_org("Hillside Clinic", "referring_practice", "admin@hillside.example.com")

    response = await client.get(f"/api/v1/orders/{order['id']}", headers=auth(stranger["access_token"]))
    assert response.status_code == status.HTTP_404_NOT_FOUND

    assert inmemory_repos.order_repository.get_by_number(order["order_number"]) is not None


async def test_rejected_patient_info_leaves_patient_unchanged(client, linked_orgs):
    orgs = await linked_orgs()
    referring = auth(orgs["referring"]["access_token"])
    order = (
        await client.post(
            "/api/v1/orders", json=_order_payload(orgs["radiology"]["organization"]["id"]), headers=referring
        )
    ).json()
    await client.post(f"/api/v1/orders/{order['id']}/sign", headers=referring)

    response = await client.post(
        f"/api/v1/orders/{order['id']}/complete-patient-info",
        json={"address_line1": "12 Oak Street", "city": "Springfield"},
        headers=referring,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    patient = (await client.get(f"/api/v1/patients/{order['patient_id']}", headers=referring)).json()
    assert patient["address_line1"] is None
    assert patient["city"] is None


async def test_rejected_order_creates_no_patient(client, linked_orgs):
    orgs = await linked_orgs()
    payload = _order_payload(orgs["radiology"]["organization"]["id"], validation_status="override")

    response = await client.post("/api/v1/orders", json=payload, headers=auth(orgs["referring"]["access_token"]))
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    assert patient_service.list_patients(UUID(orgs["referring"]["organization"]["id"])) == []
