from typing import Awaitable, Callable, Dict

import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.radorder.config import settings
from src.radorder.infra.codes.database import CodeDatabase, create_code_database
from src.radorder.infra.db import inmemory as inmemory_repos
from src.radorder.infra.db.inmemory import InMemoryOrderRepository
from src.radorder.main import app
from src.radorder.services.organizations.service import organization_service
from src.radorder.services.patients.service import patient_service
from src.radorder.services.users.service import user_service

ICD10_ROWS = [
    {"ICD10_Code": "M25.511", "Description": "Pain in right shoulder"},
    {"ICD10_Code": "M25.512", "Description": "Pain in left shoulder"},
    {"ICD10_Code": "S43.431", "Description": "Superior glenoid labrum lesion of right shoulder"},
    {"ICD10_Code": "S43.431A", "Description": "Superior glenoid labrum lesion of right shoulder, initial encounter"},
    {
        "ICD10_Code": "M75.101",
        "Description": "Unspecified rotator cuff tear or rupture of right shoulder, not specified as traumatic",
    },
    {"ICD10_Code": "M17.11", "Description": "Unilateral primary osteoarthritis, right knee"},
    {
        "ICD10_Code": "M23.211",
        "Description": "Derangement of anterior horn of medial meniscus due to old tear, right knee",
    },
    {"ICD10_Code": "R10.11", "Description": "Right upper quadrant pain"},
    {"ICD10_Code": "G43.909", "Description": "Migraine, unspecified, not intractable, without status migrainosus"},
    {"ICD10_Code": "R51.9", "Description": "Headache, unspecified"},
]

CPT_ROWS = [
    {"CPT_Code": "70551", "Description": "MRI brain without contrast", "Modality": "MRI"},
    {"CPT_Code": "73030", "Description": "X-ray shoulder, minimum 2 views", "Modality": "X-ray"},
    {"CPT_Code": "73221", "Description": "MRI upper extremity joint without contrast", "Modality": "MRI"},
    {"CPT_Code": "73222", "Description": "MRI upper extremity joint with contrast", "Modality": "MRI"},
    {"CPT_Code": "73721", "Description": "MRI lower extremity joint without contrast", "Modality": "MRI"},
    {"CPT_Code": "74176", "Description": "CT abdomen and pelvis without contrast", "Modality": "CT"},
    {"CPT_Code": "77067", "Description": "Screening mammography bilateral breast", "Modality": "Mammography"},
]

MAPPING_ROWS = [
    {"ICD10_Code": "S43.431", "CPT_Code": "73221", "Appropriateness": 8, "Citation": "ACR AC: Shoulder Pain"},
    {
        "ICD10_Code": "M25.511",
        "CPT_Code": "73221",
        "Appropriateness": 7,
        "Citation": "ACR AC: Shoulder Pain",
        "Enhanced_Notes": "MRI after normal radiographs",
    },
    {"ICD10_Code": "M25.511", "CPT_Code": "73721", "Appropriateness": 2, "Citation": "Mismatched anatomy"},
    {"ICD10_Code": "M25.511", "CPT_Code": "73030", "Appropriateness": 9, "Citation": "ACR AC: Shoulder Pain"},
    {"ICD10_Code": "M75.101", "CPT_Code": "73222", "Appropriateness": 12, "Citation": "Out of scale"},
]

DOCUMENT_ROWS = [
    {"icd10_code": "M25.511", "content": "# Shoulder pain\nRadiographs first; MRI when radiographs are normal."},
]

SHOULDER_DICTATION = (
    "45-year-old right-handed athlete with right shoulder pain and suspected labral tear after a fall. "
    "MRI right shoulder without contrast requested."
)


@pytest.fixture
def shoulder_dictation() -> str:
    return SHOULDER_DICTATION


@pytest.fixture
def code_database(tmp_path) -> CodeDatabase:
    return create_code_database(
        tmp_path / "medical_codes.db",
        icd10=ICD10_ROWS,
        cpt=CPT_ROWS,
        mappings=MAPPING_ROWS,
        documents=DOCUMENT_ROWS,
    )


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch, code_database):
    """Fresh stores, a known JWT secret and no LLM credentials for every test."""

    monkeypatch.setattr(settings, "code_database_path", code_database.path)
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "jwt_refresh_secret", "test-refresh-secret")
    monkeypatch.setattr(settings, "llm_provider", "openai")
    monkeypatch.setattr(settings, "openai_api_key", None)
    monkeypatch.setattr(settings, "anthropic_api_key", None)
    monkeypatch.setattr(settings, "validation_fallback_on_error", True)
    monkeypatch.setattr(inmemory_repos, "order_repository", InMemoryOrderRepository())

    organization_service.reset()
    user_service.reset()
    patient_service.reset()
    yield


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_org(client) -> Callable[..., Awaitable[dict]]:
    """Register an organization with an admin and return the response body."""

    async def _register(name: str, org_type: str, email: str, **admin_fields) -> dict:
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "organization": {"name": name, "type": org_type},
                "admin": {
                    "email": email,
                    "password": "correct-horse",
                    "first_name": "Alex",
                    "last_name": "Admin",
                    **admin_fields,
                },
            },
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text
        return response.json()

    return _register


@pytest.fixture
def linked_orgs(client, register_org) -> Callable[[], Awaitable[Dict[str, dict]]]:
    """Register a referring practice and a radiology group with an active link."""

    async def _link() -> Dict[str, dict]:
        referring = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")
        radiology = await register_org("Metro Imaging", "radiology_group", "admin@metro.example.com")

        request = await client.post(
            "/api/v1/organizations/relationships",
            json={"related_organization_id": radiology["organization"]["id"]},
            headers=_auth(referring["access_token"]),
        )
        assert request.status_code == status.HTTP_201_CREATED, request.text

        approve = await client.patch(
            f"/api/v1/organizations/relationships/{request.json()['id']}",
            json={"status": "active"},
            headers=_auth(radiology["access_token"]),
        )
        assert approve.status_code == status.HTTP_200_OK, approve.text
        return {"referring": referring, "radiology": radiology}

    return _link
