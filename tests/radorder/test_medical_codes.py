from fastapi import status


def auth(token):
    return {"Authorization": f"Bearer {token}"}


async def test_icd10_lookup_is_case_insensitive(client):
    response = await client.get("/api/v1/medical-codes/icd10/m25.511")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"code": "M25.511", "description": "Pain in right shoulder", "modality": None}


async def test_cpt_lookup_includes_modality(client):
    response = await client.get("/api/v1/medical-codes/cpt/73221")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["modality"] == "MRI"


async def test_unknown_codes_return_404(client):
    assert (await client.get("/api/v1/medical-codes/icd10/Z99.999")).status_code == status.HTTP_404_NOT_FOUND
    assert (await client.get("/api/v1/medical-codes/cpt/99999")).status_code == status.HTTP_404_NOT_FOUND
    missing = await client.get("/api/v1/medical-codes/mappings/M17.11/70551")
    assert missing.status_code == status.HTTP_404_NOT_FOUND


async def test_mapping_lookup(client):
    response = await client.get("/api/v1/medical-codes/mappings/M25.511/73221")
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["score"] == 7
    assert body["evidence"] == "ACR AC: Shoulder Pain"
    assert body["justification"] == "MRI after normal radiographs"


async def test_search_matches_codes_and_descriptions(client):
    by_description = await client.get("/api/v1/medical-codes/search/icd10", params={"q": "shoulder"})
    assert [row["code"] for row in by_description.json()] == ["M25.511", "M25.512", "M75.101", "S43.431", "S43.431A"]

    by_code = await client.get("/api/v1/medical-codes/search/cpt", params={"q": "7322"})
    assert [row["code"] for row in by_code.json()] == ["73221", "73222"]


async def test_search_requires_two_characters(client):
    response = await client.get("/api/v1/medical-codes/search/cpt", params={"q": "7"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_database_context_endpoint(client, register_org, shoulder_dictation):
    org = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")

    response = await client.post(
        "/api/v1/validation/database-context",
        json={"dictation_text": shoulder_dictation},
        headers=auth(org["access_token"]),
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["diagnosis_count"] == 4
    assert body["mapping_count"] == 1
    assert "DATABASE CONTEXT:" in body["formatted_context"]


async def test_database_context_requires_authentication(client, shoulder_dictation):
    response = await client.post("/api/v1/validation/database-context", json={"dictation_text": shoulder_dictation})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


async def test_specialties_endpoint(client, register_org):
    org = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")

    response = await client.get("/api/v1/validation/specialties", headers=auth(org["access_token"]))
    specialties = {item["name"]: item["word_count"] for item in response.json()}
    assert specialties["Orthopedics"] == 30
