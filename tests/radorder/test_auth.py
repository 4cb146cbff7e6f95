from datetime import datetime, timedelta, timezone

from fastapi import status

from src.radorder.config import settings
from src.radorder.services.users.passwords import hash_password, verify_password
from src.radorder.services.users.service import user_service


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_password_hashing():
    encoded = hash_password("correct-horse")

    assert encoded.startswith("pbkdf2_sha256$")
    assert verify_password("correct-horse", encoded)
    assert not verify_password("wrong-horse", encoded)
    assert not verify_password("correct-horse", "not-a-hash")


async def test_register_login_and_refresh(client, register_org):
    body = await register_org("Lakeside Family Practice", "referring_practice", "Admin@Lakeside.example.com")

    assert body["user"]["role"] == "admin"
    assert body["user"]["email"] == "admin@lakeside.example.com"
    assert "password_hash" not in body["user"]
    assert body["organization"]["type"] == "referring_practice"

    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@lakeside.example.com", "password": "correct-horse"},
    )
    assert login.status_code == status.HTTP_200_OK
    tokens = login.json()
    assert tokens["token_type"] == "bearer"

    me = await client.get("/api/v1/users/me", headers=auth(tokens["access_token"]))
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["last_login_at"] is not None

    refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == status.HTTP_200_OK
    assert refreshed.json()["refresh_token"] is None

    me_again = await client.get("/api/v1/users/me", headers=auth(refreshed.json()["access_token"]))
    assert me_again.status_code == status.HTTP_200_OK


async def test_duplicate_registration_is_rejected(client, register_org):
    await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")
    response = await client.post(
        "/api/v1/auth/register",
        json={
            "organization": {"name": "Other Practice", "type": "referring_practice"},
            "admin": {
                "email": "admin@lakeside.example.com",
                "password": "another-pass",
                "first_name": "Sam",
                "last_name": "Other",
            },
        },
    )
    assert response.status_code == status.HTTP_409_CONFLICT


async def test_bad_credentials_and_tokens(client, register_org):
    body = await register_org("Metro Imaging", "radiology_group", "admin@metro.example.com")

    wrong = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@metro.example.com", "password": "not-the-password"},
    )
    assert wrong.status_code == status.HTTP_401_UNAUTHORIZED

    missing = await client.get("/api/v1/users/me")
    assert missing.status_code == status.HTTP_401_UNAUTHORIZED

    tampered = await client.get("/api/v1/users/me", headers=auth(body["access_token"] + "x"))
    assert tampered.status_code == status.HTTP_401_UNAUTHORIZED

    # An access token cannot be used as a refresh token.
    refresh = await client.post("/api/v1/auth/refresh", json={"refresh_token": body["access_token"]})
    assert refresh.status_code == status.HTTP_401_UNAUTHORIZED


async def test_inactive_user_is_forbidden(client, register_org):
    body = await register_org("Metro Imaging", "radiology_group", "admin@metro.example.com")
    user_service.get_user_by_email("admin@metro.example.com").is_active = False

    response = await client.get("/api/v1/users/me", headers=auth(body["access_token"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_unconfigured_secret_disables_tokens(client, register_org, monkeypatch):
    await register_org("Metro Imaging", "radiology_group", "admin@metro.example.com")
    monkeypatch.setattr(settings, "jwt_secret", None)

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "admin@metro.example.com", "password": "correct-horse"},
    )
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


async def test_malformed_body_is_a_400(client):
    response = await client.post("/api/v1/auth/login", json={"email": "not-an-email"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["type"] == "validation_error"
    assert body["detail"]


async def test_invitation_lifecycle(client, register_org):
    admin = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")

    created = await client.post(
        "/api/v1/invitations",
        json={"email": "doctor@lakeside.example.com", "role": "physician"},
        headers=auth(admin["access_token"]),
    )
    assert created.status_code == status.HTTP_201_CREATED
    token = created.json()["token"]

    lookup = await client.get(f"/api/v1/invitations/{token}")
    assert lookup.status_code == status.HTTP_200_OK
    assert lookup.json()["status"] == "pending"
    assert lookup.json()["organization_name"] == "Lakeside Family Practice"
    assert "token" not in lookup.json()

    payload = {"token": token, "password": "doctor-pass", "first_name": "Dana", "last_name": "Reyes"}
    accepted = await client.post("/api/v1/invitations/accept", json=payload)
    assert accepted.status_code == status.HTTP_201_CREATED
    assert accepted.json()["role"] == "physician"
    assert accepted.json()["organization_id"] == admin["organization"]["id"]

    again = await client.post("/api/v1/invitations/accept", json=payload)
    assert again.status_code == status.HTTP_409_CONFLICT
    assert again.json()["code"] == "INVITATION_USED"

    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "doctor@lakeside.example.com", "password": "doctor-pass"},
    )
    assert login.status_code == status.HTTP_200_OK

    users = await client.get("/api/v1/users", headers=auth(admin["access_token"]))
    assert len(users.json()) == 2

    # Physicians cannot invite or list users.
    physician_token = login.json()["access_token"]
    denied = await client.post(
        "/api/v1/invitations",
        json={"email": "ma@lakeside.example.com", "role": "medical_assistant"},
        headers=auth(physician_token),
    )
    assert denied.status_code == status.HTTP_403_FORBIDDEN
    assert (await client.get("/api/v1/users", headers=auth(physician_token))).status_code == status.HTTP_403_FORBIDDEN


async def test_expired_invitation_is_rejected(client, register_org):
    admin = await register_org("Lakeside Family Practice", "referring_practice", "admin@lakeside.example.com")
    created = await client.post(
        "/api/v1/invitations",
        json={"email": "late@lakeside.example.com", "role": "scheduler"},
        headers=auth(admin["access_token"]),
    )
    token = created.json()["token"]
    user_service.get_invitation(token).expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)

    response = await client.post(
        "/api/v1/invitations/accept",
        json={"token": token, "password": "late-pass1", "first_name": "Lee", "last_name": "Late"},
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "INVITATION_EXPIRED"

    unknown = await client.get("/api/v1/invitations/not-a-token")
    assert unknown.status_code == status.HTTP_404_NOT_FOUND
