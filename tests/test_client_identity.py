import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from annotator.app.core.client_identity import (
    UNKNOWN_CLIENT,
    ClientKeyDep,
    resolve_client_key,
)


@pytest.mark.parametrize(
    ("kwargs", "expected"),
    [
        ({"forwarded_for": "1.2.3.4, 10.0.0.1"}, "1.2.3.4"),
        ({"forwarded_for": " 1.2.3.4 , 10.0.0.1"}, "1.2.3.4"),
        ({"forwarded_for": "1.2.3.4", "real_ip": "5.6.7.8"}, "1.2.3.4"),
        ({"real_ip": "5.6.7.8", "connecting_ip": "9.9.9.9"}, "5.6.7.8"),
        ({"connecting_ip": "9.9.9.9"}, "9.9.9.9"),
        ({"forwarded_for": "", "real_ip": "5.6.7.8"}, "5.6.7.8"),
        ({"forwarded_for": "not-an-ip"}, "not-an-ip"),
        ({}, UNKNOWN_CLIENT),
    ],
)
def test_resolve_client_key_precedence(kwargs, expected) -> None:
    assert resolve_client_key(**kwargs) == expected


def test_resolve_client_key_is_deterministic() -> None:
    assert resolve_client_key(forwarded_for="1.2.3.4") == resolve_client_key(
        forwarded_for="1.2.3.4"
    )


def test_client_key_dependency_reads_headers() -> None:
    app = FastAPI()

    @app.get("/whoami")
    async def whoami(request: Request, client_key: ClientKeyDep):
        return {"key": client_key, "state": request.state.client_key}

    client = TestClient(app)

    resp = client.get("/whoami", headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
    assert resp.json() == {"key": "1.2.3.4", "state": "1.2.3.4"}

    resp = client.get("/whoami", headers={"X-Real-IP": "5.6.7.8"})
    assert resp.json()["key"] == "5.6.7.8"

    resp = client.get("/whoami", headers={"CF-Connecting-IP": "9.9.9.9"})
    assert resp.json()["key"] == "9.9.9.9"

    resp = client.get("/whoami")
    assert resp.json()["key"] == UNKNOWN_CLIENT
