from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from annotator.app.middleware.request_size import RequestSizeLimitMiddleware


def test_request_size_middleware_does_not_mask_exceptions():
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=1024)

    @app.post("/boom")
    async def boom(_: Request):
        raise RuntimeError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.post("/boom", json={"x": 1})

    # If middleware masks exceptions, this would be 413.
    assert resp.status_code == 500


def test_request_size_middleware_returns_json_413_on_oversize_body():
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=10)

    @app.post("/echo")
    async def echo(req: Request):
        return {"size": len(await req.body())}

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.post("/echo", content=b"x" * 11)

    assert resp.status_code == 413
    assert resp.headers.get("content-type", "").startswith("application/json")
    body = resp.json()
    assert body["error"] == "payload_too_large"
    assert body["message"].startswith("Request body too large")


def test_request_size_middleware_counts_streamed_chunks():
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=10)

    @app.post("/echo")
    async def echo(req: Request):
        return {"size": len(await req.body())}

    def chunks():
        yield b"x" * 6
        yield b"x" * 6

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.post("/echo", content=chunks())

    assert resp.status_code == 413


def test_request_size_middleware_allows_small_body():
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=10)

    @app.post("/echo")
    async def echo(req: Request):
        return {"size": len(await req.body())}

    client = TestClient(app)
    resp = client.post("/echo", content=b"x" * 10)

    assert resp.status_code == 200
    assert resp.json() == {"size": 10}
