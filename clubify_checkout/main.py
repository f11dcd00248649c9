from uuid import uuid4

from fastapi import FastAPI, Request

from clubify_checkout import __version__
from clubify_checkout.routers import webhooks

app = FastAPI(title="Clubify Checkout Webhooks", version=__version__)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

app.include_router(webhooks.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "clubify-checkout"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
