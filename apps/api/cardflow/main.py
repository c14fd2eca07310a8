from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from cardflow.config import settings
from cardflow.errors import CardflowError
from cardflow.live.broker import broker
from cardflow.routers.activities import router as activities_router
from cardflow.routers.cards import router as cards_router
from cardflow.routers.events import router as events_router
from cardflow.routers.notifications import router as notifications_router

logging.basicConfig(
  level=getattr(logging, settings.log_level.upper(), logging.INFO),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Move endpoints report malformed bodies as 400 rather than 422.
_MOVE_PATHS = {"/cards/move", "/cards/move-to-board"}

app = FastAPI(title="Cardflow API", version="0.1.0")


@app.exception_handler(CardflowError)
async def _cardflow_error_handler(_, exc: CardflowError) -> JSONResponse:
  if exc.status_code >= 500:
    logger.warning("request failed: %s", exc.message)
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  if request.url.path in _MOVE_PATHS:
    return JSONResponse(status_code=400, content={"detail": "Malformed move request", "errors": jsonable_encoder(exc.errors())})
  return await request_validation_exception_handler(request, exc)


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(cards_router)
app.include_router(activities_router)
app.include_router(notifications_router)
app.include_router(events_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


@app.on_event("startup")
async def _startup() -> None:
  if _is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  await broker.start()
  logger.info("cardflow %s started (redis relay: %s)", settings.app_version, "on" if settings.redis_url else "off")


@app.on_event("shutdown")
async def _shutdown() -> None:
  await broker.stop()
