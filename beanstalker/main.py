from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from beanstalker.api.routes import admin, orders, push
from beanstalker.config import get_settings
from beanstalker.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from beanstalker.core.json import DecimalJSONResponse
from beanstalker.core.lifespan import lifespan
from beanstalker.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="Bean Stalker", default_response_class=DecimalJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok"}


app.include_router(push.router, prefix="/api/push", tags=["push"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
