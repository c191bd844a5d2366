import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .checkout.errors import CheckoutError, ExternalServiceError, ReconciliationError, ValidationError
from .db import create_db_and_tables, seed_if_empty
from . import views_pos

log = logging.getLogger("bakery-pos")

app = FastAPI(title="Bakery POS — Checkout")


@app.on_event("startup")
def on_startup():
    create_db_and_tables()
    seed_if_empty()


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse({"ok": False, "error": exc.message, "field": exc.field}, status_code=422)


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    return JSONResponse(
        {
            "ok": False,
            "error": exc.message,
            "expected_cents": exc.expected_cents,
            "actual_cents": exc.actual_cents,
        },
        status_code=409,
    )


@app.exception_handler(ExternalServiceError)
async def external_service_error_handler(request: Request, exc: ExternalServiceError):
    log.warning("%s failed on %s: %s", exc.service, request.url.path, exc.message)
    return JSONResponse({"ok": False, "error": exc.message, "service": exc.service}, status_code=502)


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    # e.g. a second submit while the first one is in flight
    return JSONResponse({"ok": False, "error": exc.message}, status_code=409)


@app.get("/health", response_class=PlainTextResponse)
def health():
    return "OK"


app.include_router(views_pos.router)
