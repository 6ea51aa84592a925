from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fleetdesk.core.config import settings
from fleetdesk.core.logging import configure_logging
from fleetdesk.db.mongo import connect_to_mongo, close_mongo_connection
from fleetdesk.api.v1.api import api_router
from fleetdesk.utils.journey_validation import (
    InvalidOperation,
    JourneyError,
    NotFound,
    PaymentExceeded,
    PaymentIncomplete,
    ValidationFailed,
    WriteConflict,
)

STATUS_BY_ERROR = {
    ValidationFailed: 422,
    NotFound: 404,
    InvalidOperation: 400,
    PaymentExceeded: 400,
    PaymentIncomplete: 400,
    WriteConflict: 409,
}

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    yield
    await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JourneyError)
async def journey_error_handler(request: Request, exc: JourneyError):
    body = {"detail": exc.message, "error": exc.kind}
    if isinstance(exc, PaymentIncomplete):
        body.update({
            "currency": exc.currency,
            "required": exc.required,
            "paid": exc.paid,
            "remaining": exc.remaining,
        })
    return JSONResponse(status_code=STATUS_BY_ERROR.get(type(exc), 400), content=body)


@app.get("/")
async def root():
    return {"message": "Welcome to FleetDesk API"}

app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("fleetdesk.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
