# fulfillment/main.py
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from fulfillment.data.database import Base, engine
from fulfillment.api import include_routers
from fulfillment.domain.errors import FulfillmentError
from fulfillment.utils.logging import get_logger

# IMPORT WSZYSTKICH MODELI NA POCZĄTKU (PRZED JAKIMKOLWIEK CREATE_ALL)
import fulfillment.data.models  # noqa: F401

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")


async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # brakujace / bledne pola -> 400 w tym samym formacie co bledy domeny
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {"error": "ValidationError", "message": "Invalid request", "details": {"errors": exc.errors()}}
        ),
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Fulfillment Service",
        version="1.0.0",
    )

    app.add_exception_handler(FulfillmentError, fulfillment_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    return include_routers(app)


init_db()
app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
