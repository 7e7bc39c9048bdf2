import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fournil.app.api.v1.router import router as v1_router
from fournil.app.core.config import settings
from fournil.app.core.errors import FulfillmentError
from fournil.app.core.logging_config import configure_logging

configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(title="FOURNIL", version="0.1.0", debug=settings.debug)


@app.exception_handler(FulfillmentError)
async def fulfillment_error_handler(request: Request, exc: FulfillmentError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(v1_router, prefix="/v1")
