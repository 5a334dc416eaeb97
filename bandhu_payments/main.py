import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bandhu_payments.cache import TTLCache
from bandhu_payments.callbacks import router as callback_router
from bandhu_payments.config import get_settings
from bandhu_payments.database import Base, engine
from bandhu_payments.logging_config import configure_logging
from bandhu_payments.routes import router

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="RetailBandhu Payments Service")

app.include_router(router)
app.include_router(callback_router)

app.state.status_cache = TTLCache(ttl_seconds=settings.status_cache_ttl_seconds)

Base.metadata.create_all(bind=engine)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})
