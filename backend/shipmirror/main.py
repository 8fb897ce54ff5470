import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shipmirror.routers import sync_cron
from shipmirror.utils.logger import logger

app = FastAPI(title="Shipmirror Sync API", version="1.0.0")


# Request logging middleware with request ID
@app.middleware("http")
async def request_logger(request: Request, call_next):
    rid = uuid.uuid4().hex[:8]
    request.state.rid = rid
    logging.info("-> %s %s rid=%s", request.method, request.url.path, rid)
    try:
        resp = await call_next(request)
        logging.info("<- %s status=%s rid=%s", request.url.path, resp.status_code, rid)
        resp.headers["X-Request-ID"] = rid
        return resp
    except Exception as e:
        logging.exception("Unhandled error rid=%s: %s", rid, str(e))
        error_resp = JSONResponse(
            {"error": "internal_error", "rid": rid, "message": str(e), "type": type(e).__name__},
            status_code=500,
        )
        error_resp.headers["X-Request-ID"] = rid
        return error_resp


app.include_router(sync_cron.router)


@app.on_event("startup")
async def startup_event():
    logger.info("Shipmirror sync API starting up...")


@app.get("/health")
async def health():
    return {"status": "ok"}
