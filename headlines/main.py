from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from headlines.config import get_settings
from headlines.constants import SESSION_HEADER
from headlines.logging_config import configure_logging, get_logger
from headlines.pipeline import DigestPipeline, EmptyMessageError
from headlines.session import attach_session, resolve_session

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().log_level)
    yield
    if get_pipeline.cache_info().currsize:
        await get_pipeline().close()
        get_pipeline.cache_clear()


app = FastAPI(title="Headlines Digest API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        SESSION_HEADER,
        "X-Articles-New",
        "X-Articles-Total",
        "X-Preferences-Updated",
    ],
)


class ChatRequest(BaseModel):
    message: str = ""


@lru_cache(maxsize=1)
def get_pipeline() -> DigestPipeline:
    return DigestPipeline.from_settings(get_settings())


@app.exception_handler(EmptyMessageError)
async def empty_message_handler(request: Request, exc: EmptyMessageError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("request.failed", path=request.url.path, error=repr(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


async def read_message(request: Request) -> str:
    """Accept ``{"message": ...}`` JSON or a raw text body.

    A JSON body without a string ``message`` counts as empty.
    """
    raw = await request.body()
    if "json" in request.headers.get("content-type", ""):
        try:
            return ChatRequest.model_validate_json(raw).message
        except ValidationError as e:
            logger.info("request.invalid_body", errors=e.error_count())
            return ""
    return raw.decode("utf-8", errors="replace")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/chat")
async def chat_route(
    request: Request, pipeline: Annotated[DigestPipeline, Depends(get_pipeline)]
):
    session = resolve_session(request)
    message = await read_message(request)
    result = await pipeline.run(session.session_id, message)

    response = JSONResponse([a.to_dict() for a in result.articles])
    response.headers["X-Articles-New"] = str(result.new_articles_seen)
    response.headers["X-Articles-Total"] = str(result.total_articles_processed)
    response.headers["X-Preferences-Updated"] = str(result.preferences_updated).lower()
    attach_session(response, session)
    return response
