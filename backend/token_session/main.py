import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

# Log setup runs before the package modules are imported so their loggers inherit it
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger("token_session").setLevel(logging.DEBUG)

from token_session.api.v1 import session  # noqa: E402
from token_session.config import settings  # noqa: E402
from token_session.db.session import init_db  # noqa: E402
from token_session.middleware.token_session import TokenSessionMiddleware  # noqa: E402
from token_session.services import garbage_collector  # noqa: E402

scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    scheduler.add_job(
        garbage_collector.scheduled_sweep,
        "interval",
        minutes=settings.gc_interval_minutes,
        id="token_session_gc",
        replace_existing=True,
    )
    scheduler.start()
    yield
    scheduler.shutdown()


app = FastAPI(
    title="Token Session API",
    description="Cookie-less sessions carried by rotating single-use tokens",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(TokenSessionMiddleware)
# Outermost: preflights are answered without touching the token table
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.token_header_name],
)
app.include_router(session.router, prefix="/api/v1")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
def health():
    return {"status": "ok"}
