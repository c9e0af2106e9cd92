import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boulenight import __version__
from boulenight.database import init_db
from boulenight.routes import draws, matches, nights, stats

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Boule Night API", version=__version__)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(nights.router, prefix="/api", tags=["nights"])
app.include_router(draws.router, prefix="/api", tags=["draws"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(stats.router, prefix="/api", tags=["stats"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Boule Night API %s started with %d routes", __version__, len(app.routes))


@app.get("/api/health")
def health_check():
    return {"app_name": "Boule Night API", "version": __version__, "status": "healthy"}
