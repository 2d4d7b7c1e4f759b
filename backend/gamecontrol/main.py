"""
Game Control API и WebSocket.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import get_config
from .errors import FetchError
from .sql_store import SqlStore
from .store import MemoryStore, Store
from .sync import StateSynchronizer
from .ws_handlers import ws_view_loop
from .ws_manager import WSManager

config = get_config()

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_store() -> Store:
    """DATABASE_URL пустой: хранилище в памяти, иначе SQL."""
    if config.database_url:
        return SqlStore(config.database_url)
    logger.info("DATABASE_URL not set, using in-memory store")
    return MemoryStore()


def create_app(store: Store | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store or build_store()
        app.state.manager = WSManager()
        yield
        await app.state.store.close()

    app = FastAPI(title="Game Control API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health(request: Request):
        return {"status": "ok", "viewers": request.app.state.manager.count}

    @app.get("/api/state")
    async def current_state(request: Request):
        sync = StateSynchronizer(request.app.state.store, reset_stops_game=config.reset_stops_game)
        try:
            await sync.load()
        except FetchError as e:
            logger.error("GET /api/state: %s", e)
            raise HTTPException(status_code=503, detail=sync.error)
        return sync.snapshot()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        logger.info("WS: connection attempt from %s", ws.client)
        await ws_view_loop(ws, ws.app.state.manager, ws.app.state.store)

    # Статика фронтенда
    frontend_path = Path(__file__).resolve().parent.parent.parent / "frontend"
    if frontend_path.is_dir():
        app.mount("/", StaticFiles(directory=str(frontend_path), html=True), name="frontend")

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("gamecontrol.main:app", host=config.host, port=config.port)
