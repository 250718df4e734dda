import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hashview_chat.core.config import settings
from hashview_chat.core.exceptions import ChatError
from hashview_chat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from hashview_chat.routers.auth import router as auth_router
from hashview_chat.routers.chat import router as chat_router
from hashview_chat.routers.conversations import router as conversations_router
from hashview_chat.routers.devices import router as devices_router
from hashview_chat.routers.messages import router as messages_router
from hashview_chat.routers.presence import router as presence_router
from hashview_chat.services.realtime_gateway import RealtimeGateway
from hashview_chat.utils.notifications import build_push
from hashview_chat.utils.realtime_bus import build_bus
from hashview_chat.utils.websocket_manager import ConnectionRegistry, RoomManager


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    app.state.registry = ConnectionRegistry()
    app.state.rooms = RoomManager()
    app.state.bus = build_bus(settings.redis_url)
    app.state.push = build_push()
    app.state.gateway = RealtimeGateway(
        app.state.registry,
        app.state.rooms,
        app.state.bus,
        presence_ttl_seconds=settings.presence_ttl_seconds,
    )
    logger.info("%s started", settings.app_name)
    try:
        yield
    finally:
        await app.state.bus.close()
        await close_mongo_connection()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


app.include_router(auth_router)
app.include_router(conversations_router)
app.include_router(messages_router)
app.include_router(devices_router)
app.include_router(presence_router)
app.include_router(chat_router)


@app.get("/health")
async def health():
    return {"success": True, "status": "ok"}


@app.get("/")
async def root():

    db = get_database()
    collections = await db.list_collection_names()
    return {"success": True, "message": "Connected to MongoDB!", "collections": collections}
