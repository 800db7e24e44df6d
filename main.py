from logging_config import setup_logging

# Initialize logging BEFORE anything else
setup_logging()

from contextlib import asynccontextmanager
from logging_config import get_logger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError
from middleware.request_lifecycle import RequestLifecycleMiddleware
from routes import notifications, settings, push, tasks
from automations.scheduler import notification_worker
from repositories.store import get_store
from utils.delivery import get_gateway
from database import ensure_indexes
from config import config

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    testing = config.ENV == "testing"

    if not testing and config.MONGO_URI:
        try:
            await ensure_indexes()
        except PyMongoError as e:
            logger.error(f"Index creation failed: {e}", exc_info=True)

    if config.NOTIFICATION_WORKER_ENABLED and not testing:
        notification_worker.start(get_store(), get_gateway())
    else:
        logger.info("Notification worker disabled")

    yield

    await notification_worker.stop()


app = FastAPI(title="Pillar Notifications API", lifespan=lifespan)

# CORS remains here as it's a global setting
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL] if config.ENV == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request lifecycle middleware (request ID, context vars, duration logging)
app.add_middleware(RequestLifecycleMiddleware)

# REGISTER ROUTERS
app.include_router(tasks.router)
app.include_router(notifications.router)
app.include_router(settings.router)
app.include_router(push.router)

logger.info("All routers registered, Pillar Notifications API ready")

@app.get("/")
async def root():
    return {"status": "online", "message": "Pillar notification engine is running", "worker_running": notification_worker.running}
