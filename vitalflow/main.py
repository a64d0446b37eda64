# vitalflow/main.py
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from vitalflow.core.config import settings, configure_logging
from vitalflow.core.errors import StoreError
from vitalflow.db.mongodb_utils import connect_to_mongo, close_mongo_connection, create_db_indexes
from vitalflow.mqtt import mqtt_client
from vitalflow.routers import notification_router, reminder_router
from vitalflow.services.notification_service import NotificationDisplaySink
from vitalflow.services.reminder_lifecycle import ReminderLifecycleHandler
from vitalflow.services.reminder_scheduler import ReminderScheduler
from vitalflow.services.reminder_store import MongoReminderStore
from vitalflow.services.wakeup_timer import ApschedulerWakeupTimer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    logger.info("[Lifecycle] Application startup...")
    await connect_to_mongo()
    if settings.DEBUG:
        await create_db_indexes()

    timer = ApschedulerWakeupTimer()
    timer.start()

    store = MongoReminderStore()
    scheduler = ReminderScheduler(store, timer)
    handler = ReminderLifecycleHandler(store, scheduler, NotificationDisplaySink())
    timer.set_fire_callback(handler.handle_fire_event)
    mqtt_client.mqtt_client.fire_handler = handler.handle_fire_event

    try:
        await mqtt_client.start_mqtt_client()
    except Exception as e:  # MQTT is optional; reminders still fire locally
        logger.error(f"[MQTT] Failed to start MQTT client: {e}")

    # timers do not survive a restart
    try:
        await scheduler.rebuild_all()
    except StoreError as e:
        logger.error(f"[Lifecycle] Initial rebuild failed: {e}")

    app.state.wakeup_timer = timer
    app.state.reminder_store = store
    app.state.reminder_scheduler = scheduler
    app.state.lifecycle_handler = handler

    yield
    # Shutdown
    logger.info("[Lifecycle] Application shutdown...")
    timer.shutdown()
    await mqtt_client.stop_mqtt_client()
    await close_mongo_connection()
    logger.info("[Lifecycle] Application shutdown complete.")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

@app.get("/", summary="Root Endpoint")
async def read_root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} v{settings.PROJECT_VERSION}"}

app.include_router(reminder_router.router, prefix=f"{settings.API_V1_STR}/reminders", tags=["Reminders"])
app.include_router(notification_router.router, prefix=f"{settings.API_V1_STR}/notifications", tags=["Notifications"])

@app.get("/health", summary="Health Check")
async def health_check():
    return {"status": "healthy", "mqttConnected": mqtt_client.mqtt_client.is_connected()}
