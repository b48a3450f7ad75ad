from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.errors import register_exception_handlers
from .api.routes import bookings, equipment, payments, misc
from .config import get_settings
from .core.logging import configure_logging
from .db.session import Base, engine
from .services.payments.gateway import get_gateway
from .workers.scheduler import get_scheduler


app = FastAPI(title="Hilink Booking API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(equipment.router, prefix="/api/v1")
app.include_router(bookings.router, prefix="/api/v1")
app.include_router(payments.router, prefix="/api/v1")
app.include_router(misc.router, prefix="/api/v1")

register_exception_handlers(app)


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    configure_logging(settings)
    Base.metadata.create_all(bind=engine)
    app.state.payment_gateway = get_gateway(settings)
    app.state.scheduler = None
    if settings.scheduler_enabled:
        scheduler = get_scheduler(settings, app.state.payment_gateway)
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    gateway = getattr(app.state, "payment_gateway", None)
    if gateway is not None:
        gateway.close()
