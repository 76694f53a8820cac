from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from pm_scheduler.api import calendar, clients, import_export, maintenance, reports
from pm_scheduler.config import settings
from pm_scheduler.database import engine
from pm_scheduler.models import Base

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="PM Scheduler API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Include routers
app.include_router(clients.router, prefix="/api/clients", tags=["Clients"])
app.include_router(calendar.router, prefix="/api/calendar", tags=["Calendar"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["Maintenance"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(import_export.router, prefix="/api", tags=["Import/Export"])


@app.get("/")
async def root():
    return {"message": "PM Scheduler API is running"}


@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}
