from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from pm_scheduler.config import settings

connect_args = {}
if settings.database_connection_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_connection_url, connect_args=connect_args)


# Ensure search_path is set to public schema for PostgreSQL
@event.listens_for(engine, "connect")
def set_search_path(dbapi_connection, connection_record):
    if engine.dialect.name != "postgresql":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("SET search_path TO public")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
