from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from parcel_search.core.config import settings


def engine_options(database_url: str) -> dict:
    options = {"pool_pre_ping": True, "pool_recycle": 300}
    if database_url.startswith("postgresql"):
        # Session calls block the event loop, so asyncio timeouts cannot cut
        # them short; the server enforces the store timeout per statement.
        timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
        options["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
    return options


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Dependency to get database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
