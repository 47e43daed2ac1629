"""Database connection for the auth service using SQLAlchemy."""

import os
import logging
from fastapi import HTTPException
from sqlalchemy import create_engine, exc
from sqlalchemy.orm import sessionmaker
from sqlalchemy.ext.declarative import declarative_base
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

load_dotenv()


def _database_url() -> str:
    """
    Resolves the connection URL.

    DATABASE_URL wins; otherwise a MariaDB URL is built from DB_USER/DB_PASS/DB_HOST/DB_NAME
    when all four are set; otherwise a local SQLite file is used.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    required_db_vars = {"DB_USER", "DB_PASS", "DB_HOST", "DB_NAME"}
    missing_vars = required_db_vars - set(os.environ)
    if not missing_vars:
        return f"mysql+pymysql://{os.getenv('DB_USER')}:{os.getenv('DB_PASS')}@{os.getenv('DB_HOST')}/{os.getenv('DB_NAME')}"

    if len(missing_vars) < len(required_db_vars):
        logger.error(f"Missing database environment variables: {', '.join(sorted(missing_vars))}")
    logger.warning("No database configured, falling back to local SQLite file ./auth.db")
    return "sqlite:///./auth.db"


SQLALCHEMY_DATABASE_URL = _database_url()

# SQLite connections are shared between the threadpool workers of FastAPI.
connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}

try:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
    with engine.connect() as connection:
        logger.info("Database connection established.")
except exc.SQLAlchemyError as e:
    logger.error(f"Could not connect to the database: {e}", exc_info=True)
    engine = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None

Base = declarative_base()


def init_db():
    """Creates the tables if they do not exist yet."""
    if engine is None:
        logger.error("Skipping table creation: no database engine.")
        return
    # Models must be registered on Base before create_all.
    from auth_service import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created.")


def get_db():
    """
    FastAPI dependency yielding a database session.
    The session is always closed once the request finishes.
    """
    if SessionLocal is None:
        logger.error("Database session factory is not initialised.")
        raise HTTPException(status_code=503, detail="Database service unavailable.")

    db = SessionLocal()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal database error.")
    finally:
        db.close()
