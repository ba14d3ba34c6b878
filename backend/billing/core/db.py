from sqlmodel import Session, SQLModel, create_engine

from billing.core.config import settings

connect_args = {}
if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, connect_args=connect_args)


def init_db(session: Session) -> None:
    """Initialize database tables for local development."""
    # Postgres deployments are migrated with Alembic; this covers SQLite setups
    from billing.models import domain  # noqa: F401

    if session.get_bind().dialect.name == "sqlite":
        SQLModel.metadata.create_all(session.get_bind())
