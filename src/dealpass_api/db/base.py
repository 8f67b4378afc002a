from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by all DealPass models."""


# Import models so Alembic and create_all see the full metadata
import dealpass_api.models  # noqa: E402,F401
