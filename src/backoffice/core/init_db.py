"""Initialize the database tables."""

from backoffice.core import models  # noqa: F401  registers salla_auth on Base
from backoffice.core.database import Base, engine

print("Creating database tables...")
Base.metadata.create_all(bind=engine)
print("Tables created successfully!")
