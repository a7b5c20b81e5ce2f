# Overview: Flask extension instances for database, migrations and ledger key locks.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.concurrency import KeyLockRegistry

db = SQLAlchemy()
migrate = Migrate()

# Process-wide per-(organization, product, location) locks. Passed explicitly
# into StockOperations; tests may build their own registry.
ledger_locks = KeyLockRegistry()
