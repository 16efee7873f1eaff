"""Extension instances shared across the app, bound in the factory."""
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()


def _sqlite_connect_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # Bills, charges and payments rely on ON DELETE rules
    cursor.execute("PRAGMA foreign_keys=ON")
    # Overlapping cron runs wait for the writer instead of failing fast
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def init_db(app) -> None:
    """Bind ``db`` to ``app`` and install per-dialect connection hooks."""
    db.init_app(app)
    with app.app_context():
        engine = db.engine
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _sqlite_connect_pragmas)
