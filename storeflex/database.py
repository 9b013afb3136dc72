"""Database configuration, initialization and the atomic unit-of-work helper."""
import logging
import time

from sqlalchemy import BigInteger, Integer, create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError

from storeflex.exceptions import StoreflexError, TransactionConflictError

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# BIGINT ids on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")

# Global session and engine
engine = None
db_session = None

# Errors raised by concurrent writers: deadlocks, serialization failures,
# optimistic version clashes and racing inserts of the same counter row.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 0.1


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS') or {})
    engine = create_engine(
        database_uri,
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        **engine_options
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


def create_all():
    """Create every table known to the models package."""
    import storeflex.models  # noqa: F401  (registers the mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    import storeflex.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def run_in_transaction(session, work, attempts=None, backoff_base=None):
    """
    Run ``work(session)`` as one atomic unit and commit it.

    Every read of a mutable aggregate (stock, cost, balances, counters) must
    happen inside ``work`` through locked queries, so a retry re-reads fresh
    values.

    Args:
        session: SQLAlchemy session
        work: Callable receiving the session; its return value is returned
        attempts: Max attempts on concurrency conflicts (config default)
        backoff_base: Seconds for exponential backoff between attempts

    Returns:
        Whatever ``work`` returns.

    Raises:
        StoreflexError: Domain errors, unchanged, after rollback
        TransactionConflictError: When conflicts outlast the retries
    """
    if attempts is None:
        attempts = _config_value('TRANSACTION_RETRY_ATTEMPTS', DEFAULT_RETRY_ATTEMPTS)
    if backoff_base is None:
        backoff_base = _config_value('TRANSACTION_RETRY_BACKOFF', DEFAULT_RETRY_BACKOFF)

    for attempt in range(attempts):
        try:
            result = work(session)
            session.commit()
            return result
        except StoreflexError:
            session.rollback()
            raise
        except RETRYABLE_ERRORS as e:
            session.rollback()
            _count_retry()
            if attempt >= attempts - 1:
                logger.error(f"Transaction failed after {attempts} attempts: {e}")
                raise TransactionConflictError() from e
            logger.warning(f"Transaction conflict (attempt {attempt + 1}/{attempts}), retrying: {e}")
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
    # attempts < 1
    raise TransactionConflictError()


def _config_value(key, default):
    from flask import current_app, has_app_context
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _count_retry():
    from storeflex.blueprints.metrics import transaction_retries_total
    transaction_retries_total.inc()

