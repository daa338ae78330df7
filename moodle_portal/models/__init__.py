from sqlalchemy import event
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker
import logging

log = logging.getLogger(__name__)

DBSession = scoped_session(sessionmaker())
Base = declarative_base()


def initialize_sql(engine):
    # Import models so their tables are registered on Base.metadata
    from . import session  # noqa: F401

    DBSession.configure(bind=engine)
    Base.metadata.create_all(engine)

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection, connection_record):
        log.debug("Database connection established")

    @event.listens_for(engine, "close")
    def receive_close(dbapi_connection, connection_record):
        log.debug("Database connection closed")

