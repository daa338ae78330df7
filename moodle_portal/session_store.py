"""
Persisted portal session

A SessionStore is bound to one browser client. The controller loads it once
when it starts, saves it whenever the signed-in user changes and clears it on
logout; nothing else touches the underlying table.
"""

import logging
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import SessionStoreError
from .models import DBSession
from .models.session import PortalSessionRecord, UserSession

log = logging.getLogger(__name__)

SESSION_KEY_PREFIX = 'moodle_marketing_session'


class SessionStore:

    def __init__(self, client_id: str, dbsession=None):
        self.key = f"{SESSION_KEY_PREFIX}:{client_id}"
        self.dbsession = dbsession or DBSession

    def load(self):
        """Return the stored UserSession, or None when nobody is signed in"""
        try:
            record = self.dbsession.get(PortalSessionRecord, self.key)
        except SQLAlchemyError as e:
            raise SessionStoreError(f"Failed to read session: {str(e)}", operation='load')

        if record is None:
            return None

        try:
            return UserSession.from_dict(record.get_payload())
        except (ValueError, KeyError, TypeError) as e:
            # Unreadable blob: treat as signed out rather than failing every page
            log.warning(f"Discarding corrupt session {self.key}: {str(e)}")
            self.clear()
            return None

    def save(self, session: UserSession):
        try:
            record = self.dbsession.get(PortalSessionRecord, self.key)
            if record is None:
                record = PortalSessionRecord(key=self.key)
                self.dbsession.add(record)
            record.set_payload(session.to_dict())
            self.dbsession.commit()
        except SQLAlchemyError as e:
            self.dbsession.rollback()
            raise SessionStoreError(f"Failed to save session: {str(e)}", operation='save')
        log.info(f"Session saved for user {session.username}")

    def clear(self):
        try:
            deleted = (self.dbsession.query(PortalSessionRecord)
                       .filter_by(key=self.key)
                       .delete())
            self.dbsession.commit()
        except SQLAlchemyError as e:
            self.dbsession.rollback()
            raise SessionStoreError(f"Failed to clear session: {str(e)}", operation='clear')
        if deleted:
            log.info(f"Session cleared: {self.key}")
