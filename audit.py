# audit.py
# Append-only trail of reading deletions and rejected invalid writes.
# Each write is committed before the caller continues; failures propagate.

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from db import db
from errors import InternalError
from models import Log, LOG_DELETION, LOG_INVALID
from schemas import reading_snapshot
from utils import utcnow


def _write(document_id, snapshot, log_type):
    entry = Log(document_id=document_id, document=snapshot, deleted_at=utcnow(), type=log_type)
    db.session.add(entry)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("audit: could not write %s entry for reading %s", log_type, document_id)
        raise InternalError("Could not record the audit log entry; nothing was changed.")
    current_app.logger.info("audit: %s logged for reading %s", log_type, document_id)
    return entry


def log_deletion(reading):
    return _write(reading.id, reading_snapshot(reading), LOG_DELETION)


def log_invalid(values, document_id=None):
    """Record a reading that failed the sanity bounds instead of storing it."""
    return _write(document_id, reading_snapshot(values), LOG_INVALID)
