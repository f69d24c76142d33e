"""
Row-change capture for the realtime feed.

An ``after_flush`` listener records the row image of every flushed
INSERT/UPDATE/DELETE into ``session.info``. The transaction manager drains
the list after a successful commit and hands it to the change bus, so
subscribers never see changes from a rolled back transaction.
"""

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from enums.change_type import ChangeType
from realtime.events import ChangeEvent, to_json_value

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_changes"


def _row_image(obj) -> dict:
    state = inspect(obj)
    # Read from the instance dict so no lazy load is triggered mid-flush
    return {
        attr.key: to_json_value(state.dict.get(attr.key))
        for attr in state.mapper.column_attrs
    }


def _old_image(obj) -> dict:
    state = inspect(obj)
    image = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            image[attr.key] = to_json_value(history.deleted[0])
        else:
            image[attr.key] = to_json_value(state.dict.get(attr.key))
    return image


def _table_name(obj) -> str:
    return inspect(obj).mapper.persist_selectable.name


def _after_flush(session: Session, flush_context) -> None:
    pending = session.info.setdefault(PENDING_CHANGES_KEY, [])
    for obj in session.new:
        pending.append(ChangeEvent(table=_table_name(obj), type=ChangeType.INSERT, record=_row_image(obj)))
    for obj in session.dirty:
        if not session.is_modified(obj, include_collections=False):
            continue
        pending.append(ChangeEvent(
            table=_table_name(obj),
            type=ChangeType.UPDATE,
            record=_row_image(obj),
            old_record=_old_image(obj),
        ))
    for obj in session.deleted:
        pending.append(ChangeEvent(table=_table_name(obj), type=ChangeType.DELETE, old_record=_old_image(obj)))


def _after_rollback(session: Session) -> None:
    session.info.pop(PENDING_CHANGES_KEY, None)


def drain_changes(session) -> list[ChangeEvent]:
    """Pop the changes recorded on ``session`` (sync or async) since the last drain."""
    return session.info.pop(PENDING_CHANGES_KEY, [])


_installed = False


def install_change_capture() -> None:
    global _installed
    if _installed:
        return
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_rollback", _after_rollback)
    _installed = True
    logger.debug("Change capture listeners installed")


install_change_capture()
