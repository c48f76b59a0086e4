from __future__ import annotations

import json
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..core.schemas import AuditEntry, as_utc
from ..models.audit import AuditLog

log = logging.getLogger("vouchers.audit")


class AuditTrail:
    """
    Registro append-only de eventos del ciclo de vida.

    Best-effort: append() nunca lanza. Si falla la escritura se registra en el
    log y se sigue; la operación que lo originó no se deshace.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(self, entry: AuditEntry) -> None:
        try:
            s = self._session_factory()
            try:
                s.add(
                    AuditLog(
                        at=as_utc(entry.timestamp),
                        entity_type=entry.entity_type,
                        entity_id=entry.entity_id,
                        action=entry.action,
                        actor_ref=entry.actor_ref,
                        changes_json=json.dumps(entry.changes, default=str) if entry.changes is not None else None,
                    )
                )
                s.commit()
            finally:
                s.close()
        except Exception:
            log.exception("audit write failed: %s %s %s", entry.entity_type, entry.entity_id, entry.action)

    def entries_for(self, entity_type: str, entity_id: str) -> List[AuditEntry]:
        s = self._session_factory()
        try:
            rows = s.execute(
                select(AuditLog)
                .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
                .order_by(AuditLog.at, AuditLog.id)
            ).scalars()
            return [
                AuditEntry(
                    entity_type=r.entity_type,
                    entity_id=r.entity_id,
                    action=r.action,
                    actor_ref=r.actor_ref,
                    changes=json.loads(r.changes_json) if r.changes_json else None,
                    timestamp=as_utc(r.at),
                )
                for r in rows
            ]
        finally:
            s.close()
