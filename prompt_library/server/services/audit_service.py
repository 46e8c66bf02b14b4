"""Append-only audit trail for administrative invite operations."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from prompt_library.core.logger import audit_logger
from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.storage.base import utc_now


class AuditOperation(str, Enum):
    CREATE = 'invite.create'
    REVOKE = 'invite.revoke'
    REDEEM = 'invite.redeem'


class AuditOutcome(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


class AuditEntry(BaseModel):
    operation: AuditOperation
    actor_id: str | None
    organization_id: str | None
    target_id: str | None
    outcome: AuditOutcome
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class AuditSink(ABC):
    """Write-only destination for audit entries."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        """Persist one entry."""


class LoggingAuditSink(AuditSink):
    """Writes audit entries as structured records on the audit logger."""

    def append(self, entry: AuditEntry) -> None:
        fields = entry.model_dump(mode='json')
        if entry.outcome == AuditOutcome.FAILURE:
            audit_logger.warning('AUDIT %s', entry.operation.value, extra=fields)
        else:
            audit_logger.info('AUDIT %s', entry.operation.value, extra=fields)


def record_audit_event(
    sink: AuditSink,
    operation: AuditOperation,
    outcome: AuditOutcome,
    actor_id: object = None,
    organization_id: object = None,
    target_id: object = None,
    reason: str | None = None,
) -> None:
    """Append an audit entry without ever failing the calling operation.

    IDs may be UUIDs or strings; they are stored as strings.
    """
    try:
        sink.append(
            AuditEntry(
                operation=operation,
                actor_id=str(actor_id) if actor_id is not None else None,
                organization_id=(
                    str(organization_id) if organization_id is not None else None
                ),
                target_id=str(target_id) if target_id is not None else None,
                outcome=outcome,
                reason=reason,
            )
        )
    except Exception as e:
        logger.error(
            'Failed to write audit entry',
            extra={
                'operation': operation.value,
                'target_id': str(target_id) if target_id is not None else None,
                'error': str(e),
            },
        )
