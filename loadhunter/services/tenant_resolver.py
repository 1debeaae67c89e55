"""
services/tenant_resolver.py — Attribute a polled mailbox to exactly one tenant

Business Rules:
- (a) A stored mailbox→tenant mapping wins outright
- (b) Otherwise enabled gmail integrations whose settings reference the
  mailbox; exactly one referencing tenant wins
- (b') If no integration references the mailbox and exactly one enabled
  gmail integration exists at all, that sole integration's tenant wins
- Anything else fails closed: TenantResolutionError + an audit row.
  There is no default tenant, ever

Called by: services/load_ingestion.py (before any per-message work)
Depends on: models (MailboxConnection, TenantIntegration, AuditLog)
"""

import logging

from sqlalchemy.orm import Session

from ..exceptions import TenantResolutionError
from ..models import AuditLog, MailboxConnection, TenantIntegration

log = logging.getLogger("loadhunter.tenant_resolver")

GMAIL_PROVIDER = "gmail"


def normalize_mailbox(mailbox: str) -> str:
    return (mailbox or "").strip().lower()


def _references_mailbox(settings_blob, mailbox: str) -> bool:
    """True when any string value in the integration settings equals the mailbox."""
    if isinstance(settings_blob, dict):
        return any(_references_mailbox(v, mailbox) for v in settings_blob.values())
    if isinstance(settings_blob, (list, tuple)):
        return any(_references_mailbox(v, mailbox) for v in settings_blob)
    if isinstance(settings_blob, str):
        return normalize_mailbox(settings_blob) == mailbox
    return False


def _record_failure(db: Session, mailbox: str, reason: str, details: dict) -> None:
    try:
        db.add(AuditLog(
            action="tenant_resolution_failed",
            mailbox=mailbox,
            reason=reason,
            details=details,
        ))
        db.commit()
    except Exception as e:
        db.rollback()
        log.error(f"audit_write_failed mailbox={mailbox} reason={reason} error={e}")


def resolve_tenant(db: Session, mailbox: str) -> str:
    """Return the owning tenant id or raise TenantResolutionError."""
    key = normalize_mailbox(mailbox)
    if not key:
        _record_failure(db, mailbox, "empty_mailbox", {})
        raise TenantResolutionError(mailbox, "empty_mailbox")

    conn = db.query(MailboxConnection).filter(MailboxConnection.mailbox == key).first()
    if conn and conn.tenant_id:
        log.debug(f"tenant_resolved mailbox={key} tenant={conn.tenant_id} via=mapping")
        return conn.tenant_id

    integrations = (
        db.query(TenantIntegration)
        .filter(
            TenantIntegration.provider == GMAIL_PROVIDER,
            TenantIntegration.is_enabled.is_(True),
        )
        .all()
    )
    referencing = {i.tenant_id for i in integrations if _references_mailbox(i.settings, key)}

    if len(referencing) == 1:
        tenant_id = referencing.pop()
        log.info(f"tenant_resolved mailbox={key} tenant={tenant_id} via=integration_settings")
        return tenant_id
    if len(referencing) > 1:
        reason = "ambiguous_integrations"
        details = {"tenants": sorted(referencing)}
    elif len(integrations) == 1:
        tenant_id = integrations[0].tenant_id
        log.info(f"tenant_resolved mailbox={key} tenant={tenant_id} via=sole_integration")
        return tenant_id
    else:
        reason = "no_mapping"
        details = {"enabled_integrations": len(integrations)}

    log.warning(f"tenant_resolution_failed mailbox={key} reason={reason}")
    _record_failure(db, key, reason, details)
    raise TenantResolutionError(key, reason)
