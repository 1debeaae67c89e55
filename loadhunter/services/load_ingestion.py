"""
services/load_ingestion.py — One ingestion run over a polled mailbox

Business Rules:
- Tenant is resolved before anything else; a resolution failure aborts the
  run with zero shipment writes (the resolver writes the audit row)
- Unread messages are processed sequentially in receipt order, each under
  its own timeout
- Per message: dedup → fetch → detect → parse → hints → postal backfill →
  geocode → expiration failsafe → insert → enqueue customer + matching
- A failing message is logged with a stable reason, counted, and skipped;
  the batch always continues
- Inserted and duplicate messages are marked read; a failure to mark is
  logged and never fails the message
- reparse_shipment() re-runs extraction over a stored record; the fresh
  parse replaces parsed fields, tenant and message id never change

Called by: scheduler.py, routers/ingestion.py
Depends on: services/*, parsers, utils/gmail_client.py
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import MailProviderError, ShipmentNotFound, TenantResolutionError
from ..models import MailboxConnection, ShipmentRecord
from ..parsers import parse_message
from ..schemas.api import ReparseResponse
from ..schemas.shipment import IngestionRunSummary, MessageOutcome, ShipmentFields
from ..utils.gmail_client import GmailClient, parse_inbound_message
from .background import BackgroundQueue
from .customer_service import upsert_customer
from .geocode_cache import GeocodeCache, GeocodeResult
from .hunt_matching import match_shipment, match_shipment_by_id
from .ingestion import (
    already_ingested,
    apply_expiration_failsafe,
    geocoding_columns,
    insert_shipment,
    issue_notes,
    parsed_columns,
)
from .parser_hints import apply_parser_hints
from .source_detector import detect_source
from .tenant_resolver import normalize_mailbox, resolve_tenant

log = logging.getLogger("loadhunter.load_ingestion")

MailClientFactory = Callable[[Session, str], Awaitable[GmailClient]]


async def gmail_client_for(db: Session, mailbox: str) -> GmailClient:
    """Build a Gmail client from the stored mailbox connection, refreshing its token."""
    from ..scheduler import get_valid_token

    conn = db.query(MailboxConnection).filter(MailboxConnection.mailbox == mailbox).first()
    if conn is None:
        raise MailProviderError(f"no mailbox connection for {mailbox}")
    token = await get_valid_token(conn, db)
    if not token:
        raise MailProviderError(f"no valid token for {mailbox}", 401)
    return GmailClient(token)


class LoadIngestionService:
    def __init__(self, session_factory: Callable[[], Session], geocode_cache: GeocodeCache,
                 background: BackgroundQueue | None = None,
                 mail_client_factory: MailClientFactory | None = None,
                 message_timeout: float | None = None):
        self.session_factory = session_factory
        self.geocode_cache = geocode_cache
        self.background = background
        self.mail_client_factory = mail_client_factory or gmail_client_for
        self.message_timeout = message_timeout or settings.message_timeout_seconds

    # ── Batch run ────────────────────────────────────────────────────

    async def run_batch(self, mailbox: str, max_messages: int | None = None) -> IngestionRunSummary:
        mailbox = normalize_mailbox(mailbox)
        summary = IngestionRunSummary(mailbox=mailbox)
        db = self.session_factory()
        try:
            try:
                tenant_id = resolve_tenant(db, mailbox)
            except TenantResolutionError as e:
                log.error(f"ingestion_aborted reason={e.reason} mailbox={mailbox}")
                summary.aborted = True
                summary.abort_reason = e.reason
                return summary
            summary.tenant_id = tenant_id

            try:
                client = await self.mail_client_factory(db, mailbox)
                message_ids = await client.list_unread(max_messages or settings.gmail_batch_size)
            except MailProviderError as e:
                log.error(f"ingestion_aborted reason=mail_provider mailbox={mailbox} error={e}")
                summary.aborted = True
                summary.abort_reason = "mail_provider"
                self._mark_polled(db, mailbox, error=str(e))
                return summary

            summary.listed = len(message_ids)
            log.info(f"ingestion_started mailbox={mailbox} tenant={tenant_id} listed={len(message_ids)}")

            for message_id in message_ids:
                outcome = await self._process_with_timeout(db, client, tenant_id, message_id)
                summary.record(outcome)
                if outcome.outcome in ("inserted", "duplicate"):
                    await self._mark_read(client, message_id)

            self._mark_polled(db, mailbox)
            log.info(
                f"ingestion_finished mailbox={mailbox} tenant={tenant_id} inserted={summary.inserted} "
                f"duplicates={summary.duplicates} failed={summary.failed}"
            )
            return summary
        finally:
            db.close()

    async def _mark_read(self, client: GmailClient, message_id: str) -> None:
        try:
            await client.mark_read(message_id)
        except MailProviderError as e:
            log.warning(f"mark_read_failed message_id={message_id} error={e}")

    async def _process_with_timeout(self, db: Session, client: GmailClient, tenant_id: str,
                                    message_id: str) -> MessageOutcome:
        try:
            return await asyncio.wait_for(
                self._process_message(db, client, tenant_id, message_id),
                timeout=self.message_timeout,
            )
        except asyncio.TimeoutError:
            db.rollback()
            log.error(f"message_failed reason=timeout message_id={message_id} timeout={self.message_timeout}")
            return MessageOutcome(message_id=message_id, outcome="failed", reason="timeout")
        except MailProviderError as e:
            db.rollback()
            log.error(f"message_failed reason=fetch_failed message_id={message_id} error={e}")
            return MessageOutcome(message_id=message_id, outcome="failed", reason="fetch_failed")
        except Exception as e:
            db.rollback()
            log.error(f"message_failed reason=unexpected message_id={message_id} error={e!r}")
            return MessageOutcome(message_id=message_id, outcome="failed", reason="unexpected")

    async def _process_message(self, db: Session, client: GmailClient, tenant_id: str,
                               message_id: str) -> MessageOutcome:
        if already_ingested(db, message_id):
            log.debug(f"message_skipped reason=duplicate message_id={message_id}")
            return MessageOutcome(message_id=message_id, outcome="duplicate")

        message = parse_inbound_message(await client.get_message(message_id))
        detection = detect_source(message.sender_email, message.subject, message.body_text, message.body_html)
        log.info(f"source_detected message_id={message_id} dialect={detection.dialect} reason={detection.reason}")

        fields, geocode = await self.extract(db, detection.dialect, message.subject,
                                             message.body_html, message.body_text)
        apply_expiration_failsafe(fields, detection.dialect, message.received_at)

        record, outcome = insert_shipment(db, tenant_id, message, detection.dialect, fields, geocode)
        if record is None:
            return MessageOutcome(message_id=message_id, outcome=outcome, dialect=detection.dialect)

        await self._enqueue_side_effects(db, tenant_id, record, fields)
        return MessageOutcome(
            message_id=message_id, outcome="inserted", shipment_id=record.id, dialect=detection.dialect,
        )

    # ── Extraction (shared with reparse) ─────────────────────────────

    async def extract(self, db: Session, dialect: str, subject: str, body_html: str,
                      body_text: str) -> tuple[ShipmentFields, GeocodeResult | None]:
        fields = parse_message(dialect, subject or "", body_html or "", body_text or "")
        apply_parser_hints(db, dialect, fields, body_html, body_text)
        await self._backfill_origin(db, fields)
        geocode = None
        if not fields.is_unset("origin_city") or not fields.is_unset("origin_state"):
            geocode = await self.geocode_cache.lookup(db, fields.origin_city, fields.origin_state)
        if geocode is None:
            log.info(f"geocode_missing origin={fields.origin_city!r},{fields.origin_state!r}")
        return fields, geocode

    async def _backfill_origin(self, db: Session, fields: ShipmentFields) -> None:
        if not fields.is_unset("origin_city") or fields.is_unset("origin_postal"):
            return
        found = await self.geocode_cache.lookup_postal(db, fields.origin_postal)
        if found:
            city, state = found
            fields.set_if_unset("origin_city", city)
            fields.set_if_unset("origin_state", state)
            log.info(f"origin_backfilled postal={fields.origin_postal} city={city} state={state}")

    # ── Side effects ─────────────────────────────────────────────────

    def _upsert_customer_job(self, tenant_id: str, fields: ShipmentFields) -> None:
        db = self.session_factory()
        try:
            upsert_customer(db, tenant_id, fields)
        finally:
            db.close()

    async def _enqueue_side_effects(self, db: Session, tenant_id: str, record: ShipmentRecord,
                                    fields: ShipmentFields) -> None:
        if self.background is None:
            upsert_customer(db, tenant_id, fields)
            match_shipment(db, record)
            return
        await self.background.submit(f"customer_upsert:{record.id}", self._upsert_customer_job, tenant_id, fields)
        await self.background.submit(f"hunt_match:{record.id}", match_shipment_by_id, self.session_factory, record.id)

    def _mark_polled(self, db: Session, mailbox: str, error: str | None = None) -> None:
        try:
            conn = db.query(MailboxConnection).filter(MailboxConnection.mailbox == mailbox).first()
            if conn is None:
                return
            conn.last_polled_at = datetime.now(timezone.utc)
            conn.last_error = error[:500] if error else None
            db.commit()
        except Exception as e:
            db.rollback()
            log.warning(f"mailbox_poll_mark_failed mailbox={mailbox} error={e}")

    # ── Reparse ──────────────────────────────────────────────────────

    async def reparse_shipment(self, shipment_id: int) -> ReparseResponse:
        db = self.session_factory()
        try:
            record = db.get(ShipmentRecord, shipment_id)
            if record is None:
                raise ShipmentNotFound(shipment_id)

            fields, geocode = await self.extract(db, record.dialect, record.subject,
                                                 record.body_html, record.body_text)
            fields.set_if_unset("posted_at", record.posted_at)
            fields.set_if_unset("expires_at", record.expires_at)

            for column, value in parsed_columns(fields).items():
                setattr(record, column, value)
            for column, value in geocoding_columns(fields, geocode).items():
                setattr(record, column, value)
            notes = issue_notes(fields, record.dialect, geocode is not None)
            record.has_issues = bool(notes)
            record.issue_notes = "; ".join(notes) or None
            db.commit()
            log.info(f"shipment_reparsed id={record.id} dialect={record.dialect} issues={len(notes)}")

            matches = match_shipment(db, record)
            return ReparseResponse(
                shipment_id=record.id,
                dialect=record.dialect,
                populated_fields=sorted(fields.populated()),
                geocoding_status=record.geocoding_status,
                matches_created=len(matches),
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
