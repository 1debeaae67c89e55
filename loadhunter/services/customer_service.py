"""services/customer_service.py -- Lazy broker → customer upsert.

Runs from the background queue after a shipment is inserted. Never raises:
a failed upsert is logged and the shipment stands on its own.
"""

import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Customer
from ..schemas.shipment import ShipmentFields

log = logging.getLogger("loadhunter.customers")


def customer_name_key(name: str) -> str:
    return re.sub(r"\s+", " ", name).strip().lower()


def _customer_name(fields: ShipmentFields) -> str | None:
    name = (fields.broker_company or fields.customer_name or "").strip()
    return name or None


def find_customer(db: Session, tenant_id: str, name: str) -> Customer | None:
    key = customer_name_key(name)
    return (
        db.query(Customer)
        .filter(Customer.tenant_id == tenant_id, Customer.name_key == key)
        .first()
    )


def upsert_customer(db: Session, tenant_id: str, fields: ShipmentFields) -> Customer | None:
    """Find-or-create the tenant's customer for this broker.

    Existing customers only get a missing MC number / contact filled in.
    """
    name = _customer_name(fields)
    if not tenant_id or not name:
        return None

    try:
        existing = find_customer(db, tenant_id, name)
        if existing:
            changed = False
            if not existing.mc_number and fields.mc_number:
                existing.mc_number = fields.mc_number
                changed = True
            if not existing.contact_name and fields.broker_name:
                existing.contact_name = fields.broker_name
                changed = True
            if not existing.email and fields.broker_email:
                existing.email = fields.broker_email
                changed = True
            if not existing.phone and fields.broker_phone:
                existing.phone = fields.broker_phone
                changed = True
            if changed:
                db.commit()
                log.info(f"customer_updated id={existing.id} tenant={tenant_id}")
            return existing

        customer = Customer(
            tenant_id=tenant_id,
            name=name,
            name_key=customer_name_key(name),
            contact_name=fields.broker_name,
            email=fields.broker_email,
            phone=fields.broker_phone,
            mc_number=fields.mc_number,
            status="active",
        )
        db.add(customer)
        db.commit()
        log.info(f"customer_created id={customer.id} tenant={tenant_id} name={name!r}")
        return customer
    except IntegrityError:
        # Another worker created it between our lookup and insert
        db.rollback()
        return find_customer(db, tenant_id, name)
    except Exception as e:
        db.rollback()
        log.error(f"customer_upsert_failed tenant={tenant_id} name={name!r} error={e}")
        return None
