"""Database models — re-exports all models.

Import from here:  from loadhunter.models import ShipmentRecord, HuntPlan, ...
Or from submodules: from loadhunter.models.hunting import HuntPlan
"""

from .base import Base  # noqa: F401

# Tenancy
from .tenancy import MailboxConnection, TenantIntegration  # noqa: F401

# Pipeline configuration & audit
from .pipeline import AuditLog, ParserHint  # noqa: F401

# Shipments
from .shipments import SHIPMENT_STATUSES, ShipmentRecord  # noqa: F401

# Geocoding
from .geocode import GeocodeCacheEntry  # noqa: F401

# Hunting
from .hunting import HuntPlan, LoadHuntMatch  # noqa: F401

# CRM
from .crm import Customer  # noqa: F401
