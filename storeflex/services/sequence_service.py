"""
Per-tenant human-readable identifiers (cus0001, sale000001, ...).

Codes come from a Counter row locked FOR UPDATE inside the caller's
transaction, so a rolled-back entity write never burns a number.
"""
import logging
from typing import Tuple

from storeflex.exceptions import BusinessLogicError
from storeflex.models import Counter

logger = logging.getLogger(__name__)

# entity -> (prefix, zero-pad width)
SEQUENCE_FORMATS = {
    'customers': ('cus', 4),
    'suppliers': ('sup', 4),
    'sales': ('sale', 6),
    'purchases': ('pur', 6),
    'users': ('user', 4),
    'products': ('prod', 4),
    'sales_orders': ('so', 6),
    'purchase_orders': ('po', 6),
}


def format_code(entity: str, number: int) -> str:
    """Format ``number`` with the entity prefix, e.g. ``format_code('customers', 7) == 'cus0007'``."""
    prefix, width = _sequence_format(entity)
    return f"{prefix}{str(number).zfill(width)}"


def allocate_code(session, tenant_id: int, entity: str) -> str:
    """
    Allocate the next code for ``entity`` within ``tenant_id``.

    Must be called inside ``run_in_transaction``: the counter increment is
    committed (or rolled back) together with the entity it names.

    Args:
        session: Database session (inside an open unit of work)
        tenant_id: Tenant ID
        entity: Key of SEQUENCE_FORMATS

    Returns:
        Formatted code, e.g. 'sale000042'
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    _sequence_format(entity)

    counter = session.query(Counter).filter(
        Counter.tenant_id == tenant_id,
        Counter.entity == entity
    ).with_for_update().first()

    if counter is None:
        # First code for this tenant/entity. A concurrent first insert fails
        # the unique constraint and the whole unit of work is retried.
        counter = Counter(tenant_id=tenant_id, entity=entity, last_id=0)
        session.add(counter)

    counter.last_id = (counter.last_id or 0) + 1
    session.flush()

    code = format_code(entity, counter.last_id)
    logger.debug(f"Allocated {code} for tenant {tenant_id}")
    return code


def _sequence_format(entity: str) -> Tuple[str, int]:
    try:
        return SEQUENCE_FORMATS[entity]
    except KeyError:
        raise BusinessLogicError(f'Unknown sequence: {entity}')
