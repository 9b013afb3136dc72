"""
Activity log for ledger events.

Activities are written in the same transaction as the change they describe;
a failure here aborts that change.
"""
import logging
from datetime import datetime
from typing import List, Optional

from flask import g, has_request_context

from storeflex.exceptions import BusinessLogicError
from storeflex.models import Activity, ActivityType, REQUIRED_FIELDS, FINANCIAL_TYPES
from storeflex.utils.money import as_float

logger = logging.getLogger(__name__)


def record_activity(session, tenant_id: int, activity_type: ActivityType, details: str, **fields) -> Activity:
    """
    Append an activity row to the session.

    Args:
        session: Database session (caller commits)
        tenant_id: Tenant ID
        activity_type: ActivityType value
        details: Human readable description
        **fields: product_id, product_name, customer_id, supplier_id,
            reference_code, amount, user_id

    Returns:
        The new Activity (flushed)

    Raises:
        BusinessLogicError: if a field required by the activity type is missing
    """
    activity_type = ActivityType(activity_type)
    missing = [name for name in REQUIRED_FIELDS[activity_type] if fields.get(name) is None]
    if missing:
        raise BusinessLogicError(
            f"Activity '{activity_type.value}' requires: {', '.join(missing)}"
        )

    if fields.get('user_id') is None:
        fields['user_id'] = _current_user_id()

    activity = Activity(
        tenant_id=tenant_id,
        type=activity_type.value,
        details=details,
        timestamp=datetime.now(),
        **fields
    )
    session.add(activity)
    session.flush()

    logger.info(f"Activity {activity_type.value} [{fields.get('reference_code')}] tenant={tenant_id}: {details}")
    return activity


def list_recent_activities(session, tenant_id: Optional[int], limit: int = 5) -> List[Activity]:
    """Latest activities, newest first."""
    if not tenant_id:
        return []
    return session.query(Activity).filter(
        Activity.tenant_id == tenant_id
    ).order_by(Activity.timestamp.desc(), Activity.id.desc()).limit(limit).all()


def fetch_financial_activities(session, tenant_id: Optional[int], limit: Optional[int] = None) -> List[Activity]:
    """Money-moving activities (sales, purchases, settlements, checks, returns), newest first."""
    if not tenant_id:
        return []
    query = session.query(Activity).filter(
        Activity.tenant_id == tenant_id,
        Activity.type.in_([t.value for t in FINANCIAL_TYPES])
    ).order_by(Activity.timestamp.desc(), Activity.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def activity_to_dict(activity: Activity) -> dict:
    return {
        'id': activity.id,
        'type': activity.type,
        'product_id': activity.product_id,
        'product_name': activity.product_name,
        'customer_id': activity.customer_id,
        'supplier_id': activity.supplier_id,
        'reference_code': activity.reference_code,
        'amount': as_float(activity.amount),
        'details': activity.details,
        'timestamp': activity.timestamp.isoformat() if activity.timestamp else None,
    }


def _current_user_id() -> Optional[int]:
    if has_request_context() and g.get('user') is not None:
        return g.user.id
    return None
