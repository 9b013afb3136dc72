"""Expenses blueprint."""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.models import EXPENSE_TYPES
from storeflex.services.expense_service import create_expense, expense_summary, expense_to_dict, list_expenses
from storeflex.utils.money import jsonable

expenses_bp = Blueprint('expenses', __name__, url_prefix='/api/expenses')


@expenses_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_all():
    session = get_session()
    expenses = list_expenses(session, g.tenant_id, expense_type=request.args.get('type') or None)
    return jsonify([expense_to_dict(e) for e in expenses])


@expenses_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create():
    session = get_session()
    expense = create_expense(session, g.tenant_id, request.get_json(silent=True) or {}, user_id=g.user.id)
    return jsonify(expense_to_dict(expense)), 201


@expenses_bp.route('/summary', methods=['GET'])
@require_login
@require_tenant
def summary():
    session = get_session()
    return jsonify(jsonable(expense_summary(session, g.tenant_id)))


@expenses_bp.route('/types', methods=['GET'])
@require_login
def types():
    return jsonify(list(EXPENSE_TYPES))
