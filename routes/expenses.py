from flask import Blueprint, request, jsonify, g
from Decorators import role_required, finance_required, school_required
from ExpenseService import ExpenseService
from Helpers import paginate_args
from routes.common import service, json_body

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

SUBMIT_ROLES = ("admin", "bursar", "staff")


@expenses_bp.route('', methods=['GET'])
@school_required
@role_required(*SUBMIT_ROLES)
def list_expenses():
    limit, offset = paginate_args(request.args)
    result = service(ExpenseService).get_expenses(g.school_id, limit, offset, request.args.get('status'),
                                                  request.args.get('category_id', type=int))
    return jsonify({"status": "success", **result, "code": 200}), 200

@expenses_bp.route('', methods=['POST'])
@school_required
@role_required(*SUBMIT_ROLES)
def create_expense():
    expense = service(ExpenseService).create_expense(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Expense recorded", "expense": expense.to_dict(), "code": 201}), 201

@expenses_bp.route('/<int:expense_id>/status', methods=['PUT'])
@school_required
@finance_required
def update_status(expense_id):
    expense = service(ExpenseService).update_expense_status(g.school_id, expense_id, json_body().get('status'))
    return jsonify({"status": "success", "message": "Expense updated", "expense": expense.to_dict(), "code": 200}), 200

@expenses_bp.route('/totals', methods=['GET'])
@school_required
@finance_required
def totals():
    rows = service(ExpenseService).expense_totals(g.school_id, request.args.get('year', type=int))
    return jsonify({"status": "success", "totals": rows, "code": 200}), 200


##### CATEGORIES #####

@expenses_bp.route('/categories', methods=['GET'])
@school_required
@role_required(*SUBMIT_ROLES)
def list_categories():
    rows = service(ExpenseService).get_expense_categories(g.school_id)
    return jsonify({"status": "success", "categories": [r.to_dict() for r in rows], "code": 200}), 200

@expenses_bp.route('/categories', methods=['POST'])
@school_required
@finance_required
def create_category():
    data = json_body()
    category = service(ExpenseService).create_expense_category(g.school_id, data.get('name'),
                                                               data.get('description'), data.get('color'))
    return jsonify({"status": "success", "message": "Category created", "category": category.to_dict(), "code": 201}), 201

@expenses_bp.route('/categories/<int:category_id>', methods=['DELETE'])
@school_required
@finance_required
def delete_category(category_id):
    service(ExpenseService).delete_expense_category(g.school_id, category_id)
    return jsonify({"status": "success", "message": "Category deleted", "code": 200}), 200
