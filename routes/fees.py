from flask import Blueprint, request, jsonify, g
from Decorators import finance_required, school_required
from FeeService import FeeService
from Helpers import paginate_args
from routes.common import service, json_body

fees_bp = Blueprint("fees", __name__, url_prefix="/api/fees")


##### STRUCTURES #####

@fees_bp.route('/structures', methods=['GET'])
@school_required
@finance_required
def list_structures():
    args = request.args
    rows = service(FeeService).get_fee_structures(g.school_id, args.get('class_level'),
                                                  args.get('year', type=int), args.get('term', type=int))
    return jsonify({"status": "success", "structures": [r.to_dict() for r in rows], "code": 200}), 200

@fees_bp.route('/structures', methods=['POST'])
@school_required
@finance_required
def create_structure():
    structure = service(FeeService).create_fee_structure(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Fee structure created",
                    "structure": structure.to_dict(), "code": 201}), 201

@fees_bp.route('/structures/<int:structure_id>', methods=['PUT'])
@school_required
@finance_required
def update_structure(structure_id):
    structure = service(FeeService).update_fee_structure(g.school_id, structure_id, json_body())
    return jsonify({"status": "success", "message": "Fee structure updated",
                    "structure": structure.to_dict(), "code": 200}), 200

@fees_bp.route('/structures/<int:structure_id>', methods=['DELETE'])
@school_required
@finance_required
def delete_structure(structure_id):
    service(FeeService).delete_fee_structure(g.school_id, structure_id)
    return jsonify({"status": "success", "message": "Fee structure deleted", "code": 200}), 200


##### SCHOLARSHIPS & OVERRIDES #####

@fees_bp.route('/scholarships', methods=['GET'])
@school_required
@finance_required
def list_scholarships():
    rows = service(FeeService).get_scholarships(g.school_id)
    return jsonify({"status": "success", "scholarships": [r.to_dict() for r in rows], "code": 200}), 200

@fees_bp.route('/scholarships', methods=['POST'])
@school_required
@finance_required
def create_scholarship():
    scholarship = service(FeeService).create_scholarship(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Scholarship created",
                    "scholarship": scholarship.to_dict(), "code": 201}), 201

@fees_bp.route('/scholarships/<int:scholarship_id>/assign', methods=['POST'])
@school_required
@finance_required
def assign_scholarship(scholarship_id):
    data = json_body()
    row = service(FeeService).assign_scholarship(g.school_id, data.get('student_id'), scholarship_id,
                                                 data.get('year'), data.get('term'))
    return jsonify({"status": "success", "message": "Scholarship assigned", "award": row.to_dict(), "code": 201}), 201

@fees_bp.route('/overrides/<int:student_id>', methods=['GET'])
@school_required
@finance_required
def list_overrides(student_id):
    rows = service(FeeService).get_overrides(g.school_id, student_id)
    return jsonify({"status": "success", "overrides": [r.to_dict() for r in rows], "code": 200}), 200

@fees_bp.route('/overrides', methods=['POST'])
@school_required
@finance_required
def create_override():
    override = service(FeeService).create_override(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Fee override created",
                    "override": override.to_dict(), "code": 201}), 201

@fees_bp.route('/overrides/<int:override_id>', methods=['DELETE'])
@school_required
@finance_required
def delete_override(override_id):
    service(FeeService).delete_override(g.school_id, override_id)
    return jsonify({"status": "success", "message": "Fee override deleted", "code": 200}), 200


##### INVOICES #####

@fees_bp.route('/invoices/generate', methods=['POST'])
@school_required
@finance_required
def generate_invoices():
    data = json_body()
    if not data.get('term') or not data.get('year'):
        return jsonify({"status": "error", "message": "term and year are required", "code": 400}), 400
    result = service(FeeService).generate_invoices(g.school_id, data['term'], data['year'],
                                                   data.get('due_date'), data.get('class_level'))
    return jsonify({"status": "success", **result, "code": 200}), 200

@fees_bp.route('/invoices', methods=['GET'])
@school_required
@finance_required
def list_invoices():
    args = request.args
    limit, offset = paginate_args(args)
    result = service(FeeService).get_invoices(g.school_id, args.get('status'), args.get('term', type=int),
                                              args.get('year', type=int), args.get('student_id', type=int),
                                              limit, offset)
    return jsonify({"status": "success", **result, "code": 200}), 200

@fees_bp.route('/invoices/<int:invoice_id>', methods=['GET'])
@school_required
@finance_required
def get_invoice(invoice_id):
    invoice = service(FeeService).get_invoice(g.school_id, invoice_id)
    data = invoice.to_dict()
    data["items"] = [item.to_dict() for item in invoice.items]
    return jsonify({"status": "success", "invoice": data, "code": 200}), 200

@fees_bp.route('/invoices/<int:invoice_id>', methods=['PUT'])
@school_required
@finance_required
def update_invoice(invoice_id):
    invoice = service(FeeService).update_invoice(g.school_id, invoice_id, json_body())
    return jsonify({"status": "success", "message": "Invoice updated", "invoice": invoice.to_dict(), "code": 200}), 200

@fees_bp.route('/invoices/<int:invoice_id>/remind', methods=['POST'])
@school_required
@finance_required
def send_reminder(invoice_id):
    invoice = service(FeeService).send_reminder(g.school_id, invoice_id, json_body().get('reminder_type', 'sms'))
    return jsonify({"status": "success", "message": "Reminder recorded", "invoice": invoice.to_dict(), "code": 200}), 200

@fees_bp.route('/invoices/remind', methods=['POST'])
@school_required
@finance_required
def send_bulk_reminders():
    data = json_body()
    count = service(FeeService).send_bulk_reminders(g.school_id, data.get('term'), data.get('year'),
                                                    data.get('min_balance', 0), data.get('reminder_type', 'sms'))
    return jsonify({"status": "success", "message": f"{count} reminders recorded", "sent": count, "code": 200}), 200


##### PAYMENTS #####

@fees_bp.route('/payments', methods=['GET'])
@school_required
@finance_required
def list_payments():
    args = request.args
    limit, offset = paginate_args(args)
    result = service(FeeService).get_payments(g.school_id, args.get('term', type=int), args.get('year', type=int),
                                              limit, offset)
    return jsonify({"status": "success", **result, "code": 200}), 200

@fees_bp.route('/payments', methods=['POST'])
@school_required
@finance_required
def record_payment():
    payment = service(FeeService).record_payment(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Payment recorded", "payment": payment.to_dict(), "code": 201}), 201

@fees_bp.route('/payments/<int:payment_id>/void', methods=['POST'])
@school_required
@finance_required
def void_payment(payment_id):
    payment = service(FeeService).void_payment(g.school_id, payment_id, json_body().get('reason'))
    return jsonify({"status": "success", "message": "Payment voided", "payment": payment.to_dict(), "code": 200}), 200


##### REPORTS #####

@fees_bp.route('/students/<int:student_id>', methods=['GET'])
@school_required
@finance_required
def student_fees(student_id):
    fees = service(FeeService).student_fees(g.school_id, student_id)
    return jsonify({"status": "success", **fees, "code": 200}), 200

@fees_bp.route('/students/<int:student_id>/statement', methods=['GET'])
@school_required
@finance_required
def statement(student_id):
    result = service(FeeService).statement(g.school_id, student_id)
    return jsonify({"status": "success", **result, "code": 200}), 200

@fees_bp.route('/debtors', methods=['GET'])
@school_required
@finance_required
def debtors():
    args = request.args
    limit, offset = paginate_args(args)
    result = service(FeeService).debtors(g.school_id, args.get('term', type=int), args.get('year', type=int),
                                         args.get('class_level'), limit, offset)
    return jsonify({"status": "success", **result, "code": 200}), 200

@fees_bp.route('/summary', methods=['GET'])
@school_required
@finance_required
def summary():
    result = service(FeeService).summary(g.school_id, request.args.get('term', type=int),
                                         request.args.get('year', type=int))
    return jsonify({"status": "success", "summary": result, "code": 200}), 200
