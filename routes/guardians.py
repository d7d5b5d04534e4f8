from flask import Blueprint, request, jsonify, g
from Decorators import admin_required, role_required, school_required
from GuardianService import GuardianService
from MarksService import MarksService
from AttendanceService import AttendanceService
from FeeService import FeeService
from Helpers import parse_date
from routes.common import service, json_body

guardians_bp = Blueprint("guardians", __name__, url_prefix="/api")


def _guardian_dict(guardian):
    data = guardian.to_dict()
    data["students"] = [s.summary() for s in guardian.students]
    return data


@guardians_bp.route('/guardians', methods=['GET'])
@school_required
@admin_required
def list_guardians():
    guardians = service(GuardianService).get_guardians(g.school_id)
    return jsonify({"status": "success", "guardians": [_guardian_dict(x) for x in guardians], "code": 200}), 200

@guardians_bp.route('/guardians/<int:guardian_id>', methods=['GET'])
@school_required
@admin_required
def get_guardian(guardian_id):
    guardian = service(GuardianService).get_guardian(g.school_id, guardian_id)
    return jsonify({"status": "success", "guardian": _guardian_dict(guardian), "code": 200}), 200

@guardians_bp.route('/guardians', methods=['POST'])
@school_required
@admin_required
def create_guardian():
    guardian = service(GuardianService).create_guardian(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Guardian created", "guardian": _guardian_dict(guardian), "code": 201}), 201

@guardians_bp.route('/guardians/<int:guardian_id>/students', methods=['POST'])
@school_required
@admin_required
def link_student(guardian_id):
    student_id = json_body().get('student_id')
    if not student_id:
        return jsonify({"status": "error", "message": "student_id is required", "code": 400}), 400
    guardian = service(GuardianService).link_student(g.school_id, guardian_id, student_id)
    return jsonify({"status": "success", "message": "Student linked", "guardian": _guardian_dict(guardian), "code": 200}), 200

@guardians_bp.route('/guardians/<int:guardian_id>/students/<int:student_id>', methods=['DELETE'])
@school_required
@admin_required
def unlink_student(guardian_id, student_id):
    service(GuardianService).unlink_student(g.school_id, guardian_id, student_id)
    return jsonify({"status": "success", "message": "Student unlinked", "code": 200}), 200

@guardians_bp.route('/guardians/<int:guardian_id>/account', methods=['POST'])
@school_required
@admin_required
def create_account(guardian_id):
    data = json_body()
    user = service(GuardianService).create_account(g.school_id, guardian_id, data.get('username'), data.get('password'))
    return jsonify({"status": "success", "message": "Parent account created", "user": user.get_profile(), "code": 201}), 201


##### PARENT PORTAL #####

@guardians_bp.route('/parent/children', methods=['GET'])
@school_required
@role_required("parent")
def my_children():
    children = service(GuardianService).children_for_user(g.school_id, g.user.id)
    return jsonify({"status": "success", "children": [c.summary() for c in children], "code": 200}), 200

@guardians_bp.route('/parent/children/<int:student_id>/marks', methods=['GET'])
@school_required
@role_required("parent")
def child_marks(student_id):
    child = service(GuardianService).child_for_user(g.school_id, g.user.id, student_id)
    marks = service(MarksService).get_student_marks(g.school_id, child.id, request.args.get('year', type=int))
    return jsonify({"status": "success", "student": child.summary(),
                    "marks": [m.to_dict() for m in marks], "code": 200}), 200

@guardians_bp.route('/parent/children/<int:student_id>/attendance', methods=['GET'])
@school_required
@role_required("parent")
def child_attendance(student_id):
    child = service(GuardianService).child_for_user(g.school_id, g.user.id, student_id)
    history = service(AttendanceService).student_history(
        g.school_id, child.id, parse_date(request.args.get('from')), parse_date(request.args.get('to')))
    return jsonify({"status": "success", "student": child.summary(),
                    "attendance": [r.to_dict() for r in history], "code": 200}), 200

@guardians_bp.route('/parent/children/<int:student_id>/fees', methods=['GET'])
@school_required
@role_required("parent")
def child_fees(student_id):
    child = service(GuardianService).child_for_user(g.school_id, g.user.id, student_id)
    fees = service(FeeService).student_fees(g.school_id, child.id)
    return jsonify({"status": "success", "student": child.summary(), **fees, "code": 200}), 200
