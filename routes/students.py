from flask import Blueprint, request, jsonify, g
from Decorators import role_required, admin_required, school_required
from StudentService import StudentService
from routes.common import service, json_body

students_bp = Blueprint("students", __name__, url_prefix="/api")

READ_ROLES = ("admin", "teacher", "staff", "bursar")
WRITE_ROLES = ("admin", "staff")


@students_bp.route('/students', methods=['GET'])
@school_required
@role_required(*READ_ROLES)
def list_students():
    students = service(StudentService).get_students(g.school_id, request.args.get('class_level'),
                                                    request.args.get('stream'))
    return jsonify({"status": "success", "students": [s.to_dict() for s in students], "code": 200}), 200

@students_bp.route('/students/search', methods=['GET'])
@school_required
@role_required(*READ_ROLES)
def search_students():
    args = request.args
    students = service(StudentService).search(
        g.school_id, q=args.get('q'), class_level=args.get('class_level'), stream=args.get('stream'),
        boarding_status=args.get('boarding_status'), sort_by=args.get('sort_by', 'name'),
        sort_order=args.get('sort_order', 'asc'), limit=args.get('limit', 50, type=int))
    return jsonify({"status": "success", "students": [s.to_dict() for s in students], "code": 200}), 200

@students_bp.route('/students/<int:student_id>', methods=['GET'])
@school_required
@role_required(*READ_ROLES)
def get_student(student_id):
    student = service(StudentService).get_student(g.school_id, student_id)
    data = student.to_dict()
    data["guardians"] = [guardian.to_dict() for guardian in student.guardians]
    return jsonify({"status": "success", "student": data, "code": 200}), 200

@students_bp.route('/students', methods=['POST'])
@school_required
@role_required(*WRITE_ROLES)
def create_student():
    student = service(StudentService).create_student(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Student created", "student": student.to_dict(), "code": 201}), 201

@students_bp.route('/students/<int:student_id>', methods=['PUT'])
@school_required
@role_required(*WRITE_ROLES)
def update_student(student_id):
    student = service(StudentService).update_student(g.school_id, student_id, json_body())
    return jsonify({"status": "success", "message": "Student updated", "student": student.to_dict(), "code": 200}), 200

@students_bp.route('/students/<int:student_id>', methods=['DELETE'])
@school_required
@admin_required
def delete_student(student_id):
    service(StudentService).delete_student(g.school_id, student_id)
    return jsonify({"status": "success", "message": "Student deleted", "code": 200}), 200

@students_bp.route('/students/batch-delete', methods=['POST'])
@school_required
@admin_required
def delete_students():
    count = service(StudentService).delete_students(g.school_id, json_body().get('student_ids'))
    return jsonify({"status": "success", "message": f"{count} students deleted", "deleted": count, "code": 200}), 200

@students_bp.route('/students/import', methods=['POST'])
@school_required
@role_required(*WRITE_ROLES)
def import_students():
    data = json_body()
    rows = data.get('students')
    if not isinstance(rows, list):
        return jsonify({"status": "error", "message": "students must be a list", "code": 400}), 400
    result = service(StudentService).import_students(g.school_id, rows)
    return jsonify({"status": "success", **result, "code": 200}), 200

@students_bp.route('/students/promote', methods=['POST'])
@school_required
@admin_required
def promote_students():
    data = json_body()
    if not data.get('student_ids'):
        return jsonify({"status": "error", "message": "student_ids is required", "code": 400}), 400
    result = service(StudentService).promote(g.school_id, data['student_ids'], data.get('target_stream'))
    return jsonify({"status": "success", **result, "code": 200}), 200

@students_bp.route('/students/<int:student_id>/promotions', methods=['GET'])
@school_required
@role_required(*READ_ROLES)
def promotion_history(student_id):
    history = service(StudentService).promotion_history(g.school_id, student_id)
    return jsonify({"status": "success", "history": [h.to_dict() for h in history], "code": 200}), 200

@students_bp.route('/students/capacity-check', methods=['GET'])
@school_required
@role_required(*WRITE_ROLES)
def capacity_check():
    service(StudentService).check_capacity(g.school_id, request.args.get('class_level'),
                                           request.args.get('stream'))
    return jsonify({"status": "success", "message": "Stream has space", "code": 200}), 200

@students_bp.route('/verify/student/<int:student_id>', methods=['GET'])
def verify_student(student_id):
    payload = service(StudentService).verify(student_id)
    return jsonify({"status": "success", "student": payload, "code": 200}), 200
