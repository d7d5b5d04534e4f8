from flask import Blueprint, jsonify, g
from Decorators import admin_required, staff_required, school_required
from TeacherService import TeacherService
from routes.common import service, json_body

teachers_bp = Blueprint("teachers", __name__, url_prefix="/api/teachers")


@teachers_bp.route('', methods=['GET'])
@school_required
@staff_required
def list_teachers():
    teachers = service(TeacherService).get_teachers(g.school_id)
    return jsonify({"status": "success", "teachers": [t.to_dict() for t in teachers], "code": 200}), 200

@teachers_bp.route('/<int:teacher_id>', methods=['GET'])
@school_required
@staff_required
def get_teacher(teacher_id):
    teacher = service(TeacherService).get_teacher_by_id(teacher_id, g.school_id)
    return jsonify({"status": "success", "teacher": teacher.to_dict(), "code": 200}), 200

@teachers_bp.route('', methods=['POST'])
@school_required
@admin_required
def create_teacher():
    teacher = service(TeacherService).create_teacher(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Teacher created", "teacher": teacher.to_dict(), "code": 201}), 201

@teachers_bp.route('/<int:teacher_id>', methods=['PUT'])
@school_required
@admin_required
def update_teacher(teacher_id):
    teacher = service(TeacherService).update_teacher(teacher_id, g.school_id, json_body())
    return jsonify({"status": "success", "message": "Teacher updated", "teacher": teacher.to_dict(), "code": 200}), 200

@teachers_bp.route('/<int:teacher_id>', methods=['DELETE'])
@school_required
@admin_required
def delete_teacher(teacher_id):
    service(TeacherService).delete_teacher(teacher_id, g.school_id)
    return jsonify({"status": "success", "message": "Teacher deleted", "code": 200}), 200

@teachers_bp.route('/import', methods=['POST'])
@school_required
@admin_required
def import_teachers():
    rows = json_body().get('teachers')
    if not isinstance(rows, list):
        return jsonify({"status": "error", "message": "teachers must be a list", "code": 400}), 400
    created = service(TeacherService).batch_import_teachers(g.school_id, rows)
    return jsonify({"status": "success", "message": f"{len(created)} teachers imported",
                    "teachers": [t.to_dict() for t in created], "code": 201}), 201
