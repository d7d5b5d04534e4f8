from flask import Blueprint, request, jsonify, g
from Decorators import admin_required, staff_required, school_required
from ClassService import ClassService
from Models import School
from routes.common import service, json_body

classes_bp = Blueprint("classes", __name__, url_prefix="/api")


def _term_year(data):
    """Explicit term/year, falling back to the school's current term."""
    school = g.session.get(School, g.school_id)
    return (data.get('term') or school.current_term, data.get('year') or school.current_year)


##### STREAMS #####

@classes_bp.route('/streams', methods=['GET'])
@school_required
@staff_required
def list_streams():
    return jsonify({"status": "success", "streams": service(ClassService).get_streams(g.school_id), "code": 200}), 200

@classes_bp.route('/streams', methods=['POST'])
@school_required
@admin_required
def create_stream():
    data = json_body()
    stream = service(ClassService).create_stream(g.school_id, data.get('class_level'), data.get('stream_name'),
                                                 data.get('max_capacity'), data.get('sort_order'))
    return jsonify({"status": "success", "message": "Stream created", "stream": stream.to_dict(), "code": 201}), 201

@classes_bp.route('/streams/<int:stream_id>', methods=['PUT'])
@school_required
@admin_required
def update_stream(stream_id):
    stream = service(ClassService).update_stream_capacity(g.school_id, stream_id, json_body().get('max_capacity'))
    return jsonify({"status": "success", "message": "Stream updated", "stream": stream.to_dict(), "code": 200}), 200

@classes_bp.route('/streams/<int:stream_id>', methods=['DELETE'])
@school_required
@admin_required
def delete_stream(stream_id):
    service(ClassService).delete_stream(g.school_id, stream_id)
    return jsonify({"status": "success", "message": "Stream deleted", "code": 200}), 200


##### ASSIGNMENTS #####

@classes_bp.route('/assignments', methods=['GET'])
@school_required
@staff_required
def list_assignments():
    term, year = _term_year({"term": request.args.get('term', type=int),
                             "year": request.args.get('year', type=int)})
    assignments = service(ClassService).get_assignments(g.school_id, term, year)
    return jsonify({"status": "success", "assignments": assignments, "term": term, "year": year, "code": 200}), 200

@classes_bp.route('/assignments/class-teacher', methods=['POST'])
@school_required
@admin_required
def assign_class_teacher():
    data = json_body()
    term, year = _term_year(data)
    assignment = service(ClassService).assign_class_teacher(g.school_id, data.get('teacher_id'),
                                                            data.get('class_level'), data.get('stream'), term, year)
    return jsonify({"status": "success", "message": "Class teacher assigned",
                    "assignment": assignment.to_dict(), "code": 200}), 200

@classes_bp.route('/assignments/subject-teacher', methods=['POST'])
@school_required
@admin_required
def assign_subject_teacher():
    data = json_body()
    term, year = _term_year(data)
    assignment = service(ClassService).assign_subject_teacher(g.school_id, data.get('teacher_id'),
                                                              data.get('class_level'), data.get('stream'),
                                                              data.get('subject'), term, year)
    return jsonify({"status": "success", "message": "Subject teacher assigned",
                    "assignment": assignment.to_dict(), "code": 200}), 200

@classes_bp.route('/assignments/<int:assignment_id>', methods=['DELETE'])
@school_required
@admin_required
def remove_assignment(assignment_id):
    service(ClassService).remove_assignment(g.school_id, assignment_id)
    return jsonify({"status": "success", "message": "Assignment removed", "code": 200}), 200


@classes_bp.route('/classes/<class_level>/register', methods=['GET'])
@school_required
@staff_required
def class_register(class_level):
    register = service(ClassService).class_register(g.school_id, class_level, request.args.get('stream'))
    return jsonify({"status": "success", **register, "code": 200}), 200
