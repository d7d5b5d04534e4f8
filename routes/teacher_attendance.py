from flask import Blueprint, request, jsonify, g
from Decorators import admin_required, staff_required, school_required
from TeacherAttendanceService import TeacherAttendanceService
from Helpers import parse_date
from routes.common import service, json_body

teacher_attendance_bp = Blueprint("teacher_attendance", __name__, url_prefix="/api/teacher-attendance")


@teacher_attendance_bp.route('', methods=['GET'])
@school_required
@staff_required
def daily_attendance():
    records = service(TeacherAttendanceService).get_attendance(g.school_id, parse_date(request.args.get('date')))
    return jsonify({"status": "success", "attendance": records, "code": 200}), 200

@teacher_attendance_bp.route('/check-in', methods=['POST'])
@school_required
@staff_required
def check_in():
    data = json_body()
    if not data.get('teacher_id'):
        return jsonify({"status": "error", "message": "teacher_id is required", "code": 400}), 400
    record = service(TeacherAttendanceService).check_in(
        g.school_id, data['teacher_id'], method=data.get('method', 'manual'),
        latitude=data.get('latitude'), longitude=data.get('longitude'), accuracy=data.get('accuracy'),
        face_confidence=data.get('face_confidence'))
    return jsonify({"status": "success", "message": "Checked in", "attendance": record.to_dict(), "code": 200}), 200

@teacher_attendance_bp.route('/check-out', methods=['POST'])
@school_required
@staff_required
def check_out():
    data = json_body()
    if not data.get('teacher_id'):
        return jsonify({"status": "error", "message": "teacher_id is required", "code": 400}), 400
    record = service(TeacherAttendanceService).check_out(g.school_id, data['teacher_id'], data.get('method', 'manual'))
    return jsonify({"status": "success", "message": "Checked out", "attendance": record.to_dict(), "code": 200}), 200

@teacher_attendance_bp.route('/leave', methods=['POST'])
@school_required
@admin_required
def mark_leave():
    data = json_body()
    if not data.get('teacher_id'):
        return jsonify({"status": "error", "message": "teacher_id is required", "code": 400}), 400
    record = service(TeacherAttendanceService).mark_leave(g.school_id, data['teacher_id'], data.get('date'),
                                                          data.get('leave_type'), data.get('notes'))
    return jsonify({"status": "success", "message": "Leave recorded", "attendance": record.to_dict(), "code": 200}), 200

@teacher_attendance_bp.route('/<int:teacher_id>/history', methods=['GET'])
@school_required
@staff_required
def history(teacher_id):
    rows, counts = service(TeacherAttendanceService).history(g.school_id, teacher_id,
                                                             parse_date(request.args.get('from')),
                                                             parse_date(request.args.get('to')))
    return jsonify({"status": "success", "attendance": [r.to_dict() for r in rows],
                    "summary": counts, "code": 200}), 200
