from flask import Blueprint, request, jsonify, g
from Decorators import admin_required, staff_required, role_required, school_required
from AttendanceService import AttendanceService
from BiometricService import BiometricService
from Helpers import parse_date, bytes_to_encoding, FACE_ENABLED
from routes.common import service, json_body

attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")

ENROL_ROLES = ("admin", "staff")


##### SETTINGS #####

@attendance_bp.route('/settings', methods=['GET'])
@school_required
@staff_required
def get_settings():
    settings = service(AttendanceService).get_settings(g.school_id)
    return jsonify({"status": "success", "settings": settings.to_dict(), "code": 200}), 200

@attendance_bp.route('/settings', methods=['PUT'])
@school_required
@admin_required
def update_settings():
    settings = service(AttendanceService).update_settings(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Settings updated", "settings": settings.to_dict(), "code": 200}), 200


##### GATE #####

@attendance_bp.route('/gate', methods=['GET'])
@school_required
@staff_required
def gate_attendance():
    day = parse_date(request.args.get('date'))
    records = service(AttendanceService).get_gate_attendance(g.school_id, day)
    return jsonify({"status": "success", "attendance": records, "code": 200}), 200

@attendance_bp.route('/gate/check-in', methods=['POST'])
@school_required
@staff_required
def gate_check_in():
    data = json_body()
    if not data.get('student_id'):
        return jsonify({"status": "error", "message": "student_id is required", "code": 400}), 400
    record = service(AttendanceService).check_in(g.school_id, data['student_id'], data.get('method', 'manual'))
    return jsonify({"status": "success", "message": "Checked in", "attendance": record.to_dict(), "code": 200}), 200

@attendance_bp.route('/gate/check-out', methods=['POST'])
@school_required
@staff_required
def gate_check_out():
    data = json_body()
    if not data.get('student_id'):
        return jsonify({"status": "error", "message": "student_id is required", "code": 400}), 400
    record = service(AttendanceService).check_out(g.school_id, data['student_id'], data.get('method', 'manual'))
    return jsonify({"status": "success", "message": "Checked out", "attendance": record.to_dict(), "code": 200}), 200

@attendance_bp.route('/gate/mark-absent', methods=['POST'])
@school_required
@staff_required
def mark_absent():
    day = parse_date(json_body().get('date'))
    count = service(AttendanceService).mark_absent(g.school_id, day)
    return jsonify({"status": "success", "message": f"{count} students marked absent", "marked": count, "code": 200}), 200

@attendance_bp.route('/gate/summary', methods=['GET'])
@school_required
@staff_required
def daily_summary():
    summary = service(AttendanceService).daily_summary(g.school_id, parse_date(request.args.get('date')))
    return jsonify({"status": "success", "summary": summary, "code": 200}), 200

@attendance_bp.route('/students/<int:student_id>', methods=['GET'])
@school_required
@staff_required
def student_history(student_id):
    rows = service(AttendanceService).student_history(g.school_id, student_id,
                                                      parse_date(request.args.get('from')),
                                                      parse_date(request.args.get('to')))
    return jsonify({"status": "success", "attendance": [r.to_dict() for r in rows], "code": 200}), 200


##### CLASS #####

@attendance_bp.route('/class', methods=['POST'])
@school_required
@staff_required
def record_class_attendance():
    data = json_body()
    saved = service(AttendanceService).record_class_attendance(
        g.school_id, data.get('class_level'), data.get('stream'), data.get('date'),
        data.get('period'), data.get('records'), data.get('subject'))
    return jsonify({"status": "success", "message": f"{saved} records saved", "saved": saved, "code": 200}), 200

@attendance_bp.route('/class', methods=['GET'])
@school_required
@staff_required
def class_attendance():
    class_level = request.args.get('class_level')
    if not class_level:
        return jsonify({"status": "error", "message": "class_level is required", "code": 400}), 400
    rows, summary = service(AttendanceService).get_class_attendance(
        g.school_id, class_level, request.args.get('stream'), parse_date(request.args.get('date')),
        request.args.get('period', type=int))
    return jsonify({"status": "success", "attendance": [r.to_dict() for r in rows],
                    "summary": summary, "code": 200}), 200


##### BOARDING #####

@attendance_bp.route('/boarding', methods=['POST'])
@school_required
@staff_required
def submit_roll_call():
    data = json_body()
    saved = service(AttendanceService).submit_roll_call(g.school_id, data.get('session'), data.get('records'),
                                                        data.get('date'))
    return jsonify({"status": "success", "message": f"{saved} records saved", "saved": saved, "code": 200}), 200

@attendance_bp.route('/boarding', methods=['GET'])
@school_required
@staff_required
def roll_calls():
    rows = service(AttendanceService).get_roll_calls(g.school_id, parse_date(request.args.get('date')),
                                                     request.args.get('session'))
    return jsonify({"status": "success", "roll_calls": [r.to_dict() for r in rows], "code": 200}), 200


##### FACE RECOGNITION #####

def _face_disabled():
    return jsonify({"status": "error", "message": "Face recognition disabled on server", "code": 503}), 503

def _embedding():
    """Embedding from the JSON body, or computed from an uploaded photo."""
    upload = request.files.get('image')
    if upload is not None:
        encoding = bytes_to_encoding(upload.read())
        if encoding is None:
            raise ValueError("No face detected in image")
        return list(encoding)
    return json_body().get('embedding')

@attendance_bp.route('/face/enroll', methods=['POST'])
@school_required
@role_required(*ENROL_ROLES)
def enroll_face():
    if request.files and not FACE_ENABLED:
        return _face_disabled()
    if request.files:
        data = request.form
        person_id = data.get('person_id', type=int)
    else:
        data = json_body()
        person_id = data.get('person_id')
    row = service(BiometricService).enroll(g.school_id, data.get('person_type'), person_id,
                                           _embedding(), data.get('quality'))
    return jsonify({"status": "success", "message": "Face enrolled", "enrolment": row.to_dict(), "code": 200}), 200

@attendance_bp.route('/face/<person_type>/<int:person_id>', methods=['DELETE'])
@school_required
@role_required(*ENROL_ROLES)
def remove_face(person_type, person_id):
    service(BiometricService).remove(g.school_id, person_type, person_id)
    return jsonify({"status": "success", "message": "Face enrolment removed", "code": 200}), 200

@attendance_bp.route('/face/enrolled', methods=['GET'])
@school_required
@staff_required
def enrolled_faces():
    rows = service(BiometricService).enrolled(g.school_id, request.args.get('person_type'))
    return jsonify({"status": "success", "enrolled": [r.to_dict() for r in rows], "code": 200}), 200

@attendance_bp.route('/face/identify', methods=['POST'])
@school_required
@staff_required
def identify_face():
    if request.files and not FACE_ENABLED:
        return _face_disabled()
    person_type = request.form.get('person_type') if request.files else json_body().get('person_type')
    result = service(BiometricService).identify(g.school_id, person_type or "student", _embedding())
    return jsonify({"status": "success", **result, "code": 200}), 200

@attendance_bp.route('/face/check-in', methods=['POST'])
@school_required
@staff_required
def face_check_in():
    if request.files and not FACE_ENABLED:
        return _face_disabled()
    result = service(BiometricService).face_check_in(g.school_id, _embedding())
    return jsonify({"status": "success", **result, "code": 200}), 200
