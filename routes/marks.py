from flask import Blueprint, request, jsonify, g
from Decorators import role_required, staff_required, school_required
from MarksService import MarksService
from routes.common import service, json_body

marks_bp = Blueprint("marks", __name__, url_prefix="/api/marks")

ENTRY_ROLES = ("admin", "teacher")


def _report_args():
    args = request.args
    missing = [f for f in ("class_level", "term", "year", "type") if not args.get(f)]
    if missing:
        raise ValueError(f"Missing query parameters: {', '.join(missing)}")
    return (args['class_level'], args.get('term', type=int), args.get('year', type=int),
            args['type'], args.get('stream'))


@marks_bp.route('', methods=['GET'])
@school_required
@staff_required
def list_marks():
    args = request.args
    marks = service(MarksService).get_marks(g.school_id, year=args.get('year', type=int),
                                            term=args.get('term', type=int), type=args.get('type'),
                                            class_level=args.get('class_level'))
    return jsonify({"status": "success", "marks": [m.to_dict() for m in marks], "code": 200}), 200

@marks_bp.route('/student/<int:student_id>', methods=['GET'])
@school_required
@staff_required
def student_marks(student_id):
    marks = service(MarksService).get_student_marks(g.school_id, student_id, request.args.get('year', type=int))
    return jsonify({"status": "success", "marks": [m.to_dict() for m in marks], "code": 200}), 200

@marks_bp.route('', methods=['POST'])
@school_required
@role_required(*ENTRY_ROLES)
def save_mark():
    mark = service(MarksService).save_mark(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Marks saved", "mark": mark.to_dict(), "code": 200}), 200

@marks_bp.route('/batch', methods=['POST'])
@school_required
@role_required(*ENTRY_ROLES)
def save_marks_batch():
    rows = json_body().get('marks')
    if not isinstance(rows, list) or not rows:
        return jsonify({"status": "error", "message": "marks must be a non-empty list", "code": 400}), 400
    saved = service(MarksService).save_marks_batch(g.school_id, rows)
    return jsonify({"status": "success", "message": f"{len(saved)} records saved",
                    "marks": [m.to_dict() for m in saved], "code": 200}), 200

@marks_bp.route('/batch-delete', methods=['POST'])
@school_required
@role_required(*ENTRY_ROLES)
def delete_marks_batch():
    data = json_body()
    result = service(MarksService).delete_marks_batch(g.school_id, data.get('student_ids'), data.get('term'),
                                                      data.get('year'), data.get('type'))
    return jsonify({"status": "success", **result, "code": 200}), 200

@marks_bp.route('/report', methods=['GET'])
@school_required
@staff_required
def class_report():
    class_level, term, year, exam_type, stream = _report_args()
    report = service(MarksService).class_report(g.school_id, class_level, term, year, exam_type, stream)
    return jsonify({"status": "success", "report": report, "code": 200}), 200

@marks_bp.route('/analysis', methods=['GET'])
@school_required
@staff_required
def subject_analysis():
    class_level, term, year, exam_type, stream = _report_args()
    analysis = service(MarksService).subject_analysis(g.school_id, class_level, term, year, exam_type, stream)
    return jsonify({"status": "success", "analysis": analysis, "code": 200}), 200
