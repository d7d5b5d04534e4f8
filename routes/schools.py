from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import jwt_required
from Decorators import role_required, admin_required, school_required, super_admin_required
from Helpers import paginate_args
from SchoolService import SchoolService
from AuditService import AuditService
from routes.common import service, json_body

schools_bp = Blueprint("schools", __name__, url_prefix="/api")


@schools_bp.route('/schools', methods=['GET'])
@jwt_required()
def list_schools():
    schools = service(SchoolService).get_schools(g.user)
    return jsonify({"status": "success", "schools": [s.to_dict() for s in schools], "code": 200}), 200

@schools_bp.route('/schools/<int:school_id>', methods=['GET'])
@jwt_required()
def get_school(school_id):
    school = service(SchoolService).get_school(school_id, g.user)
    return jsonify({"status": "success", "school": school.to_dict(), "code": 200}), 200

@schools_bp.route('/schools', methods=['POST'])
@super_admin_required
def create_school():
    school = service(SchoolService).create_school(json_body())
    return jsonify({"status": "success", "message": "School created", "school": school.to_dict(), "code": 201}), 201

@schools_bp.route('/schools/<int:school_id>', methods=['PUT'])
@admin_required
def update_school(school_id):
    if not g.user.is_super_admin and (g.school_id != school_id or g.role != "admin"):
        return jsonify({"status": "error", "message": "Admin access required", "code": 403}), 403
    school = service(SchoolService).update_school(school_id, json_body())
    return jsonify({"status": "success", "message": "School updated", "school": school.to_dict(), "code": 200}), 200

@schools_bp.route('/settings', methods=['GET'])
@school_required
def get_settings():
    settings = service(SchoolService).get_settings(g.school_id)
    return jsonify({"status": "success", "settings": settings, "code": 200}), 200

@schools_bp.route('/settings', methods=['PUT'])
@school_required
@admin_required
def update_settings():
    settings = service(SchoolService).update_settings(g.school_id, json_body())
    return jsonify({"status": "success", "message": "Settings updated", "settings": settings, "code": 200}), 200

@schools_bp.route('/dashboard', methods=['GET'])
@school_required
@role_required("admin", "teacher", "staff", "bursar")
def dashboard():
    stats = service(SchoolService).dashboard(g.school_id)
    return jsonify({"status": "success", "dashboard": stats, "code": 200}), 200

@schools_bp.route('/audit-logs', methods=['GET'])
@school_required
@admin_required
def school_audit_logs():
    limit, offset = paginate_args(request.args)
    logs = service(AuditService).get_logs(school_id=g.school_id, action=request.args.get('action'),
                                          entity_type=request.args.get('entity_type'),
                                          limit=limit, offset=offset)
    return jsonify({"status": "success", **logs, "code": 200}), 200
