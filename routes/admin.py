from flask import Blueprint, request, jsonify
from Decorators import super_admin_required
from Helpers import paginate_args
from SchoolService import SchoolService
from UserService import UserService
from AuditService import AuditService
from routes.common import service, json_body

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route('/stats', methods=['GET'])
@super_admin_required
def platform_stats():
    return jsonify({"status": "success", "stats": service(SchoolService).platform_stats(), "code": 200}), 200

@admin_bp.route('/audit-logs', methods=['GET'])
@super_admin_required
def audit_logs():
    limit, offset = paginate_args(request.args)
    logs = service(AuditService).get_logs(action=request.args.get('action'),
                                          entity_type=request.args.get('entity_type'),
                                          limit=limit, offset=offset)
    return jsonify({"status": "success", **logs, "code": 200}), 200

@admin_bp.route('/schools/<int:school_id>', methods=['DELETE'])
@super_admin_required
def delete_school(school_id):
    service(SchoolService).delete_school(school_id)
    return jsonify({"status": "success", "message": "School deactivated", "code": 200}), 200

##### USERS #####

@admin_bp.route('/users', methods=['GET'])
@super_admin_required
def list_users():
    return jsonify({"status": "success", "users": service(UserService).get_all_users(), "code": 200}), 200

@admin_bp.route('/users', methods=['POST'])
@super_admin_required
def create_user():
    user = service(UserService).create_user(json_body())
    return jsonify({"status": "success", "message": "User created", "user": user.get_profile(), "code": 201}), 201

@admin_bp.route('/users/<int:user_id>', methods=['PUT'])
@super_admin_required
def update_user(user_id):
    user = service(UserService).update_user(user_id, json_body())
    return jsonify({"status": "success", "message": "User updated", "user": user.get_profile(), "code": 200}), 200

@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@super_admin_required
def delete_user(user_id):
    service(UserService).delete_user(user_id)
    return jsonify({"status": "success", "message": "User deleted", "code": 200}), 200

@admin_bp.route('/users/<int:user_id>/schools', methods=['GET'])
@super_admin_required
def user_schools(user_id):
    schools = service(UserService).get_user_schools(user_id)
    return jsonify({"status": "success", "schools": schools, "code": 200}), 200

@admin_bp.route('/users/<int:user_id>/schools', methods=['POST'])
@super_admin_required
def assign_school(user_id):
    data = json_body()
    if not data.get('school_id') or not data.get('role'):
        return jsonify({"status": "error", "message": "school_id and role are required", "code": 400}), 400
    membership = service(UserService).assign_school(user_id, data['school_id'], data['role'],
                                                    bool(data.get('is_primary')))
    return jsonify({"status": "success", "message": "School assigned", "membership": membership.to_dict(), "code": 200}), 200

@admin_bp.route('/users/<int:user_id>/schools/<int:school_id>', methods=['DELETE'])
@super_admin_required
def unassign_school(user_id, school_id):
    service(UserService).unassign_school(user_id, school_id)
    return jsonify({"status": "success", "message": "School unassigned", "code": 200}), 200
