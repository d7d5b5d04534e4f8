from flask import Blueprint, jsonify, g
from Decorators import school_required, admin_required
from UserService import UserService
from routes.common import service, json_body

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.route('', methods=['GET'])
@school_required
@admin_required
def list_users():
    users = service(UserService).get_school_users(g.school_id)
    return jsonify({"status": "success", "users": users, "code": 200}), 200

@users_bp.route('', methods=['POST'])
@school_required
@admin_required
def create_user():
    user = service(UserService).create_school_user(g.school_id, json_body())
    return jsonify({"status": "success", "message": "User created", "user": user.get_profile(), "code": 201}), 201

@users_bp.route('/<int:user_id>', methods=['PUT'])
@school_required
@admin_required
def update_user(user_id):
    user = service(UserService).update_school_user(g.school_id, user_id, json_body())
    return jsonify({"status": "success", "message": "User updated", "user": user.get_profile(), "code": 200}), 200

@users_bp.route('/<int:user_id>', methods=['DELETE'])
@school_required
@admin_required
def remove_user(user_id):
    service(UserService).remove_school_user(g.school_id, user_id)
    return jsonify({"status": "success", "message": "User removed from school", "code": 200}), 200

@users_bp.route('/<int:user_id>/reset-password', methods=['POST'])
@school_required
@admin_required
def reset_password(user_id):
    service(UserService).reset_password(g.school_id, user_id, json_body().get('password'))
    return jsonify({"status": "success", "message": "Password reset", "code": 200}), 200
