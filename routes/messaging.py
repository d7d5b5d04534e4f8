from flask import Blueprint, request, jsonify, g
from Decorators import school_required
from MessagingService import MessagingService
from routes.common import service, json_body

messaging_bp = Blueprint("messaging", __name__, url_prefix="/api/messaging")


@messaging_bp.route('/users', methods=['GET'])
@school_required
def messaging_users():
    users = service(MessagingService).get_messaging_users(g.school_id)
    return jsonify({"status": "success", "users": users, "code": 200}), 200

@messaging_bp.route('/conversations', methods=['GET'])
@school_required
def list_conversations():
    include_archived = request.args.get('archived', '').lower() in ('1', 'true', 'yes')
    conversations = service(MessagingService).get_conversations(g.school_id, include_archived)
    return jsonify({"status": "success", "conversations": conversations, "code": 200}), 200

@messaging_bp.route('/conversations', methods=['POST'])
@school_required
def create_conversation():
    data = json_body()
    conversation = service(MessagingService).create_conversation(
        g.school_id, data.get('participant_ids'), data.get('content'), subject=data.get('subject'),
        type=data.get('type'), group_name=data.get('group_name'), group_description=data.get('group_description'))
    return jsonify({"status": "success", "message": "Conversation created",
                    "conversation": conversation.to_dict(), "code": 201}), 201

@messaging_bp.route('/conversations/<int:conversation_id>/messages', methods=['GET'])
@school_required
def get_messages(conversation_id):
    messages = service(MessagingService).get_messages(g.school_id, conversation_id)
    return jsonify({"status": "success", "messages": messages, "code": 200}), 200

@messaging_bp.route('/conversations/<int:conversation_id>/messages', methods=['POST'])
@school_required
def send_message(conversation_id):
    data = json_body()
    message = service(MessagingService).send_message(g.school_id, conversation_id, data.get('content'),
                                                     data.get('message_type', 'text'), data.get('attachment_url'))
    return jsonify({"status": "success", "message": "Message sent", "data": message.to_dict(), "code": 201}), 201

@messaging_bp.route('/messages/<int:message_id>', methods=['PUT'])
@school_required
def edit_message(message_id):
    message = service(MessagingService).edit_message(g.school_id, message_id, json_body().get('content'))
    return jsonify({"status": "success", "message": "Message edited", "data": message.to_dict(), "code": 200}), 200

@messaging_bp.route('/messages/<int:message_id>', methods=['DELETE'])
@school_required
def delete_message(message_id):
    service(MessagingService).delete_message(g.school_id, message_id)
    return jsonify({"status": "success", "message": "Message deleted", "code": 200}), 200

@messaging_bp.route('/conversations/<int:conversation_id>/read', methods=['POST'])
@school_required
def mark_as_read(conversation_id):
    service(MessagingService).mark_as_read(g.school_id, conversation_id)
    return jsonify({"status": "success", "message": "Marked as read", "code": 200}), 200

@messaging_bp.route('/conversations/<int:conversation_id>/archive', methods=['POST'])
@school_required
def archive(conversation_id):
    archived = json_body().get('archived', True)
    service(MessagingService).set_archived(g.school_id, conversation_id, archived)
    return jsonify({"status": "success", "message": "Archived" if archived else "Unarchived", "code": 200}), 200

@messaging_bp.route('/unread-count', methods=['GET'])
@school_required
def unread_count():
    count = service(MessagingService).get_unread_count(g.school_id)
    return jsonify({"status": "success", "unread_count": count, "code": 200}), 200
