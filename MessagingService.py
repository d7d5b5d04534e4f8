from datetime import datetime
from AuditService import BaseService
from Models import Conversation, ConversationParticipant, Message, User, UserSchool
from Helpers import NotFoundError, PermissionDenied

CONVERSATION_TYPES = ("direct", "group", "announcement")
DELETED_PLACEHOLDER = "This message was deleted"


class MessagingService(BaseService):
    """Conversations between members of one school. The acting user is ``self.actor``."""

    def get_messaging_users(self, school_id):
        rows = (self.session.query(User, UserSchool.role)
                .join(UserSchool, UserSchool.user_id == User.id)
                .filter(UserSchool.school_id == school_id, User.id != self.actor_id)
                .order_by(User.name).all())
        return [{"id": u.id, "name": u.name, "role": role, "email": u.email} for u, role in rows]

    def _conversation(self, school_id, conversation_id) -> Conversation:
        conversation = (self.session.query(Conversation)
                        .filter_by(id=conversation_id, school_id=school_id).first())
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if conversation.participant(self.actor_id) is None:
            raise PermissionDenied("You are not a participant in this conversation")
        return conversation

    def _unread(self, conversation, participant):
        q = (self.session.query(Message)
             .filter(Message.conversation_id == conversation.id, Message.sender_id != self.actor_id,
                     Message.is_deleted.is_(False)))
        if participant.last_read_at is not None:
            q = q.filter(Message.created_at > participant.last_read_at)
        return q.count()

    def _shape(self, conversation, participant):
        last = (self.session.query(Message)
                .filter_by(conversation_id=conversation.id)
                .order_by(Message.id.desc()).first())
        row = conversation.to_dict()
        row["participants"] = [{"id": p.user_id, "name": p.user.name if p.user else None}
                               for p in conversation.participants]
        row["last_message"] = self._message(last) if last else None
        row["unread_count"] = self._unread(conversation, participant)
        return row

    @staticmethod
    def _message(message):
        row = message.to_dict()
        row["sender_name"] = message.sender.name if message.sender else None
        return row

    def get_conversations(self, school_id, include_archived=False):
        q = (self.session.query(Conversation, ConversationParticipant)
             .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
             .filter(Conversation.school_id == school_id, ConversationParticipant.user_id == self.actor_id))
        if not include_archived:
            q = q.filter(ConversationParticipant.is_archived.is_(False))
        rows = q.order_by(Conversation.last_message_at.desc(), Conversation.id.desc()).all()
        return [self._shape(conversation, participant) for conversation, participant in rows]

    def create_conversation(self, school_id, participant_ids, content, subject=None,
                            type=None, group_name=None, group_description=None) -> Conversation:
        ids = sorted({int(i) for i in participant_ids or []} - {self.actor_id})
        if not ids:
            raise ValueError("At least one participant is required")
        if not content or not content.strip():
            raise ValueError("An initial message is required")
        members = {uid for (uid,) in self.session.query(UserSchool.user_id)
                   .filter(UserSchool.school_id == school_id, UserSchool.user_id.in_(ids)).all()}
        outsiders = [i for i in ids if i not in members]
        if outsiders:
            raise NotFoundError(f"Users not found in this school: {', '.join(str(i) for i in outsiders)}")

        conversation_type = type or ("group" if len(ids) > 1 else "direct")
        if conversation_type not in CONVERSATION_TYPES:
            raise ValueError(f"type must be one of: {', '.join(CONVERSATION_TYPES)}")

        now = datetime.now()
        conversation = Conversation(
            school_id=school_id,
            subject=subject or group_name or "New Conversation",
            type=conversation_type,
            group_name=group_name,
            group_description=group_description,
            admins=[self.actor_id] if conversation_type != "direct" else [],
            created_by=self.actor_id,
            last_message_at=now,
        )
        self.session.add(conversation)
        self.session.flush()
        for uid in [self.actor_id] + ids:
            self.session.add(ConversationParticipant(
                conversation_id=conversation.id, user_id=uid,
                last_read_at=now if uid == self.actor_id else None))
        self.session.add(Message(conversation_id=conversation.id, sender_id=self.actor_id,
                                 content=content.strip(), created_at=now))
        self.commit()
        return conversation

    def get_messages(self, school_id, conversation_id):
        conversation = self._conversation(school_id, conversation_id)
        messages = [self._message(m) for m in conversation.messages]
        conversation.participant(self.actor_id).last_read_at = datetime.now()
        self.commit()
        return messages

    def send_message(self, school_id, conversation_id, content=None, message_type="text", attachment_url=None) -> Message:
        conversation = self._conversation(school_id, conversation_id)
        content = (content or "").strip()
        if not content and not attachment_url:
            raise ValueError("Message content is required")
        now = datetime.now()
        message = Message(conversation_id=conversation.id, sender_id=self.actor_id, content=content,
                          message_type=message_type or "text", attachment_url=attachment_url, created_at=now)
        self.session.add(message)
        conversation.last_message_at = now
        conversation.participant(self.actor_id).last_read_at = now
        self.commit()
        return message

    def _own_message(self, school_id, message_id) -> Message:
        message = self.session.get(Message, message_id)
        if message is None or message.conversation.school_id != school_id:
            raise NotFoundError("Message not found")
        if message.sender_id != self.actor_id:
            raise PermissionDenied("You can only change your own messages")
        if message.is_deleted:
            raise ValueError("Message has been deleted")
        return message

    def edit_message(self, school_id, message_id, content) -> Message:
        message = self._own_message(school_id, message_id)
        if not content or not content.strip():
            raise ValueError("Message content is required")
        message.content = content.strip()
        message.is_edited = True
        message.edited_at = datetime.now()
        self.commit()
        return message

    def delete_message(self, school_id, message_id) -> Message:
        message = self._own_message(school_id, message_id)
        message.is_deleted = True
        message.deleted_at = datetime.now()
        message.content = DELETED_PLACEHOLDER
        self.commit()
        return message

    def mark_as_read(self, school_id, conversation_id):
        conversation = self._conversation(school_id, conversation_id)
        conversation.participant(self.actor_id).last_read_at = datetime.now()
        self.commit()

    def set_archived(self, school_id, conversation_id, archived=True):
        conversation = self._conversation(school_id, conversation_id)
        conversation.participant(self.actor_id).is_archived = bool(archived)
        self.commit()

    def get_unread_count(self, school_id) -> int:
        rows = (self.session.query(Conversation, ConversationParticipant)
                .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
                .filter(Conversation.school_id == school_id, ConversationParticipant.user_id == self.actor_id)
                .all())
        return len([c for c, p in rows if self._unread(c, p) > 0])
