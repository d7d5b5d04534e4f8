from sqlalchemy import desc
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from Models import AuditLog


class BaseService:
    """Shared plumbing for the domain services: session, acting user, audit trail."""

    def __init__(self, session: Session, actor=None, ip_address=None):
        self.session = session
        self.actor = actor
        self.ip_address = ip_address

    @property
    def actor_id(self):
        return self.actor.id if self.actor is not None else None

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def audit(self, school_id, action, entity_type, entity_id=None, entity_name=None, details=None):
        # Added to the caller's unit of work; persisted by its commit.
        self.session.add(AuditLog(
            school_id=school_id,
            user_id=self.actor_id,
            user_name=self.actor.name if self.actor is not None else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            details=details,
            ip_address=self.ip_address,
        ))


class AuditService(BaseService):

    def get_logs(self, school_id=None, action=None, entity_type=None, limit=50, offset=0):
        q = self.session.query(AuditLog)
        if school_id is not None:
            q = q.filter(AuditLog.school_id == school_id)
        if action:
            q = q.filter(AuditLog.action == action)
        if entity_type:
            q = q.filter(AuditLog.entity_type == entity_type)
        total = q.count()
        rows = q.order_by(desc(AuditLog.created_at), desc(AuditLog.id)).offset(offset).limit(limit).all()
        return {"data": [r.to_dict() for r in rows], "total": total}
