from AuditService import BaseService
from AttendanceService import AttendanceService, load_settings
from Models import FaceEmbedding, Student, Teacher
from Helpers import NotFoundError, is_valid_embedding, face_distance

PERSON_MODELS = {"student": Student, "teacher": Teacher}


class BiometricService(BaseService):

    def _person(self, school_id, person_type, person_id):
        model = PERSON_MODELS.get(person_type)
        if model is None:
            raise ValueError("person_type must be student or teacher")
        person = self.session.query(model).filter_by(id=person_id, school_id=school_id).first()
        if person is None:
            raise NotFoundError(f"{person_type.capitalize()} not found")
        return person

    def enroll(self, school_id, person_type, person_id, embedding, quality=None) -> FaceEmbedding:
        self._person(school_id, person_type, person_id)
        if not is_valid_embedding(embedding):
            raise ValueError("embedding must be a list of 128 numbers")
        row = (self.session.query(FaceEmbedding)
               .filter_by(school_id=school_id, person_type=person_type, person_id=person_id).first())
        if row is None:
            row = FaceEmbedding(school_id=school_id, person_type=person_type, person_id=person_id)
            self.session.add(row)
        row.embedding = [float(x) for x in embedding]
        row.quality = quality
        row.is_active = True
        self.commit()
        return row

    def remove(self, school_id, person_type, person_id):
        row = (self.session.query(FaceEmbedding)
               .filter_by(school_id=school_id, person_type=person_type, person_id=person_id).first())
        if row is None:
            raise NotFoundError("No face enrolment found")
        self.session.delete(row)
        self.commit()

    def enrolled(self, school_id, person_type=None):
        """Active enrolments whose student or teacher record is still active."""
        rows = []
        for kind, model in PERSON_MODELS.items():
            if person_type and kind != person_type:
                continue
            rows += (self.session.query(FaceEmbedding)
                     .join(model, model.id == FaceEmbedding.person_id)
                     .filter(FaceEmbedding.school_id == school_id,
                             FaceEmbedding.person_type == kind,
                             FaceEmbedding.is_active.is_(True),
                             model.is_active.is_(True))
                     .all())
        return rows

    def identify(self, school_id, person_type, embedding):
        """Closest enrolled person by Euclidean distance, or no match above the threshold."""
        if not is_valid_embedding(embedding):
            raise ValueError("embedding must be a list of 128 numbers")
        candidates = self.enrolled(school_id, person_type)
        if not candidates:
            raise NotFoundError("No enrolled faces on file")

        best, best_dist = None, float("inf")
        for row in candidates:
            d = face_distance(embedding, row.embedding)
            if d < best_dist:
                best, best_dist = row, d

        threshold = load_settings(self.session, school_id).face_confidence_threshold
        if best is None or best_dist > threshold:
            return {"matched": False, "distance": best_dist, "threshold": threshold}

        person = self._person(school_id, best.person_type, best.person_id)
        return {
            "matched": True,
            "person_type": best.person_type,
            "person": {"id": person.id, "name": person.name},
            "distance": best_dist,
            "threshold": threshold,
        }

    def face_check_in(self, school_id, embedding, now=None):
        result = self.identify(school_id, "student", embedding)
        if not result["matched"]:
            return result
        attendance = AttendanceService(self.session, self.actor, self.ip_address)
        try:
            record = attendance.check_in(school_id, result["person"]["id"], method="face", now=now)
            result["already_checked_in"] = False
            result["status"] = record.status
            result["check_in_time"] = record.check_in_time
        except ValueError:
            result["already_checked_in"] = True
        return result
