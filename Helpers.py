import re
import io
import math
from datetime import date, datetime
import numpy as np
from PIL import Image, UnidentifiedImageError

try:
    import face_recognition as fr
    FACE_ENABLED = True
except ImportError:
    fr = None
    FACE_ENABLED = False

EMBEDDING_SIZE = 128
EARTH_RADIUS_METERS = 6371000


class NotFoundError(Exception):
    """Raised when a tenant-scoped record does not exist."""


class ConflictError(Exception):
    """Raised when a write would violate a uniqueness or capacity rule."""


class PermissionDenied(Exception):
    pass


##### VALIDATION #####

PASSWORD_POLICY_MESSAGE = ("Password must contain at least one uppercase letter, "
                           "one lowercase letter, and one number")

def is_valid_email(email: str) -> bool:
    email_regex = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$"

    if not email or len(email) > 255:
        return False

    return re.match(email_regex, email) is not None

def password_problem(password: str):
    """Return the reason a password is rejected, or None when it is acceptable."""
    if not password or len(password) < 8:
        return "Password must be at least 8 characters"
    if not (re.search(r"[A-Z]", password) and re.search(r"[a-z]", password) and re.search(r"\d", password)):
        return PASSWORD_POLICY_MESSAGE
    return None

def is_valid_hhmm(value) -> bool:
    return isinstance(value, str) and re.match(r"^([01]\d|2[0-3]):[0-5]\d$", value) is not None

def clean_optional(data: dict, fields) -> dict:
    """Empty strings in optional fields are stored as NULL."""
    cleaned = dict(data)
    for field in fields:
        if cleaned.get(field) == "":
            cleaned[field] = None
    return cleaned


##### DATES AND TIMES #####

def parse_date(value, default=None) -> date:
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value}")

def hhmm(moment: datetime) -> str:
    return moment.strftime("%H:%M")

def add_minutes(time_str: str, minutes: int) -> str:
    hours, mins = (int(x) for x in time_str.split(":"))
    total = hours * 60 + mins + int(minutes)
    total = max(0, min(total, 23 * 60 + 59))
    return f"{total // 60:02d}:{total % 60:02d}"

def aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "1-30"
    if days_overdue <= 60:
        return "31-60"
    if days_overdue <= 90:
        return "61-90"
    return "90+"

def paginate_args(args, default_limit=50, max_limit=200):
    try:
        limit = int(args.get("limit", default_limit))
        offset = int(args.get("offset", 0))
    except (TypeError, ValueError):
        raise ValueError("limit and offset must be integers")
    return max(1, min(limit, max_limit)), max(0, offset)


##### GEOFENCING #####

def haversine_distance(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance in metres between two WGS84 points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


##### FACE EMBEDDINGS #####

def bytes_to_encoding(image_bytes: bytes):
    """
    Convert a JPEG/PNG bytes blob into a 128-d face embedding.
    Returns None if no *single* face is found or face recognition is disabled.
    """
    if not FACE_ENABLED or fr is None:
        return None
    try:
        im = Image.open(io.BytesIO(image_bytes)).convert("RGB")
    except (UnidentifiedImageError, OSError):
        return None
    arr = np.array(im)
    locs = fr.face_locations(arr, model="hog")
    if len(locs) != 1:
        return None
    encs = fr.face_encodings(arr, known_face_locations=locs)
    if len(encs) != 1:
        return None
    return [float(x) for x in encs[0]]

def is_valid_embedding(vector) -> bool:
    if not isinstance(vector, (list, tuple)) or len(vector) != EMBEDDING_SIZE:
        return False
    try:
        arr = np.asarray(vector, dtype=float)
    except (TypeError, ValueError):
        return False
    return bool(np.all(np.isfinite(arr)))

def face_distance(a, b) -> float:
    """
    Euclidean distance between two embeddings.
    face_recognition considers ~0.6 a common threshold.
    """
    a = np.asarray(a, dtype=float); b = np.asarray(b, dtype=float)
    return float(np.linalg.norm(a - b))


##### GRADING #####

UPPER_CLASSES = ("P4", "P5", "P6", "P7")
UPPER_SUBJECTS = ("english", "maths", "science", "sst")
LOWER_SUBJECTS = ("english", "maths", "literacy1", "literacy2")

DEFAULT_GRADING = {
    # minimum mark, grade, points
    "grades": [
        [90, "D1", 1], [80, "D2", 2], [70, "C3", 3], [60, "C4", 4],
        [55, "C5", 5], [50, "C6", 6], [45, "P7", 7], [40, "P8", 8],
        [0, "F9", 9],
    ],
    # inclusive aggregate ranges
    "divisions": [
        [4, 12, "I"], [13, 24, "II"], [25, 28, "III"], [29, 32, "IV"], [33, 36, "U"],
    ],
    "passing_mark": 40,
}

def grading_scale(overrides=None) -> dict:
    scale = dict(DEFAULT_GRADING)
    if overrides:
        for key in ("grades", "divisions", "passing_mark"):
            if overrides.get(key):
                scale[key] = overrides[key]
    scale["grades"] = sorted(scale["grades"], key=lambda g: g[0], reverse=True)
    return scale

def calculate_grade(mark, scale=None):
    """Return (grade, points) for a mark; a missing mark is ('-', 0)."""
    if mark is None:
        return "-", 0
    scale = scale or grading_scale()
    for minimum, grade, points in scale["grades"]:
        if mark >= minimum:
            return grade, points
    lowest = scale["grades"][-1]
    return lowest[1], lowest[2]

def core_subjects(class_level: str):
    return UPPER_SUBJECTS if class_level in UPPER_CLASSES else LOWER_SUBJECTS

def calculate_aggregate(marks: dict, class_level: str, scale=None) -> int:
    marks = marks or {}
    points = [calculate_grade(marks.get(subject), scale)[1]
              for subject in core_subjects(class_level)
              if marks.get(subject) is not None]
    return sum(points) if len(points) == 4 else 0

def calculate_division(aggregate: int, scale=None) -> str:
    if not aggregate:
        return "-"
    scale = scale or grading_scale()
    for low, high, division in scale["divisions"]:
        if low <= aggregate <= high:
            return division
    return "U"

def subject_comment(mark) -> str:
    if mark >= 95:
        return "Excellent work"
    if mark >= 90:
        return "Very good work"
    if mark >= 80:
        return "Good work"
    if mark >= 70:
        return "Quite good work. Promising."
    if mark >= 60:
        return "Work harder"
    if mark >= 50:
        return "Aim higher than this."
    if mark >= 40:
        return "You can do better than this"
    return "Consult teacher."

def _pronouns(gender):
    female = (gender or "").lower() in ("f", "female")
    return {"sub": "She" if female else "He", "obj": "her" if female else "him"}

def class_teacher_comment(aggregate: int, name: str, gender=None, special_cases=None) -> str:
    p = _pronouns(gender)
    first = (name or "").split(" ")[0] or "Learner"
    special_cases = special_cases or {}

    if special_cases.get("absenteeism"):
        return (f"{first} has underperformed due to absenteeism. {p['sub']} should try to be present "
                f"throughout the term in order to perform better than this.")
    if special_cases.get("sickness"):
        return f"{first} has been affected by sickness this term. {p['sub']} can perform better than this."
    if special_cases.get("fees"):
        return (f"{first} is often sent home for school fees and this makes {p['obj']} miss lessons. "
                f"You should try to pay school fees in time to help {p['obj']} concentrate.")

    if not aggregate:
        return "Incomplete results."
    if aggregate <= 8:
        return "Excellent performance. Keep it up!"
    if aggregate <= 12:
        return "This is a good score. Aim for aggregate four."
    if aggregate <= 24:
        return "Promising results! Work harder for a better grade."
    if aggregate <= 28:
        return "This is a fair attempt! Double your effort in all areas in order to achieve more."
    if aggregate <= 32:
        return "Work hard in all areas! You can make it."
    return "Your score is still low! Put in more effort in order to achieve."

def head_teacher_comment(aggregate: int) -> str:
    if not aggregate:
        return "Incomplete results."
    if aggregate <= 8:
        return "This is great! Stay focused."
    if aggregate <= 12:
        return "Good score. Revise your books harder in order to score a super first grade."
    if aggregate <= 24:
        return "This is quite good, but you need to work harder for a better grade."
    if aggregate <= 28:
        return "Average score! Read harder and consult with your teachers in order to attain a better grade."
    if aggregate <= 32:
        return "Revise your books, concentrate in class, and consult with your teachers for a better performance."
    return "Work very hard in order to perform well."

def ordinal(rank: int) -> str:
    if 10 <= rank % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(rank % 10, "th")
    return f"{rank}{suffix}"
