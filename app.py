from datetime import datetime, timedelta
from flask import Flask, request, jsonify, g
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager, create_refresh_token,
    jwt_required, get_jwt, get_jwt_identity,
    create_access_token, verify_jwt_in_request,
    decode_token)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
import os

from Models import Base, User, School
from Helpers import NotFoundError, ConflictError, PermissionDenied
from UserService import UserService
from routes import register_blueprints
from routes.common import client_ip
from config import CORS_ORIGIN, LOG_LEVEL, MAX_LOGIN_ATTEMPTS, LOCKOUT_MINUTES

app = Flask(__name__)
cfg_name = os.getenv("FLASK_CONFIG", "Production")
app.config.from_object(f"config.{cfg_name}Config")
app.logger.setLevel(LOG_LEVEL)

CORS(app,
     resources={r"/api/*": {"origins": CORS_ORIGIN}},
     supports_credentials=True)

##### JWT SETUP #####

jwt = JWTManager(app)
# in memory blocklist -> move to redis when running more than one worker
TOKEN_BLOCKLIST = set()

@jwt.token_in_blocklist_loader
def check_if_token_revoked(jwt_headers, jwt_payload):
    return jwt_payload.get("jti") in TOKEN_BLOCKLIST

@jwt.unauthorized_loader
def _unauth(msg):
    return jsonify({"status": "error", "message": "Authentication required", "code": 401}), 401

@jwt.invalid_token_loader
def _invalid(msg):
    return jsonify({"status": "error", "message": "Invalid token", "code": 401}), 401

@jwt.expired_token_loader
def _expired(jwt_header, jwt_payload):
    return jsonify({"status": "error", "message": "Token expired", "code": 401}), 401

@jwt.revoked_token_loader
def _revoked(jwt_header, jwt_payload):
    return jsonify({"status": "error", "message": "Token has been revoked", "code": 401}), 401

def set_access_cookie(resp, access_token):
    resp.set_cookie(
        "access_token", access_token,
        httponly=True, secure=app.config.get("JWT_COOKIE_SECURE", False), samesite="Lax",
        max_age=int(app.config["JWT_ACCESS_TOKEN_EXPIRES"].total_seconds())
    )

def set_refresh_cookie(resp, refresh_token):
    resp.set_cookie(
        "refresh_token", refresh_token,
        httponly=True, secure=app.config.get("JWT_COOKIE_SECURE", False), samesite="Lax",
        max_age=int(app.config["JWT_REFRESH_TOKEN_EXPIRES"].total_seconds())
    )

def clear_auth_cookies(resp):
    resp.set_cookie("access_token", "", expires=0)
    resp.set_cookie("refresh_token", "", expires=0)

def token_claims(user, membership=None, school_id=None):
    """Claims for the user's active school; super admins may act in schools they are not members of."""
    if membership is not None:
        school_id, role = membership.school_id, membership.role
    else:
        role = "admin" if user.is_super_admin and school_id else user.role
    return {"role": role, "school_id": school_id, "super_admin": user.is_super_admin, "name": user.name}

def active_role(user, school_id):
    """(school_id, role) the user holds right now, or (None, None) when access is gone."""
    if user is None or not school_id:
        return None, None
    school = g.session.get(School, school_id)
    if school is None or not school.is_active:
        return None, None
    membership = user.membership(school.id)
    if membership is not None:
        return school.id, membership.role
    if user.is_super_admin:
        return school.id, "admin"
    return None, None

def issue_tokens(user, claims):
    access = create_access_token(identity=str(user.id), additional_claims=claims)
    refresh = create_refresh_token(identity=str(user.id), additional_claims=claims)
    return access, refresh

def attach_tokens(resp, access, refresh):
    set_access_cookie(resp, access)
    set_refresh_cookie(resp, refresh)


##### SQLALCHEMY #####

db_uri = app.config['SQLALCHEMY_DATABASE_URI']
if db_uri.startswith("sqlite"):
    # one shared connection so an in-memory database survives across sessions
    engine = create_engine(db_uri, connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine = create_engine(db_uri, pool_pre_ping=True, pool_recycle=3600)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@app.before_request
def create_session():
    g.session = SessionLocal()

    try:
        verify_jwt_in_request(optional=True)
        uid = get_jwt_identity()
        claims = get_jwt() if uid else {}
    except (JWTExtendedException, PyJWTError):
        uid, claims = None, {}

    g.user = g.session.get(User, int(uid)) if uid else None
    # membership and role are re-read every request; claims only name the school
    g.school_id, g.role = active_role(g.user, claims.get("school_id"))
    g.token_school_id = claims.get("school_id") if g.user else None

@app.teardown_appcontext
def close_session(exception=None):
    session = g.pop('session', None)
    if session is not None:
        session.close()


##### ERRORS #####

def _rollback():
    session = g.get('session')
    if session is not None:
        session.rollback()

@app.errorhandler(NotFoundError)
def _not_found(e):
    _rollback()
    return jsonify({"status": "error", "message": str(e), "code": 404}), 404

@app.errorhandler(ConflictError)
def _conflict(e):
    _rollback()
    return jsonify({"status": "error", "message": str(e), "code": 409}), 409

@app.errorhandler(PermissionDenied)
def _denied(e):
    _rollback()
    return jsonify({"status": "error", "message": str(e), "code": 403}), 403

@app.errorhandler(ValueError)
def _bad_request(e):
    _rollback()
    return jsonify({"status": "error", "message": str(e), "code": 400}), 400

@app.errorhandler(SQLAlchemyError)
def _db_error(e):
    app.logger.error(f"SQLAlchemyError: {e}")
    _rollback()
    return jsonify({"status": "error", "message": "Something went wrong", "code": 500}), 500


##### AUTH #####

# client address -> {"count": failures, "locked_until": datetime, "last_failed": datetime}
LOGIN_ATTEMPTS = {}

def prune_login_attempts(now=None):
    """Forget expired lock-outs and failures older than the lock-out window."""
    now = now or datetime.now()
    window = timedelta(minutes=LOCKOUT_MINUTES)
    stale = [ip for ip, a in LOGIN_ATTEMPTS.items()
             if (a["locked_until"] or a["last_failed"] + window) <= now]
    for ip in stale:
        del LOGIN_ATTEMPTS[ip]

@app.route('/api/auth/login', methods=['POST'])
def auth_login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or data.get('email') or '').strip()
    password = data.get('password')

    if not username or not password:
        return jsonify({"status": "error", "message": "Username and password are required", "code": 400}), 400

    ip = client_ip()
    prune_login_attempts()
    attempt = LOGIN_ATTEMPTS.get(ip)
    if attempt and attempt.get("locked_until") and attempt["locked_until"] > datetime.now():
        return jsonify({"status": "error", "message": "Too many failed login attempts. Try again later.", "code": 429}), 429

    user = UserService(g.session, ip_address=ip).authenticate(username, password)
    if user is None:
        attempt = LOGIN_ATTEMPTS.setdefault(ip, {"count": 0, "locked_until": None})
        attempt["count"] += 1
        attempt["last_failed"] = datetime.now()
        if attempt["count"] >= MAX_LOGIN_ATTEMPTS:
            attempt["locked_until"] = datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)
            attempt["count"] = 0
            app.logger.warning(f"Login locked for {ip} after repeated failures")
        return jsonify({"status": "error", "message": "Invalid username or password", "code": 403}), 403

    LOGIN_ATTEMPTS.pop(ip, None)
    claims = token_claims(user, user.default_membership())

    access, refresh = issue_tokens(user, claims)
    resp = jsonify({
        "status": "success",
        "message": "Login successful",
        "access_token": access,
        "user": user.get_profile(),
        "school_id": claims["school_id"],
        "role": claims["role"],
        "code": 200,
    })
    attach_tokens(resp, access, refresh)
    return resp, 200

@app.route('/api/auth/refresh', methods=['POST'])
@jwt_required(refresh=True, locations=['cookies', 'headers'])
def auth_refresh():
    user = g.session.get(User, int(get_jwt_identity()))
    if user is None:
        return jsonify({"status": "error", "message": "User not found", "code": 401}), 401

    # claims come from the database, not from the refresh token
    requested = get_jwt().get("school_id")
    school_id, _ = active_role(user, requested)
    if school_id is not None:
        claims = token_claims(user, user.membership(school_id), school_id)
    else:
        membership = user.default_membership()
        if requested and membership is None and not user.is_super_admin:
            return jsonify({"status": "error", "message": "You do not have access to this school", "code": 403}), 403
        claims = token_claims(user, membership)
    new_access = create_access_token(identity=str(user.id), additional_claims=claims)
    resp = jsonify({"status": "success", "message": "Token refreshed", "access_token": new_access, "code": 200})
    set_access_cookie(resp, new_access)
    return resp, 200

@app.route('/api/auth/logout', methods=['POST'])
@jwt_required(optional=True)
def auth_logout():
    j = get_jwt()
    if j:
        TOKEN_BLOCKLIST.add(j["jti"])
    rt = request.cookies.get("refresh_token")
    if rt:
        try:
            TOKEN_BLOCKLIST.add(decode_token(rt)["jti"])
        except (JWTExtendedException, PyJWTError) as e:
            app.logger.info(f"Ignoring unreadable refresh token on logout: {e}")
    resp = jsonify({"status": "success", "message": "Logged out", "code": 200})
    clear_auth_cookies(resp)
    return resp, 200

@app.route('/api/me', methods=['GET'])
@jwt_required()
def me():
    if g.user is None:
        return jsonify({"status": "error", "message": "User not found", "code": 404}), 404
    return jsonify({
        "status": "success",
        "user": g.user.get_profile(),
        "school_id": g.school_id,
        "role": g.role,
        "code": 200,
    }), 200

@app.route('/api/auth/switch-school', methods=['POST'])
@jwt_required()
def switch_school():
    data = request.get_json(silent=True) or {}
    school_id = data.get('school_id')
    if g.user is None:
        return jsonify({"status": "error", "message": "Authentication required", "code": 401}), 401
    if not school_id:
        return jsonify({"status": "error", "message": "school_id is required", "code": 400}), 400

    school = g.session.get(School, school_id)
    if school is None or not school.is_active:
        return jsonify({"status": "error", "message": "School not found", "code": 404}), 404

    membership = g.user.membership(school.id)
    if membership is None and not g.user.is_super_admin:
        return jsonify({"status": "error", "message": "You do not have access to this school", "code": 403}), 403

    claims = token_claims(g.user, membership, school.id)
    access, refresh = issue_tokens(g.user, claims)
    service = UserService(g.session, g.user, client_ip())
    service.audit(school.id, "switch_school", "school", school.id, school.name)
    service.commit()

    resp = jsonify({"status": "success", "message": f"Switched to {school.name}",
                    "school_id": school.id, "role": claims["role"], "access_token": access, "code": 200})
    attach_tokens(resp, access, refresh)
    return resp, 200

@app.route('/api/auth/change-password', methods=['POST'])
@jwt_required()
def change_password():
    data = request.get_json(silent=True) or {}
    if g.user is None:
        return jsonify({"status": "error", "message": "Authentication required", "code": 401}), 401
    UserService(g.session, g.user, client_ip()).change_password(
        g.user, data.get('current_password'), data.get('new_password'))
    return jsonify({"status": "success", "message": "Password updated", "code": 200}), 200


##### BLUEPRINTS #####

register_blueprints(app)


##### MAIN #####

if __name__ == '__main__':
    Base.metadata.create_all(bind=engine)
    app.run(host="0.0.0.0", port=5000, debug=True)
