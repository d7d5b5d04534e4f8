from routes.schools import schools_bp
from routes.users import users_bp
from routes.admin import admin_bp
from routes.students import students_bp
from routes.guardians import guardians_bp
from routes.teachers import teachers_bp
from routes.classes import classes_bp
from routes.marks import marks_bp
from routes.attendance import attendance_bp
from routes.teacher_attendance import teacher_attendance_bp
from routes.fees import fees_bp
from routes.expenses import expenses_bp
from routes.messaging import messaging_bp

def register_blueprints(app):
    app.register_blueprint(schools_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(guardians_bp)
    app.register_blueprint(teachers_bp)
    app.register_blueprint(classes_bp)
    app.register_blueprint(marks_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(teacher_attendance_bp)
    app.register_blueprint(fees_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(messaging_bp)
