from app import app, engine
from Models import Base

if __name__ == '__main__':
    Base.metadata.create_all(bind=engine)
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
