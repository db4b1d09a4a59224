"""WSGI entry point for production deployment (HTTP handlers plus Socket.IO long-polling)."""
from apps.web.main import create_app

app = create_app()

if __name__ == "__main__":
    app.config['socketio'].run(app, allow_unsafe_werkzeug=True)
