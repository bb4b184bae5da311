from __future__ import annotations

from whitenoise import WhiteNoise

from civicdesk.app_factory import create_app

# Expose a module-level WSGI application for Gunicorn
flask_app = create_app()

# Files present at boot are served by WhiteNoise; later uploads fall through to the Flask /uploads route
app = WhiteNoise(flask_app, root=flask_app.config["UPLOAD_DIR"], prefix="uploads/", max_age=3600)
