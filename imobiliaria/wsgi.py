from __future__ import annotations

from whitenoise import WhiteNoise

from .app_factory import create_app
from .images import upload_root

# Expose a module-level WSGI application for Gunicorn
app = create_app()

# Serve uploaded property photos straight from disk in production
with app.app_context():
    _uploads = upload_root()
app = WhiteNoise(app, root=_uploads, prefix="uploads/", max_age=3600)
