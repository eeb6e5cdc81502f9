"""
extensions.py — Flask extension singletons.

Module-level extension objects, bound to an app later via init_app() in the
app factory, so they can be imported anywhere without circular imports:

    from backend.gatekeeper.extensions import db, oauth

Do not pass the app object to SQLAlchemy() or OAuth() at import time — that
would prevent running tests with a separate test app instance.
"""

from authlib.integrations.flask_client import OAuth
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# One Authlib client is registered per enabled provider in
# services/oauth_service.register_providers().
oauth = OAuth()
