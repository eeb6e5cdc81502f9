"""
http_session.py — Server-side HTTP sessions stored in the http_sessions table.

Replaces Flask's signed-cookie session so that logout really destroys the
session: the cookie carries only a random session id, the payload lives in
the database and is deleted on logout.

Payload contract: after login the session holds only `user_id`. The user
record is rehydrated on every request through auth_service.get_user_by_id(),
never cached in the session. Authlib also keeps its short-lived OAuth `state`
entries here during a provider redirect round trip.

Expiry is checked lazily when a session is opened; there is no sweeper.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from flask import session as flask_session
from flask.json.tag import TaggedJSONSerializer
from flask.sessions import SessionInterface, SessionMixin
from werkzeug.datastructures import CallbackDict

from backend.gatekeeper.extensions import db
from backend.gatekeeper.models.http_session import HttpSession

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"

_serializer = TaggedJSONSerializer()


def _new_sid() -> str:
    return secrets.token_urlsafe(32)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ServerSideSession(CallbackDict, SessionMixin):

    def __init__(self, initial=None, sid: str | None = None, new: bool = False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid or _new_sid()
        self.new = new
        self.modified = False
        self.previous_sid: str | None = None

    def regenerate(self) -> None:
        """Moves the data to a fresh id; the old row is deleted on save."""
        if not self.new and self.previous_sid is None:
            self.previous_sid = self.sid
        self.sid = _new_sid()
        self.modified = True


class SqlSessionInterface(SessionInterface):

    session_class = ServerSideSession

    def open_session(self, app, request) -> ServerSideSession:
        sid = request.cookies.get(self.get_cookie_name(app))
        if not sid:
            return self.session_class(new=True)

        record = db.session.get(HttpSession, sid)
        if record is None:
            return self.session_class(new=True)

        if _as_utc(record.expires_at) <= datetime.now(timezone.utc):
            db.session.delete(record)
            db.session.commit()
            return self.session_class(new=True)

        try:
            data = _serializer.loads(record.data)
        except ValueError:
            logger.warning("Discarding unreadable HTTP session payload")
            data = {}
        return self.session_class(data, sid=sid)

    def save_session(self, app, session: ServerSideSession, response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = self.get_cookie_secure(app)
        samesite = self.get_cookie_samesite(app)
        httponly = self.get_cookie_httponly(app)

        if session.previous_sid:
            self._delete(session.previous_sid)

        if not session:
            if session.modified:
                self._delete(session.sid)
                db.session.commit()
                response.delete_cookie(
                    name,
                    domain=domain,
                    path=path,
                    secure=secure,
                    samesite=samesite,
                    httponly=httponly,
                )
            elif session.previous_sid:
                db.session.commit()
            return

        if not self.should_set_cookie(app, session):
            return

        expires = self.get_expiration_time(app, session)
        stored_until = expires or (
            datetime.now(timezone.utc) + app.permanent_session_lifetime
        )
        payload = _serializer.dumps(dict(session))

        record = db.session.get(HttpSession, session.sid)
        if record is None:
            db.session.add(HttpSession(sid=session.sid, data=payload, expires_at=stored_until))
        else:
            record.data = payload
            record.expires_at = stored_until
        db.session.commit()

        response.set_cookie(
            name,
            session.sid,
            expires=expires,
            httponly=httponly,
            domain=domain,
            path=path,
            secure=secure,
            samesite=samesite,
        )

    @staticmethod
    def _delete(sid: str) -> None:
        record = db.session.get(HttpSession, sid)
        if record is not None:
            db.session.delete(record)


# ── Helpers used by routes and the authentication gate ─────────────────────

def login_session(user_id: int) -> None:
    """Binds the current HTTP session to `user_id` under a fresh session id."""
    flask_session.clear()
    flask_session.regenerate()
    flask_session[SESSION_USER_KEY] = user_id
    flask_session.permanent = True


def session_user_id() -> int | None:
    return flask_session.get(SESSION_USER_KEY)


def destroy_session() -> None:
    """Empties the session; save_session then deletes the row and the cookie."""
    flask_session.clear()
