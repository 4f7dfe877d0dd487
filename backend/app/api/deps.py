from fastapi import Request

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.notifications import Notifier, build_notifier


def get_notifier(request: Request) -> Notifier:
    """The notifier built at startup; built on first use when the lifespan did not run."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = build_notifier(settings, session_factory=SessionLocal)
        request.app.state.notifier = notifier
    return notifier
