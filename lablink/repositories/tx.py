from contextlib import contextmanager

from lablink.extensions import db


@contextmanager
def atomic():
    """Tek commit noktası: blok başarılıysa commit, değilse rollback."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
