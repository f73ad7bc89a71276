"""
Domain events for live UI updates.

Signals are sent after the transition's commit. Receivers run inline, so a
failing receiver is logged and skipped; it never touches the write path.

    from lablink.services.events import borrow_transitioned

    @borrow_transitioned.connect
    def push_to_ui(sender, borrow_id, old_status, new_status, **extra):
        ...
"""
from blinker import Namespace
from flask import current_app

_signals = Namespace()

borrow_transitioned = _signals.signal("borrow-transitioned")
return_transitioned = _signals.signal("return-transitioned")
damage_reported = _signals.signal("damage-reported")


def publish(signal, **payload):
    sender = current_app._get_current_object()
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, **payload)
        except Exception as e:
            current_app.logger.warning(f"[events] {signal.name} receiver failed: {e}")
