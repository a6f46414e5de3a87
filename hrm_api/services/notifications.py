import logging

log = logging.getLogger(__name__)


class Notifier:
    """
    Outbound notifications (e-mail, push, ...). The default just logs; a
    deployment swaps in a real transport through ``app.extensions["notifier"]``.
    """

    def notify(self, event: str, recipient_id, payload: dict):
        log.info("notify event=%s recipient=%s keys=%s", event, recipient_id, sorted(payload or {}))


class RecordingNotifier(Notifier):
    """Keeps sent notifications in memory. Handy for tests and local runs."""

    def __init__(self):
        self.sent = []

    def notify(self, event, recipient_id, payload):
        self.sent.append((event, recipient_id, payload))


def send(notifier, event: str, recipient_id, payload: dict):
    """Fire-and-forget: a failing transport must never undo the caller's work."""
    if notifier is None or recipient_id is None:
        return
    try:
        notifier.notify(event, recipient_id, payload)
    except Exception:
        log.exception("notification %s to %s failed", event, recipient_id)
