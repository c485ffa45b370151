# alerts/testing.py

"""
In-memory notifiers for tests.

Sent notifications are kept on the class so every instance returned by
get_notifier() shares them. Call reset() in setUp.
"""

from alerts.services.notifier import Notifier


class RecordingNotifier(Notifier):
    sent = []

    @classmethod
    def reset(cls):
        cls.sent = []

    @classmethod
    def categories(cls):
        return [n["category"] for n in cls.sent]

    def notify(self, audience, title, body, *, urgency="normal", category, target_ref=None, silent=False):
        type(self).sent.append(
            {
                "audience": audience,
                "title": title,
                "body": body,
                "urgency": urgency,
                "category": category,
                "target_ref": target_ref,
                "silent": silent,
            }
        )


class FailingNotifier(Notifier):
    def notify(self, audience, title, body, **kwargs):
        raise RuntimeError("notification transport unavailable")
