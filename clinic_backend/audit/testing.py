# audit/testing.py

"""
In-memory audit sink for tests.

Records are kept on the class so that every instance created by
get_audit_sink() writes to the same list. Call reset() in setUp.
"""

from audit.sink import AuditSink


class RecordingAuditSink(AuditSink):
    records = []

    @classmethod
    def reset(cls):
        cls.records = []

    @classmethod
    def actions(cls):
        return [r["action"] for r in cls.records]

    def record(self, actor_id, action, entity_id, details=None) -> None:
        type(self).records.append(
            {
                "actor_id": actor_id,
                "action": action,
                "entity_id": entity_id,
                "details": dict(details or {}),
            }
        )
