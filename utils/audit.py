import json
import logging

from flask import request, has_request_context

from security.pipeline import client_ip

audit_logger = logging.getLogger("audit")


def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    ip = user_agent = None
    if has_request_context():
        ip = client_ip()
        user_agent = request.headers.get("User-Agent", "")

    audit_logger.info(json.dumps({
        "action": action,
        "user_id": user_id,
        "entity": entity,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "ip": ip,
        "metadata": metadata,
    }, default=str))

    from storage import get_storage
    if not has_request_context() or get_storage().backend != "sql":
        return

    from models import db
    from models.audit_log import AuditLog

    row = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
