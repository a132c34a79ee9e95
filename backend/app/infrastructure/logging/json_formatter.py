import json
import logging
from datetime import UTC, datetime

from app.infrastructure.logging.context import get_job_key, get_request_id, get_tenant_id


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Only attach correlation fields that are bound for the current request or job.
        for field, value in (
            ("request_id", get_request_id()),
            ("tenant_id", get_tenant_id()),
            ("job_key", get_job_key()),
        ):
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)
