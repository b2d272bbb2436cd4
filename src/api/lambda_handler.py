# src/api/lambda_handler.py
"""
AWS Lambda handler.

Two kinds of events reach this function:
- API Gateway requests: Mangum translates them into ASGI requests for the
  FastAPI app (/health, /quote, /renewals, /renewals/process)
- EventBridge schedule events (source "aws.events"): run one renewal pass
  directly, no HTTP involved. The event "detail" may carry "now" (ISO date
  or datetime, e.g. the event's own "time") and "grace_days".

Set S3_BUCKET so the ledger file survives between invocations.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from mangum import Mangum

from src.api.app import app
from src.services.renewal_service import run_scheduled_renewals
from src.utils.config import get_log_level

logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

_asgi_handler = Mangum(app)


def _is_scheduled_event(event: Dict[str, Any]) -> bool:
    return event.get("source") == "aws.events" or event.get("detail-type") == "Scheduled Event"


def _parse_now(value: Any) -> Optional[Union[date, datetime]]:
    if not value:
        return None
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    # fromisoformat rejects a trailing "Z" before 3.11
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if _is_scheduled_event(event):
        detail = event.get("detail") or {}
        now = _parse_now(detail.get("now"))
        grace_days = int(detail["grace_days"]) if detail.get("grace_days") is not None else None

        summary = run_scheduled_renewals(now=now, grace_days=grace_days)
        logger.info("Scheduled renewal pass finished: %s", summary.to_dict())
        return summary.to_dict()

    return _asgi_handler(event, context)
