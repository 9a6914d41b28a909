"""Airia playbook-rewrite webhook client."""
import logging
from typing import Any, Dict

import requests

from config import optional, require
from errors import UpstreamError

logger = logging.getLogger(__name__)

SERVICE = "Airia"


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> requests.Response:
    try:
        return requests.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", **headers},
            timeout=30,
        )
    except requests.RequestException as exc:
        raise UpstreamError(SERVICE, str(exc)) from exc


def submit_improvement_context(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Start a playbook rewrite cycle.

    Authenticates with `Authorization: Bearer <AIRIA_API_KEY>` first and, if
    that is rejected or the request fails in transit, retries once with
    `X-API-Key`. Without a key the webhook is called once, unauthenticated.

    Args:
        payload: {"calls_since": int, "triggered_at": ISO-8601 str}.

    Returns:
        The webhook's JSON body, or {} when it sent none.
    """
    url = require("AIRIA_WEBHOOK_URL")
    api_key = optional("AIRIA_API_KEY")

    if api_key:
        attempts = [
            {"Authorization": f"Bearer {api_key}"},
            {"X-API-Key": api_key},
        ]
    else:
        attempts = [{}]

    resp = None
    for i, headers in enumerate(attempts):
        last = i + 1 == len(attempts)
        try:
            resp = _post(url, payload, headers)
        except UpstreamError as exc:
            if last:
                raise
            logger.warning("Airia request failed (%s); retrying with X-API-Key", exc.detail)
            continue
        if resp.ok:
            break
        if not last:
            logger.warning(
                "Airia rejected bearer auth (%s); retrying with X-API-Key",
                resp.status_code,
            )

    if not resp.ok:
        logger.error("Airia webhook failed: %s %s", resp.status_code, resp.text[:500])
        raise UpstreamError(SERVICE, resp.text[:500], resp.status_code)

    try:
        return resp.json()
    except ValueError:
        return {}
