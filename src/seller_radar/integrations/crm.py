"""
CRM Webhook Client

Forwards scored seller leads to the configured CRM webhook. Delivery is
retried on transient failures (5xx, 429, network errors).
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config.settings import settings
from src.seller_radar.pipeline.errors import APIFetchError
from src.seller_radar.pipeline.retry import retry_with_backoff
from src.seller_radar.scoring.models import SellerPropensityScore
from src.seller_radar.utils.dates import isoformat_utc, utc_now
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CrmDeliveryResult:
    delivered: bool
    status_code: Optional[int] = None
    attempts: int = 1


def build_crm_payload(
    scores: List[SellerPropensityScore],
    campaign: Optional[str] = None,
) -> Dict[str, Any]:
    """Webhook body: one lead per score, camelCase keys."""
    return {
        "source": "seller-radar",
        "campaign": campaign,
        "sentAt": isoformat_utc(utc_now()),
        "leads": [
            {
                "propertyId": score.property_id,
                "address": score.property_details.address,
                "owner": score.property_details.owner,
                "priority": score.property_details.priority,
                "city": score.geography.city,
                "state": score.geography.state,
                "zip": score.geography.zip,
                "overallScore": score.overall_score,
                "confidence": score.confidence,
                "drivers": score.drivers,
                "riskFlags": score.risk_flags,
            }
            for score in scores
        ],
    }


class CrmWebhookClient:
    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url if url is not None else settings.crm_seller_webhook_url
        self.token = token if token is not None else settings.crm_seller_webhook_token
        self.timeout = timeout or settings.crm_timeout_seconds
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _post(self, payload: Dict[str, Any]) -> int:
        try:
            response = self.session.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise APIFetchError(f"CRM webhook request failed: {e}", url=self.url) from e

        if response.status_code >= 400:
            raise APIFetchError(
                f"CRM webhook returned {response.status_code}",
                url=self.url,
                status_code=response.status_code,
            )
        return response.status_code

    async def send_to_crm(self, payload: Dict[str, Any]) -> CrmDeliveryResult:
        """
        POST the payload to the webhook.

        Raises:
            APIFetchError: Delivery failed after retries, or the webhook
                rejected the payload.
        """
        if not self.is_configured:
            logger.info("crm_webhook_skipped", reason="not_configured")
            return CrmDeliveryResult(delivered=False)

        attempts = 0

        async def attempt() -> int:
            nonlocal attempts
            attempts += 1
            return await asyncio.to_thread(self._post, payload)

        status_code = await retry_with_backoff(attempt)
        logger.info(
            "crm_webhook_delivered",
            status_code=status_code,
            attempts=attempts,
            leads=len(payload.get("leads", [])),
        )
        return CrmDeliveryResult(delivered=True, status_code=status_code, attempts=attempts)
