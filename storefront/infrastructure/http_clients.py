import httpx
import logging
from typing import Dict, List, Optional

from storefront.application.interfaces import EmailSender, MailingListService, PaymentGateway
from storefront.domain.exceptions import (
    EmailServiceError, IntegrationNotConfiguredError, MailingListServiceError, PaymentServiceError
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return (data.get("message") if isinstance(data, dict) else None) or str(error or data)


class StripePaymentsClient(PaymentGateway):
    """Payment intents over the processor's form-encoded REST API"""

    def __init__(self, base_url: str, secret_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._transport = transport

    def _headers(self) -> dict:
        if not self._secret_key:
            raise IntegrationNotConfiguredError("Stripe secret key not configured")
        return {"Authorization": f"Bearer {self._secret_key}"}

    async def create_payment_intent(self, amount: int, currency: str, metadata: Dict[str, str], receipt_email: str) -> dict:
        form = {
            "amount": str(amount),
            "currency": currency.lower(),
            "receipt_email": receipt_email,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = "" if value is None else str(value)

        headers = self._headers()
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/v1/payment_intents",
                    data=form,
                    headers=headers,
                    timeout=30.0
                )

                if response.status_code == 200:
                    return response.json()
                else:
                    message = _error_message(response)
                    logger.error(f"Payment intent creation failed ({response.status_code}): {message}")
                    raise PaymentServiceError(f"Payment service error: {message}")

        except httpx.RequestError as e:
            logger.error(f"Payment service connection error: {e}")
            raise PaymentServiceError(f"Payment service unavailable: {str(e)}")

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    f"{self._base_url}/v1/payment_intents/{payment_intent_id}",
                    headers=headers,
                    timeout=10.0
                )

                if response.status_code == 200:
                    return response.json()
                else:
                    message = _error_message(response)
                    logger.error(f"Payment intent {payment_intent_id} lookup failed ({response.status_code}): {message}")
                    raise PaymentServiceError(f"Payment service error: {message}")

        except httpx.RequestError as e:
            logger.error(f"Payment service connection error: {e}")
            raise PaymentServiceError(f"Payment service unavailable: {str(e)}")


class ResendEmailClient(EmailSender):
    def __init__(self, base_url: str, api_key: str, sender: str,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._sender = sender
        self._transport = transport

    def _headers(self, api_key: Optional[str]) -> dict:
        key = api_key or self._api_key
        if not key:
            raise IntegrationNotConfiguredError("Resend API key not configured")
        return {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}

    async def send_email(self, to: str, subject: str, html: str, api_key: Optional[str] = None) -> str:
        headers = self._headers(api_key)
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/emails",
                    json={"from": self._sender, "to": [to], "subject": subject, "html": html},
                    headers=headers,
                    timeout=10.0
                )

                if response.status_code in (200, 201):
                    return response.json().get("id", "")
                else:
                    message = _error_message(response)
                    logger.error(f"Email to {to} rejected ({response.status_code}): {message}")
                    raise EmailServiceError(f"Email service error: {message}")

        except httpx.RequestError as e:
            logger.error(f"Email service connection error: {e}")
            raise EmailServiceError(f"Email service unavailable: {str(e)}")

    async def test_connection(self, api_key: Optional[str] = None) -> dict:
        headers = self._headers(api_key)
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(f"{self._base_url}/domains", headers=headers, timeout=10.0)

                if response.status_code == 200:
                    domains = response.json().get("data") or []
                    return {"connected": True, "domains": [d.get("name") for d in domains]}
                else:
                    message = _error_message(response)
                    logger.error(f"Email service connection test failed ({response.status_code}): {message}")
                    raise EmailServiceError("Invalid API key or connection failed")

        except httpx.RequestError as e:
            logger.error(f"Email service connection error: {e}")
            raise EmailServiceError(f"Email service unavailable: {str(e)}")


class MailerLiteClient(MailingListService):
    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    @staticmethod
    def _headers(api_key: str) -> dict:
        return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    async def list_groups(self, api_key: str) -> List[dict]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(f"{self._base_url}/groups", headers=self._headers(api_key), timeout=10.0)

                if response.status_code == 200:
                    return response.json().get("data") or []
                else:
                    logger.error(f"Mailing list API error ({response.status_code}): {_error_message(response)}")
                    raise MailingListServiceError("Invalid API key or connection failed")

        except httpx.RequestError as e:
            logger.error(f"Mailing list connection error: {e}")
            raise MailingListServiceError(f"Mailing list service unavailable: {str(e)}")

    async def create_group(self, api_key: str, name: str) -> Optional[dict]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/groups",
                    json={"name": name},
                    headers=self._headers(api_key),
                    timeout=10.0
                )

                if response.status_code in (200, 201):
                    return response.json().get("data")
                logger.warning(f"Group {name!r} not created ({response.status_code}): {_error_message(response)}")
                return None

        except httpx.RequestError as e:
            logger.error(f"Mailing list connection error: {e}")
            raise MailingListServiceError(f"Mailing list service unavailable: {str(e)}")

    async def upsert_subscriber(self, api_key: str, email: str, name: Optional[str], group_id: Optional[str]) -> bool:
        payload = {"email": email}
        if group_id:
            payload["groups"] = [group_id]
        if name:
            payload["fields"] = {"name": name}

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/subscribers",
                    json=payload,
                    headers=self._headers(api_key),
                    timeout=10.0
                )

                if response.status_code in (200, 201):
                    return True
                logger.error(f"Failed to sync {email} ({response.status_code}): {_error_message(response)}")
                return False

        except httpx.RequestError as e:
            logger.error(f"Error syncing {email}: {e}")
            raise MailingListServiceError(f"Mailing list service unavailable: {str(e)}")
