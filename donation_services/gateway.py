"""
donation_services.gateway -- payment gateway adapters.

Responsibility:
    Opens a checkout for a CheckoutRequest and tells the caller where to
    send the donor.  Two adapters:

    - HostedPageGateway renders an auto-submitting HTML form that posts the
      checkout fields to the gateway's hosted payment page.  No network
      call happens here.
    - ApiCheckoutGateway creates the checkout server-side with one bounded
      HTTP call and returns the checkout URL from the response.

Architecture position:
    Services -- outbound adapters.  Called by DonationPortal only after the
    donation and its checkout_ref are committed.

Failure modes:
    - GatewayUnavailableError: transport error, timeout, non-2xx response or
      a response without a checkout URL.  The donation stays pending and
      can be retried with the same reference.
"""

from __future__ import annotations

import html
from abc import ABC, abstractmethod

import httpx

from donation_kernel.domain.dtos import CheckoutRequest, CheckoutSession
from donation_kernel.exceptions import GatewayUnavailableError
from donation_kernel.logging_config import get_logger

logger = get_logger("services.gateway")

DEFAULT_HOSTED_PAGE_URL = "https://api.paychangu.com/hosted-payment-page"
DEFAULT_API_URL = "https://api.paychangu.com/payment"
DEFAULT_TIMEOUT_SECONDS = 10.0


class PaymentGateway(ABC):
    """Opens checkouts with the payment provider."""

    @abstractmethod
    def open_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        ...


class HostedPageGateway(PaymentGateway):
    """Redirect the donor with a self-submitting form."""

    def __init__(self, page_url: str = DEFAULT_HOSTED_PAGE_URL):
        self._page_url = page_url

    def open_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        inputs = "\n".join(
            f'    <input type="hidden" name="{html.escape(name)}" '
            f'value="{html.escape(value)}">'
            for name, value in request.form_fields()
        )
        document = (
            "<!DOCTYPE html>\n"
            "<html>\n"
            "<head><title>Redirecting to payment</title></head>\n"
            '<body onload="document.forms[0].submit()">\n'
            f'  <form method="POST" action="{html.escape(self._page_url)}">\n'
            f"{inputs}\n"
            '    <noscript><button type="submit">Continue to payment</button></noscript>\n'
            "  </form>\n"
            "</body>\n"
            "</html>\n"
        )
        logger.info(
            "checkout_page_rendered",
            extra={"tx_ref": request.tx_ref, "donation_id": str(request.donation_id)},
        )
        return CheckoutSession(tx_ref=request.tx_ref, document=document)


class ApiCheckoutGateway(PaymentGateway):
    """
    Create the checkout through the provider's REST API.

    The client is injectable so tests can pass one built on
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        secret_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        self._secret_key = secret_key
        self._api_url = api_url
        self._client = client or httpx.Client(timeout=timeout)

    def open_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        donation_id = str(request.donation_id)
        try:
            response = self._client.post(
                self._api_url,
                json=request.api_payload(),
                headers={
                    "Authorization": f"Bearer {self._secret_key}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "gateway_rejected_checkout",
                extra={
                    "tx_ref": request.tx_ref,
                    "status_code": exc.response.status_code,
                },
            )
            raise GatewayUnavailableError(
                donation_id, f"gateway returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "gateway_unreachable",
                extra={"tx_ref": request.tx_ref, "error": str(exc)},
            )
            raise GatewayUnavailableError(donation_id, str(exc)) from exc
        except ValueError as exc:
            raise GatewayUnavailableError(donation_id, "gateway returned invalid JSON") from exc

        checkout_url = None
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            checkout_url = body["data"].get("checkout_url")
        if not checkout_url:
            logger.warning(
                "gateway_response_incomplete",
                extra={"tx_ref": request.tx_ref},
            )
            raise GatewayUnavailableError(donation_id, "gateway response had no checkout_url")

        logger.info(
            "checkout_opened",
            extra={"tx_ref": request.tx_ref, "donation_id": donation_id},
        )
        return CheckoutSession(tx_ref=request.tx_ref, checkout_url=checkout_url)

    def close(self) -> None:
        self._client.close()
