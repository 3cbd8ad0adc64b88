"""Gateway handler — validate, route credentials, call upstream, translate.

Pipeline: Validate -> Credential routing -> Admission (shared key only) -> Upstream -> Translate
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from src.config.settings import Settings, get_settings
from src.logging.audit import RequestTimer, get_audit_logger
from src.providers.base import LLMProvider, UpstreamTransportError
from src.providers.registry import get_provider
from src.proxy.errors import (
    ClientInputError,
    ConfigurationError,
    RateLimitExceeded,
    TransportFailure,
    UpstreamRejected,
)
from src.proxy.prompt import SYSTEM_PROMPT
from src.security.ratelimit import AdmissionController, derive_identity, get_admission_controller


@dataclass
class GatewayResult:
    status_code: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)
    using_user_key: bool = False
    client_key: str | None = None


class GatewayHandler:
    """Orchestrates one chat request end to end."""

    def __init__(
        self,
        controller: AdmissionController,
        provider: LLMProvider,
        settings: Settings,
    ):
        self.controller = controller
        self.provider = provider
        self.settings = settings

    async def handle(self, body: object, headers: Mapping[str, str]) -> GatewayResult:
        """Process a POST body. Raises GatewayError on any failure."""
        logger = get_audit_logger()
        messages = _validate_messages(body)
        user_key = _caller_key(body)

        rate_headers: dict[str, str] = {}
        client_key = None

        if user_key:
            api_key = user_key
        else:
            if not self.settings.has_shared_key:
                logger.error("Server API key not configured")
                raise ConfigurationError("Server API key not configured")
            api_key = self.settings.anthropic_api_key

            client_key = derive_identity(headers)
            decision = self.controller.check(client_key)
            rate_headers = {
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": str(decision.remaining),
            }

            if not decision.allowed:
                reset_in = self.controller.reset_in_minutes(decision)
                logger.warning(
                    "Rate limit exceeded",
                    extra={"audit_data": {
                        "client_key": client_key,
                        "rate_limit": decision.limit,
                        "reset_in_minutes": reset_in,
                    }},
                )
                raise RateLimitExceeded(
                    f"Rate limit exceeded. Try again in {reset_in} minutes, "
                    "or use your own API key.",
                    extra={"resetIn": reset_in},
                    headers=rate_headers,
                )

        using_user_key = bool(user_key)
        payload = self.build_payload(messages)

        with RequestTimer() as timer:
            try:
                result = await self.provider.create_message(payload, api_key)
            except UpstreamTransportError as e:
                logger.error(
                    "Upstream call failed",
                    exc_info=e,
                    extra={"audit_data": {
                        "client_key": client_key,
                        "using_user_key": using_user_key,
                    }},
                )
                raise TransportFailure("Failed to process request", headers=rate_headers) from e

        upstream_error = result.body.get("error")
        if upstream_error is not None:
            message = _upstream_error_message(upstream_error)
            logger.warning(
                "Upstream rejected request",
                extra={"audit_data": {
                    "client_key": client_key,
                    "using_user_key": using_user_key,
                    "upstream_status": result.status_code,
                    "upstream_error_type": _upstream_error_type(upstream_error),
                }},
            )
            raise UpstreamRejected(message, headers=rate_headers)

        text = _extract_text(result.body)
        if text is None:
            logger.error(
                "Upstream response missing content text",
                extra={"audit_data": {
                    "client_key": client_key,
                    "using_user_key": using_user_key,
                    "upstream_status": result.status_code,
                }},
            )
            raise TransportFailure("Failed to process request", headers=rate_headers)

        logger.info(
            "Request proxied",
            extra={"audit_data": {
                "client_key": client_key,
                "using_user_key": using_user_key,
                "model": payload["model"],
                "message_count": len(messages),
                "upstream_status": result.status_code,
                "latency_ms": timer.elapsed_ms,
                "rate_limit_remaining": rate_headers.get("X-RateLimit-Remaining"),
            }},
        )

        return GatewayResult(
            status_code=200,
            body={"content": text, "usingUserKey": using_user_key},
            headers=rate_headers,
            using_user_key=using_user_key,
            client_key=client_key,
        )

    def build_payload(self, messages: list[dict]) -> dict:
        """Upstream request body. Only role and content are forwarded per message."""
        return {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {"role": m.get("role"), "content": m.get("content")}
                for m in messages
            ],
        }


def get_gateway_handler() -> GatewayHandler:
    """Build a handler wired to the process-wide controller and provider."""
    return GatewayHandler(
        controller=get_admission_controller(),
        provider=get_provider(),
        settings=get_settings(),
    )


def _validate_messages(body: object) -> list[dict]:
    if not isinstance(body, dict):
        raise ClientInputError("Messages are required")
    messages = body.get("messages")
    if not isinstance(messages, list):
        raise ClientInputError("Messages are required")
    if not all(isinstance(m, dict) for m in messages):
        raise ClientInputError("Messages are required")
    return messages


def _caller_key(body: dict) -> str | None:
    key = body.get("userApiKey")
    if isinstance(key, str) and key.strip():
        return key
    return None


def _upstream_error_message(error: object) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    elif isinstance(error, str) and error:
        return error
    return "Upstream request failed"


def _upstream_error_type(error: object) -> str | None:
    if isinstance(error, dict):
        return error.get("type")
    return None


def _extract_text(body: dict) -> str | None:
    """First content block's text, or None if the shape is wrong."""
    content = body.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    return text if isinstance(text, str) else None
