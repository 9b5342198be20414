"""Remote chat completion client."""

import time

import httpx
import structlog
from opentelemetry import trace
from pydantic import BaseModel, Field, ValidationError

from .config import CompletionSettings
from .metrics import COMPLETION_DURATION, COMPLETION_REQUESTS
from .prompts import PromptProvenance, load_prompt_template, prompt_provenance
from .types import CompletionRequestPayload

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

INVALID_ENDPOINT_MESSAGE = "Invalid completion endpoint URL."
NO_DATA_MESSAGE = "No data returned from the completion endpoint."
NO_USABLE_RESPONSE_MESSAGE = "The assistant returned no usable response."

# Raw payload excerpt kept in logs for diagnosis
_RAW_LOG_LIMIT = 2000


class CompletionMessage(BaseModel):
    """Message of a completion choice."""

    content: str


class CompletionChoice(BaseModel):
    """Single completion choice."""

    message: CompletionMessage


class CompletionEnvelope(BaseModel):
    """Response envelope; only the fields actually consumed are modeled."""

    choices: list[CompletionChoice] = Field(min_length=1)


class CompletionClient:
    """Sends one system + user exchange to a chat completion endpoint.

    Every outcome is returned as text: failures become human-readable
    fallback strings instead of exceptions. There are no retries.
    """

    def __init__(self, settings: CompletionSettings, system_prompt: str | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Endpoint, credentials and sampling settings.
            system_prompt: Persona text; defaults to the configured override
                or the bundled persona template.
        """
        self._settings = settings
        self._system_prompt = (
            system_prompt
            or settings.system_prompt
            or load_prompt_template("system_persona").text
        )
        self._provenance = prompt_provenance(self._system_prompt)

    @property
    def provenance(self) -> PromptProvenance:
        """Prompt versions and digests logged with each answered request."""
        return self._provenance

    def build_request(self, prompt: str) -> CompletionRequestPayload:
        """Build the request envelope for a combined prompt."""
        return {
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._settings.temperature,
        }

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers[self._settings.api_key_header] = self._settings.api_key
        return headers

    async def complete(self, prompt: str) -> str:
        """Send a prompt and return the answer text or a fallback message."""
        if not self._settings.endpoint_url:
            logger.error("completion_endpoint_missing")
            COMPLETION_REQUESTS.labels(outcome="invalid_endpoint").inc()
            return INVALID_ENDPOINT_MESSAGE

        payload = self.build_request(prompt)
        started = time.monotonic()

        with tracer.start_as_current_span("completion.request") as span:
            span.set_attribute("prompt.length", len(prompt))
            span.set_attribute("prompt.hash", self._provenance.prompt_hash)
            try:
                async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
                    response = await client.post(
                        self._settings.endpoint_url,
                        json=payload,
                        headers=self._headers(),
                    )
            except httpx.InvalidURL as e:
                logger.error("completion_endpoint_invalid", error=str(e))
                COMPLETION_REQUESTS.labels(outcome="invalid_endpoint").inc()
                return INVALID_ENDPOINT_MESSAGE
            except httpx.RequestError as e:
                description = str(e) or type(e).__name__
                logger.warning(
                    "completion_network_error",
                    error=description,
                    error_type=type(e).__name__,
                )
                COMPLETION_REQUESTS.labels(outcome="network_error").inc()
                return f"Network error: {description}"
            finally:
                COMPLETION_DURATION.observe(time.monotonic() - started)

            span.set_attribute("http.status_code", response.status_code)

        if not response.content:
            logger.warning("completion_empty_body", status=response.status_code)
            COMPLETION_REQUESTS.labels(outcome="no_data").inc()
            return NO_DATA_MESSAGE

        try:
            envelope = CompletionEnvelope.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning(
                "completion_unusable_response",
                status=response.status_code,
                error_count=e.error_count(),
                raw=response.text[:_RAW_LOG_LIMIT],
                **self._provenance.to_log_context(),
            )
            COMPLETION_REQUESTS.labels(outcome="unusable").inc()
            return NO_USABLE_RESPONSE_MESSAGE

        answer = envelope.choices[0].message.content
        logger.info(
            "completion_received",
            status=response.status_code,
            answer_length=len(answer),
            **self._provenance.to_log_context(),
        )
        COMPLETION_REQUESTS.labels(outcome="success").inc()
        return answer
