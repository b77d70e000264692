"""
Chat-completion client for OpenRouter.

Sends a list of chat messages to a model and returns the raw completion
text together with the provider response and token usage. The client does
not retry; transport and provider failures surface as CompletionError.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from forecastbot.config import Config
from forecastbot.errors import CompletionError

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class CompletionResponse:
    """
    Text and metadata of one completion.

    Attributes:
        text: Assistant message content
        raw: Full provider response body
        prompt_tokens: Prompt token count, if reported
        completion_tokens: Completion token count, if reported
    """
    text: str
    raw: dict
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


def extract_message_content(data: dict) -> Optional[str]:
    """
    Pull the first choice's message content out of a chat-completion body.

    Content arrays (list of {"type": "text", "text": ...} parts) are joined.

    Returns:
        Content string, or None if the body has no usable content
    """
    choices = data.get("choices") or []
    if not choices:
        return None

    message = choices[0].get("message") or {}
    content = message.get("content")

    if isinstance(content, list):
        parts = [
            part.get("text", "") for part in content
            if isinstance(part, dict) and part.get("text")
        ]
        content = "".join(parts)

    if not isinstance(content, str) or not content.strip():
        return None
    return content


class CompletionClient:
    """
    OpenRouter chat-completion client.

    Example:
        client = CompletionClient()
        response = client.complete(messages, "openai/gpt-5", 0.7)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            api_key: OpenRouter API key (default: Config.OPENROUTER_API_KEY)
            api_url: Chat-completions endpoint (default: Config.OPENROUTER_API_URL)
            timeout: Request timeout in seconds (default: Config.API_TIMEOUT)
            session: Optional requests session to reuse connections
        """
        self.api_key = api_key or Config.OPENROUTER_API_KEY
        self.api_url = api_url or Config.OPENROUTER_API_URL
        self.timeout = timeout or Config.API_TIMEOUT
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": Config.SITE_NAME,
        }
        if Config.SITE_URL:
            headers["HTTP-Referer"] = Config.SITE_URL
        return headers

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float,
    ) -> CompletionResponse:
        """
        Request a single completion.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            model: OpenRouter model identifier
            temperature: Sampling temperature

        Returns:
            CompletionResponse with the assistant text

        Raises:
            CompletionError: On missing key, transport failure, HTTP error or empty content
        """
        if not self.api_key:
            raise CompletionError("OPENROUTER_API_KEY not configured")

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }

        try:
            logger.debug(f"Calling OpenRouter with model {model}")

            response = self.session.post(
                self.api_url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )

            response.raise_for_status()

            data = response.json()

        except Timeout as e:
            logger.error(f"OpenRouter request timed out after {self.timeout}s")
            raise CompletionError(f"Completion request timed out after {self.timeout}s") from e

        except ConnectionError as e:
            logger.error(f"Connection error calling OpenRouter: {e}")
            raise CompletionError(f"Connection error: {e}") from e

        except RequestException as e:
            status_code = None
            if e.response is not None:
                status_code = e.response.status_code
                logger.error(f"OpenRouter request failed with status {status_code}")
                logger.debug(f"Response text: {e.response.text[:500]}")
            else:
                logger.error(f"OpenRouter request failed: {e}")
            raise CompletionError(f"Completion request failed: {e}", status_code=status_code) from e

        except ValueError as e:
            logger.error(f"OpenRouter returned a non-JSON body: {e}")
            raise CompletionError("Completion response was not valid JSON") from e

        text = extract_message_content(data)
        if text is None:
            logger.warning("Unexpected OpenRouter response structure")
            logger.debug(f"Response data: {json.dumps(data, indent=2)[:500]}")
            raise CompletionError("Completion response contained no message content")

        usage = data.get("usage") or {}
        logger.debug(f"Received completion of length {len(text)}")

        return CompletionResponse(
            text=text,
            raw=data,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
