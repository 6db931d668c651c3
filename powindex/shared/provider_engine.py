# powindex/shared/provider_engine.py
"""
Text-completion providers for the skill/impact classifier.

Each provider variant owns its request payload, auth headers and response
text extraction. The retry loop, rate limiting and error mapping are shared.
A single provider is selected once, from a fixed priority order, based on
which credentials are present.
"""

import os
import time
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import requests

from powindex.core.errors import ClassifierTransportError

logger = logging.getLogger(__name__)


class ClassifierProvider(ABC):
    """
    Base provider: one remote model behind one HTTP endpoint.
    """

    name = "base"

    def __init__(self, api_key: str, provider_config, rate_limiting=None,
                 session: Optional[requests.Session] = None):
        """
        Args:
            api_key: Credential for this provider
            provider_config: ``classifier.providers.<name>`` configuration section
            rate_limiting: ``classifier.rate_limiting`` configuration section
            session: Optional HTTP session (tests inject one)
        """
        self.api_key = api_key
        self.config = provider_config
        self.base_url = provider_config.get('base_url')
        self.model = provider_config.get('model')
        self.max_tokens = int(provider_config.get('max_tokens', 4096))
        self.supports_batch = bool(provider_config.get('supports_batch', False))

        rate_limiting = rate_limiting or {}
        self.min_interval = 60.0 / float(rate_limiting.get('requests_per_minute', 60))
        self.max_retries = int(rate_limiting.get('max_retries', 3))
        self.backoff_factor = float(rate_limiting.get('backoff_factor', 2.0))
        self.timeout = rate_limiting.get('timeout_seconds', 120)

        self.session = session or requests.Session()
        self.last_request_time = 0.0
        self._rate_lock = threading.Lock()

    @abstractmethod
    def build_request(self, system_prompt: str, user_prompt: str,
                      temperature: float) -> Dict[str, Any]:
        """Return ``{'url', 'headers', 'json'}`` for one completion request."""

    @abstractmethod
    def extract_text(self, response_json: Dict[str, Any]) -> str:
        """Pull the completion text out of a successful response body."""

    def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.3) -> str:
        """
        Send one completion request with retries.

        Returns:
            Raw completion text

        Raises:
            ClassifierTransportError: when every attempt fails
        """
        request = self.build_request(system_prompt, user_prompt, temperature)
        last_error = "no attempt made"

        for attempt in range(self.max_retries + 1):
            self._wait_if_needed()
            try:
                response = self.session.post(
                    request['url'],
                    headers=request['headers'],
                    json=request['json'],
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                last_error = f"Request exception: {e}"
            else:
                if response.status_code == 200:
                    try:
                        return self.extract_text(response.json())
                    except (KeyError, IndexError, TypeError, ValueError) as e:
                        raise ClassifierTransportError(
                            f"{self.name} returned an unexpected response body: {e}"
                        )
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code < 500 and response.status_code != 429:
                    # client errors will not improve on retry
                    break

            if attempt < self.max_retries:
                wait_time = self.backoff_factor ** attempt
                logger.warning(f"{self.name} request failed ({last_error}), retrying in {wait_time:.1f}s")
                time.sleep(wait_time)

        raise ClassifierTransportError(f"{self.name} request failed: {last_error}")

    def _wait_if_needed(self):
        """Wait if necessary to respect rate limits."""
        with self._rate_lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_interval:
                time.sleep(self.min_interval - time_since_last)
            self.last_request_time = time.time()


class OpenAIProvider(ClassifierProvider):
    name = "openai"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_request(self, system_prompt, user_prompt, temperature):
        return {
            'url': self.base_url,
            'headers': self._headers(),
            'json': {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": temperature,
                "max_tokens": self.max_tokens,
            },
        }

    def extract_text(self, response_json):
        return response_json['choices'][0]['message']['content']


class OpenRouterProvider(OpenAIProvider):
    """OpenAI-compatible endpoint with OpenRouter's optional attribution headers."""

    name = "openrouter"

    def _headers(self):
        headers = super()._headers()
        extra = self.config.get('headers') or {}
        if extra.get('http_referer'):
            headers["HTTP-Referer"] = extra.get('http_referer')
        if extra.get('x_title'):
            headers["X-Title"] = extra.get('x_title')
        return headers


class AnthropicProvider(ClassifierProvider):
    name = "anthropic"

    def build_request(self, system_prompt, user_prompt, temperature):
        return {
            'url': self.base_url,
            'headers': {
                "x-api-key": self.api_key,
                "anthropic-version": self.config.get('api_version', "2023-06-01"),
                "Content-Type": "application/json",
            },
            'json': {
                "model": self.model,
                "max_tokens": self.max_tokens,
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_prompt}],
                "temperature": temperature,
            },
        }

    def extract_text(self, response_json):
        return "".join(
            block.get('text', '') for block in response_json['content']
            if block.get('type', 'text') == 'text'
        )


class GeminiProvider(ClassifierProvider):
    name = "gemini"

    def build_request(self, system_prompt, user_prompt, temperature):
        return {
            'url': f"{str(self.base_url).rstrip('/')}/{self.model}:generateContent",
            'headers': {
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            'json': {
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "maxOutputTokens": self.max_tokens,
                },
            },
        }

    def extract_text(self, response_json):
        parts = response_json['candidates'][0]['content']['parts']
        return "".join(part.get('text', '') for part in parts)


PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "openrouter": OpenRouterProvider,
}


def select_provider(classifier_config, environ: Optional[Mapping[str, str]] = None,
                    session: Optional[requests.Session] = None) -> Optional[ClassifierProvider]:
    """
    Pick the first provider in priority order whose credential is present.

    Args:
        classifier_config: ``classifier`` configuration section
        environ: Environment mapping (defaults to ``os.environ``)
        session: Optional HTTP session handed to the provider

    Returns:
        A provider instance, or None when no credentials are configured
    """
    environ = os.environ if environ is None else environ
    providers = classifier_config.get('providers') or {}

    for name in classifier_config.get('provider_priority') or []:
        provider_config = providers.get(name)
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_config is None or provider_class is None:
            logger.debug(f"Skipping unknown provider in priority list: {name}")
            continue

        api_key = environ.get(provider_config.get('api_key_env', ''))
        if api_key:
            logger.info(f"Classifier provider selected: {name} ({provider_config.get('model')})")
            return provider_class(
                api_key,
                provider_config,
                classifier_config.get('rate_limiting'),
                session=session
            )

    logger.warning("No classifier provider credentials found")
    return None
