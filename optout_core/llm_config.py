#!/usr/bin/env python3
"""
LLMConfig - LLM provider configuration for the page oracle and the analyzer

Supported providers (all must be vision-capable for screenshot analysis):
- openai/gpt-4o-mini, openai/gpt-4o
- groq/llama-3.2-90b-vision-preview
- deepseek/deepseek-chat (text only)
- ollama/llava, ollama/qwen2.5vl (local)

Usage:
    llm_config = LLMConfig(provider="openai/gpt-4o-mini", api_token="sk-...")
    llm_config = LLMConfig(provider="openai/gpt-4o")  # Uses OPENAI_API_KEY
    llm_config = LLMConfig(provider="groq/llama-3.2-90b-vision-preview", api_token="env:MY_GROQ_KEY")
"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any


# Provider to environment variable mapping
PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "ollama": None,  # Ollama doesn't need API key
}

# Provider to base URL mapping
PROVIDER_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "groq": "https://api.groq.com/openai/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "ollama": "http://localhost:11434",
}

# Default models per provider
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "groq": "llama-3.2-90b-vision-preview",
    "deepseek": "deepseek-chat",
    "ollama": "llava",
}


@dataclass
class LLMConfig:
    """
    LLM provider configuration.

    Parameters:
        provider: Format "provider/model" e.g. "openai/gpt-4o-mini", "ollama/llava"
        api_token: Optional. If not provided, reads from environment variable based on provider.
                   Can also use "env:VAR_NAME" format to specify custom env var.
        base_url: Optional. Custom API endpoint for the provider.
        temperature: LLM temperature (0.0-1.0)
        max_tokens: Maximum tokens to generate
        timeout: Request timeout in seconds
    """
    provider: str = "openai/gpt-4o-mini"
    api_token: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 1000
    timeout: int = 120

    def __post_init__(self):
        parts = self.provider.split("/", 1)
        self._provider_name = parts[0].lower()
        self._model_name = parts[1] if len(parts) > 1 else DEFAULT_MODELS.get(self._provider_name, "")

        self._resolved_token = self._resolve_api_token()

        if self.base_url is None:
            self.base_url = PROVIDER_BASE_URLS.get(self._provider_name, PROVIDER_BASE_URLS["openai"])

    def _resolve_api_token(self) -> Optional[str]:
        """Resolve API token from various sources."""
        if self.api_token is None:
            env_var = PROVIDER_ENV_VARS.get(self._provider_name)
            if env_var:
                return os.getenv(env_var)
            return None

        if self.api_token.startswith("env:"):
            env_var = self.api_token[4:].strip()
            return os.getenv(env_var)

        return self.api_token

    @property
    def provider_name(self) -> str:
        """Get provider name (openai, ollama, etc.)"""
        return self._provider_name

    @property
    def model_name(self) -> str:
        """Get model name"""
        return self._model_name

    @property
    def resolved_api_token(self) -> Optional[str]:
        """Get resolved API token"""
        return self._resolved_token

    @property
    def is_local(self) -> bool:
        return self._provider_name == "ollama"

    @property
    def requires_api_key(self) -> bool:
        return self._provider_name != "ollama"

    def validate(self) -> bool:
        """Validate configuration"""
        if self._provider_name not in PROVIDER_BASE_URLS:
            raise ValueError(
                f"Unknown provider: {self._provider_name}. "
                f"Supported: {', '.join(sorted(PROVIDER_BASE_URLS))}"
            )
        if self.requires_api_key and not self._resolved_token:
            env_var = PROVIDER_ENV_VARS.get(self._provider_name, "unknown")
            raise ValueError(
                f"API token required for {self._provider_name}. "
                f"Set api_token or {env_var} environment variable."
            )
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for run logs (never includes the token)"""
        return {
            "provider": self.provider,
            "provider_name": self._provider_name,
            "model_name": self._model_name,
            "base_url": self.base_url,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "has_api_token": self._resolved_token is not None,
            "is_local": self.is_local,
        }

    @classmethod
    def from_env(cls, prefix: str = "OPTOUT_LLM", default_provider: str = "openai/gpt-4o-mini",
                 default_max_tokens: int = 1000) -> "LLMConfig":
        """
        Create LLMConfig from environment variables.

        Reads:
            {prefix}_PROVIDER (falls back to default_provider)
            {prefix}_API_TOKEN
            {prefix}_BASE_URL
            {prefix}_TEMPERATURE
            {prefix}_MAX_TOKENS
            {prefix}_TIMEOUT
        """
        return cls(
            provider=os.getenv(f"{prefix}_PROVIDER", default_provider),
            api_token=os.getenv(f"{prefix}_API_TOKEN"),
            base_url=os.getenv(f"{prefix}_BASE_URL"),
            temperature=float(os.getenv(f"{prefix}_TEMPERATURE", "0.3")),
            max_tokens=int(os.getenv(f"{prefix}_MAX_TOKENS", str(default_max_tokens))),
            timeout=int(os.getenv(f"{prefix}_TIMEOUT", "120")),
        )


class LLMPresets:
    """Predefined LLM configurations"""

    @staticmethod
    def oracle() -> LLMConfig:
        """Model that reads pages and plans actions"""
        return LLMConfig.from_env("OPTOUT_LLM", "openai/gpt-4o-mini", 1000)

    @staticmethod
    def analysis() -> LLMConfig:
        """Stronger model for post-failure screenshot analysis"""
        return LLMConfig.from_env("OPTOUT_ANALYSIS", "openai/gpt-4o", 1500)

    @staticmethod
    def local() -> LLMConfig:
        """Local vision model through Ollama"""
        return LLMConfig(provider="ollama/llava", temperature=0.2, max_tokens=1024)
