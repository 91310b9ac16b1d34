"""LLM 初始化。"""

from __future__ import annotations

from langchain_core.language_models import BaseChatModel

from loreguard.config.settings import ModelConfig
from loreguard.llm.gateway import ChatGateway, EmptyCompletionError


def init_model(model_config: ModelConfig, api_key: str = "") -> BaseChatModel:
    """根据配置初始化 LLM。"""
    provider = model_config.provider.lower()
    api_key = api_key or model_config.resolve_api_key()

    if provider == "gateway":
        return ChatGateway(
            api_key=api_key,
            model=model_config.model_name,
            base_url=model_config.base_url,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
            timeout=model_config.timeout,
        )
    elif provider == "openai":
        from langchain_openai import ChatOpenAI

        kwargs: dict = {"model": model_config.model_name, "api_key": api_key}
        if model_config.temperature is not None:
            kwargs["temperature"] = model_config.temperature
        if model_config.max_tokens is not None:
            kwargs["max_tokens"] = model_config.max_tokens
        return ChatOpenAI(**kwargs)
    elif provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI

        kwargs = {"model": model_config.model_name, "google_api_key": api_key}
        if model_config.temperature is not None:
            kwargs["temperature"] = model_config.temperature
        if model_config.max_tokens is not None:
            kwargs["max_output_tokens"] = model_config.max_tokens
        return ChatGoogleGenerativeAI(**kwargs)
    else:
        raise ValueError(f"未知的模型提供商: {model_config.provider}")


__all__ = ["ChatGateway", "EmptyCompletionError", "init_model"]
