"""Recommended sampling parameters for a model, fetched from OpenRouter."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

import httpx

from routerbot.config import Config

PARAMETERS_URL = "https://openrouter.ai/api/v1/parameters/{model}"


@dataclass
class ModelResponse:
    model: str = ""
    frequency_penalty_p10: float = 0.0
    frequency_penalty_p50: float = 0.0
    frequency_penalty_p90: float = 0.0
    min_p_p10: float = 0.0
    min_p_p50: float = 0.0
    min_p_p90: float = 0.0
    presence_penalty_p10: float = 0.0
    presence_penalty_p50: float = 0.0
    presence_penalty_p90: float = 0.0
    repetition_penalty_p10: float = 0.0
    repetition_penalty_p50: float = 0.0
    repetition_penalty_p90: float = 0.0
    temperature_p10: float = 0.0
    temperature_p50: float = 0.0
    temperature_p90: float = 0.0
    top_a_p10: float = 0.0
    top_a_p50: float = 0.0
    top_a_p90: float = 0.0
    top_k_p10: float = 0.0
    top_k_p50: float = 0.0
    top_k_p90: float = 0.0
    top_p_p10: float = 0.0
    top_p_p50: float = 0.0
    top_p_p90: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelResponse:
        """Build from the ``data`` object of the API response; unknown keys are ignored."""
        values: dict[str, Any] = {}
        for item in fields(cls):
            if item.name not in data or data[item.name] is None:
                continue
            raw = data[item.name]
            if item.name == "model":
                if not isinstance(raw, str):
                    raise ValueError("model must be a string")
                values["model"] = raw
            else:
                if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                    raise ValueError(f"{item.name} must be a number")
                values[item.name] = float(raw)
        return cls(**values)


def fetch_parameters(config: Config, client: httpx.Client | None = None) -> ModelResponse:
    """Fetch the parameter statistics for ``config.model.model_name``."""
    url = PARAMETERS_URL.format(model=config.model.model_name)
    headers = {"Authorization": f"Bearer {config.openai_api_key}"}
    owned = client is None
    http = httpx.Client(timeout=10.0) if client is None else client
    try:
        response = http.get(url, headers=headers)
        payload = response.json()
    finally:
        if owned:
            http.close()
    if not isinstance(payload, dict):
        raise ValueError("unexpected response body")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("unexpected data field")
    return ModelResponse.from_dict(data)