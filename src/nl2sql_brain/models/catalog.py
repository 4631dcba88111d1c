"""Static catalogs of models offered by each backend."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelDescriptor:
    """A locally loadable GGUF model."""

    id: str
    display_name: str
    size_estimate: str
    context_length: int
    description: str
    repo_id: str
    filename: str


@dataclass(frozen=True)
class ModelOption:
    """A model served by a hosted vendor."""

    id: str
    name: str
    description: str = ""
    context_length: int | None = None


AVAILABLE_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="phi-3.5-mini-instruct-q4",
        display_name="Phi-3.5 Mini",
        size_estimate="~2.3GB",
        context_length=4096,
        description="Best balance of quality and performance for SQL generation",
        repo_id="bartowski/Phi-3.5-mini-instruct-GGUF",
        filename="Phi-3.5-mini-instruct-Q4_K_M.gguf",
    ),
    ModelDescriptor(
        id="llama-3.2-1b-instruct-q4",
        display_name="Llama 3.2 1B",
        size_estimate="~0.8GB",
        context_length=2048,
        description="Fastest option, good for quick queries",
        repo_id="bartowski/Llama-3.2-1B-Instruct-GGUF",
        filename="Llama-3.2-1B-Instruct-Q4_K_M.gguf",
    ),
    ModelDescriptor(
        id="qwen2.5-1.5b-instruct-q4",
        display_name="Qwen 2.5 1.5B",
        size_estimate="~1GB",
        context_length=2048,
        description="Good balance of size and capability",
        repo_id="Qwen/Qwen2.5-1.5B-Instruct-GGUF",
        filename="qwen2.5-1.5b-instruct-q4_k_m.gguf",
    ),
)

DEFAULT_MODEL = AVAILABLE_MODELS[0]

OPENAI_MODELS: tuple[ModelOption, ...] = (
    ModelOption("gpt-4o", "GPT-4o", "Most capable, best for complex tasks", 128000),
    ModelOption("gpt-4o-mini", "GPT-4o Mini", "Fast and affordable", 128000),
    ModelOption("gpt-4-turbo", "GPT-4 Turbo", "GPT-4 with vision", 128000),
    ModelOption("gpt-3.5-turbo", "GPT-3.5 Turbo", "Fast, good for simple tasks", 16385),
)

ANTHROPIC_MODELS: tuple[ModelOption, ...] = (
    ModelOption(
        "claude-sonnet-4-20250514",
        "Claude Sonnet 4",
        "Best balance of speed and capability",
        200000,
    ),
    ModelOption(
        "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "Fast and capable", 200000
    ),
    ModelOption(
        "claude-3-5-haiku-20241022",
        "Claude 3.5 Haiku",
        "Fastest, most affordable",
        200000,
    ),
)


def get_model_descriptor(model_id: str) -> ModelDescriptor | None:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None
