__all__ = [
    "errors",
    "extractor_client",
    "llm_provider",
    "logging",
    "models",
    "prompts",
    "record_store",
]
