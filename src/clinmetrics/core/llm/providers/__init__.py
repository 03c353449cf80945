"""Research LLM providers, constructed through ``create_provider``."""
