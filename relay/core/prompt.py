DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
