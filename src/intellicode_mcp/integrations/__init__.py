"""
Adapters for the external capabilities the analysis tools consume:
ESLint and tsc (subprocesses), SerpAPI and LLM providers (HTTPS).
"""
