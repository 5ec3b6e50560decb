"""
Chat Audit - AI compliance reports over organization chat transcripts
=====================================================================

FastAPI backend that streams map-reduce audit reports for organization owners.

Modules:
    api: FastAPI routes, services, and middleware
    core: Audit pipeline, prompts, model catalog, configuration constants
    models: Domain dataclasses and Pydantic API schemas
    utils: Logging, metrics, token estimation, database helpers
    integrations: Model provider adapters (OpenAI, Azure, Anthropic, Google)
"""
