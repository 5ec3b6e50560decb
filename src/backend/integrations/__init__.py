"""
Integrations Module - External System Integrations
===================================================

Model provider adapters used by the audit pipeline.

Modules:
    model_providers: ``ModelProvider`` protocol with OpenAI-compatible and
        Anthropic implementations, plus ``create_model_provider`` which picks
        one from the model catalog and configured credentials.
"""
