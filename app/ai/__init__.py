"""
AI module.

Submodules:
    - gateway: LLM Gateway (provider selection, retry, usage logging)
"""
