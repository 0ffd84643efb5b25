"""Services package for drafting business logic.

Modules are imported directly (``from drafting.services.draft_queue import
DraftQueue``); the LLM client imports ``model_output`` lazily.
"""
