"""Wizard core: pipeline, cache and generation backends."""

from .command_cache import CommandCache, normalize_query
from .llm_client import (
    GenerationBackend,
    GenerationResult,
    LLMClient,
    CannedBackend,
    clean_command_response,
)
from .schemas import WizardRequest, WizardResult, WizardStatus
from .wizard import CommandWizard, build_user_prompt, SYSTEM_PROMPT

__all__ = [
    'CommandCache',
    'normalize_query',
    'GenerationBackend',
    'GenerationResult',
    'LLMClient',
    'CannedBackend',
    'clean_command_response',
    'WizardRequest',
    'WizardResult',
    'WizardStatus',
    'CommandWizard',
    'build_user_prompt',
    'SYSTEM_PROMPT',
]
