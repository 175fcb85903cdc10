"""
Configuration module for relocator.

Provides feature flags and tunables for evaluation, OCR and verification.
"""

from relocator.config.settings import RelocatorSettings, get_settings, reload_settings

__all__ = [
	'RelocatorSettings',
	'get_settings',
	'reload_settings',
]
