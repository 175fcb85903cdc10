"""
Relocator Settings

Centralized configuration for strategy evaluation, OCR and verification.
Values come from environment variables (optionally seeded from .env files).
"""

import logging
import os
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_loaded = False


def _load_env_files() -> None:
	"""Load .env.local then .env once, without overriding variables already set."""
	global _env_loaded
	if _env_loaded:
		return
	load_dotenv(dotenv_path='.env.local', override=False)
	load_dotenv(override=False)
	_env_loaded = True


class RelocatorSettings:
	"""
	Settings for the relocation pipeline.

	Optional behaviors can be toggled via environment variables:
	- FEATURE_COORDINATE_VALIDATION=true
	- FEATURE_NESTED_DOCUMENT_SEARCH=true
	- FEATURE_CONCURRENT_STEP_EVALUATION=true
	- FEATURE_STRATEGY_TELEMETRY=true
	"""

	def __init__(self):
		"""Initialize settings from environment variables."""
		self.coordinate_validation_enabled = self._get_flag('FEATURE_COORDINATE_VALIDATION', default=True)
		self.nested_document_search_enabled = self._get_flag('FEATURE_NESTED_DOCUMENT_SEARCH', default=True)
		self.concurrent_step_evaluation_enabled = self._get_flag('FEATURE_CONCURRENT_STEP_EVALUATION', default=True)
		self.strategy_telemetry_enabled = self._get_flag('FEATURE_STRATEGY_TELEMETRY', default=True)

		self.min_confidence = self._get_float('RELOCATOR_MIN_CONFIDENCE', default=0.5)
		self.strategy_timeout_ms = self._get_int('RELOCATOR_STRATEGY_TIMEOUT_MS', default=5000)
		self.cdp_command_timeout_ms = self._get_int('RELOCATOR_CDP_COMMAND_TIMEOUT_MS', default=5000)
		self.max_chain_length = self._get_int('RELOCATOR_MAX_CHAIN_LENGTH', default=7)
		self.ocr_confidence_threshold = self._get_float('RELOCATOR_OCR_CONFIDENCE_THRESHOLD', default=60.0)
		self.ocr_language = os.getenv('RELOCATOR_OCR_LANGUAGE', 'eng')
		self.ocr_cache_ttl_ms = self._get_int('RELOCATOR_OCR_CACHE_TTL_MS', default=2000)
		self.ax_cache_ttl_ms = self._get_int('RELOCATOR_AX_CACHE_TTL_MS', default=1000)
		self.pause_poll_interval_ms = self._get_int('RELOCATOR_PAUSE_POLL_INTERVAL_MS', default=100)

		self._log_enabled_features()

	def _get_flag(self, env_var: str, default: bool = False) -> bool:
		"""
		Get a boolean flag from an environment variable.

		Args:
			env_var: Environment variable name
			default: Default value if not set

		Returns:
			True if enabled, False otherwise
		"""
		value = os.getenv(env_var, str(default)).lower()
		return value in ('true', '1', 'yes', 'on', 'enabled')

	def _get_float(self, env_var: str, default: float) -> float:
		raw = os.getenv(env_var)
		if raw is None or raw.strip() == '':
			return default
		try:
			return float(raw)
		except ValueError:
			logger.warning(f"Invalid value for {env_var}: {raw!r}, using default {default}")
			return default

	def _get_int(self, env_var: str, default: int) -> int:
		raw = os.getenv(env_var)
		if raw is None or raw.strip() == '':
			return default
		try:
			return int(raw)
		except ValueError:
			logger.warning(f"Invalid value for {env_var}: {raw!r}, using default {default}")
			return default

	def _log_enabled_features(self):
		"""Log enabled features for debugging."""
		enabled_features = []

		if self.coordinate_validation_enabled:
			enabled_features.append('CoordinateValidation')
		if self.nested_document_search_enabled:
			enabled_features.append('NestedDocumentSearch')
		if self.concurrent_step_evaluation_enabled:
			enabled_features.append('ConcurrentStepEvaluation')
		if self.strategy_telemetry_enabled:
			enabled_features.append('StrategyTelemetry')

		if enabled_features:
			logger.info(f"✅ Enabled features: {', '.join(enabled_features)}")
		else:
			logger.info("ℹ️  No optional features enabled")

	@property
	def strategy_timeout_seconds(self) -> float:
		return self.strategy_timeout_ms / 1000

	@property
	def cdp_command_timeout_seconds(self) -> float:
		return self.cdp_command_timeout_ms / 1000

	def to_dict(self) -> dict[str, Any]:
		"""Export settings as dictionary."""
		return {
			'coordinate_validation': self.coordinate_validation_enabled,
			'nested_document_search': self.nested_document_search_enabled,
			'concurrent_step_evaluation': self.concurrent_step_evaluation_enabled,
			'strategy_telemetry': self.strategy_telemetry_enabled,
			'min_confidence': self.min_confidence,
			'strategy_timeout_ms': self.strategy_timeout_ms,
			'cdp_command_timeout_ms': self.cdp_command_timeout_ms,
			'max_chain_length': self.max_chain_length,
			'ocr_confidence_threshold': self.ocr_confidence_threshold,
			'ocr_language': self.ocr_language,
			'ocr_cache_ttl_ms': self.ocr_cache_ttl_ms,
			'ax_cache_ttl_ms': self.ax_cache_ttl_ms,
			'pause_poll_interval_ms': self.pause_poll_interval_ms,
		}


# Global settings instance
_settings: RelocatorSettings | None = None


def get_settings() -> RelocatorSettings:
	"""
	Get global settings instance.

	Returns:
		RelocatorSettings instance
	"""
	global _settings
	if _settings is None:
		_load_env_files()
		_settings = RelocatorSettings()
	return _settings


def reload_settings() -> RelocatorSettings:
	"""Reload settings from environment (useful for testing)."""
	global _settings
	_load_env_files()
	_settings = RelocatorSettings()
	return _settings
