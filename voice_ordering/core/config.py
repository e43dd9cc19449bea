"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two modes:
    - DEVELOPMENT: In-memory key-value store and recording domain callbacks
    - PRODUCTION: SQL-backed key-value store (SQLAlchemy)

The ENV_MODE variable controls which collaborators are instantiated when the
voice service is assembled, enabling seamless switching between local testing
and production deployment.

Usage:
    from voice_ordering.core.config import get_settings

    settings = get_settings()
    print(settings.vat_rate)          # 0.077
    print(settings.delivery_zones)    # {"zurich": {...}, ...}

Version: 1.0.0
"""

import json
import logging
import sys
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with in-memory collaborators
        PRODUCTION: Live environment with the SQL store
        STAGING: Pre-production with the SQL store
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Durations are expressed in seconds, money in CHF.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Interpretation
        default_locale: Locale used when a request carries none
        min_confidence: Below this an utterance becomes a clarification
        fuzzy_similarity_floor: Minimum edit similarity for fallback matches
        fuzzy_confidence_factor: Scale applied to fallback confidences

        # Business Configuration
        vat_rate: Swiss VAT applied to the subtotal
        minimum_order_value: Checkout is rejected below this subtotal
        delivery_zones_json: Zone → {base_fee, free_threshold}

        # Dispatcher
        cache_ttl_seconds: Lifetime of cached inquiry results
        transaction_ttl_seconds: Window to commit a pending checkout
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Voice Ordering Core",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )

    # ==========================================================================
    # KEY-VALUE STORE
    # ==========================================================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/voice_ordering.db",
        description="SQLAlchemy async URL for the persisted key-value store"
    )
    database_echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )

    # ==========================================================================
    # LOCALE
    # ==========================================================================

    default_locale: str = Field(
        default="de-CH",
        description="Locale used when a request carries none"
    )
    supported_locales: str = Field(
        default="de-CH,de-DE,fr-CH,it-CH,en-US",
        description="Comma-separated list of locales that must have rule data"
    )

    # ==========================================================================
    # INTERPRETATION
    # ==========================================================================

    min_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum confidence before an action is executed"
    )
    fuzzy_similarity_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Edit-distance similarity needed for a fallback match"
    )
    fuzzy_confidence_factor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Multiplier applied to fallback match confidences"
    )
    product_similarity_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Similarity needed for a fuzzy catalog match"
    )

    # ==========================================================================
    # CONTEXT ENGINE
    # ==========================================================================

    context_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of a context record"
    )
    context_history_size: int = Field(
        default=100,
        description="Number of context records kept in history"
    )
    prediction_threshold: float = Field(
        default=0.7,
        description="Predictions below this confidence are discarded"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    currency: str = Field(
        default="CHF",
        description="Currency for all totals"
    )
    vat_rate: float = Field(
        default=0.077,
        description="Swiss VAT rate as decimal (7.7%)"
    )
    minimum_order_value: float = Field(
        default=10.00,
        description="Minimum subtotal accepted at checkout"
    )
    default_delivery_zone: str = Field(
        default="zurich",
        description="Zone used when the location city is unknown"
    )
    delivery_zones_json: str = Field(
        default=(
            '{"zurich": {"base_fee": 3.50, "free_threshold": 25.00},'
            ' "basel": {"base_fee": 4.00, "free_threshold": 30.00},'
            ' "geneva": {"base_fee": 4.50, "free_threshold": 35.00},'
            ' "bern": {"base_fee": 3.50, "free_threshold": 25.00}}'
        ),
        description="Delivery zones as JSON: zone -> {base_fee, free_threshold}"
    )
    weekday_hours: str = Field(
        default="10:00-22:00",
        description="Opening hours Monday to Friday"
    )
    weekend_hours: str = Field(
        default="11:00-23:00",
        description="Opening hours Saturday and Sunday"
    )
    payment_methods: str = Field(
        default="twint,postcard,credit_card,cash,kreditkarte,bargeld,paypal,apple pay,google pay",
        description="Comma-separated list of accepted payment methods"
    )

    # ==========================================================================
    # DISPATCHER
    # ==========================================================================

    cache_ttl_seconds: int = Field(
        default=300,
        description="Lifetime of cached inquiry results"
    )
    transaction_ttl_seconds: int = Field(
        default=300,
        description="Pending transactions older than this are purged"
    )
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Number of commands that triggers a batch execution"
    )
    max_queue_size: int = Field(
        default=100,
        description="Queue length above which an overflow warning is emitted"
    )
    command_history_size: int = Field(
        default=50,
        description="Number of executed commands kept for repeat"
    )
    max_item_quantity: int = Field(
        default=99,
        description="Upper bound for a parsed quantity"
    )
    batch_intents: str = Field(
        default="price_check,allergen_info",
        description="Comma-separated intents executed through the batch buffer"
    )
    scheduled_intents: str = Field(
        default="",
        description="Comma-separated intents always deferred to the drain tick"
    )

    # ==========================================================================
    # BACKGROUND TICKS
    # ==========================================================================

    sweep_interval_seconds: float = Field(
        default=1.0,
        description="Cache and transaction expiry sweep interval"
    )
    monitor_interval_seconds: float = Field(
        default=5.0,
        description="Queue-size monitor interval"
    )
    drain_interval_seconds: float = Field(
        default=1.0,
        description="Queued-command drain interval"
    )

    # ==========================================================================
    # LEARNING
    # ==========================================================================

    learning_min_group_size: int = Field(
        default=5,
        description="Misclassifications needed before a rule is mined"
    )
    learning_common_share: float = Field(
        default=0.6,
        description="Share of a group that must agree on an attribute"
    )
    learning_rule_delta: float = Field(
        default=0.1,
        description="Confidence added by a mined adaptation rule"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("weekday_hours", "weekend_hours")
    @classmethod
    def validate_hours(cls, v: str) -> str:
        """Opening hours must look like HH:MM-HH:MM."""
        try:
            opens, closes = v.split("-")
            for part in (opens, closes):
                hour, minute = part.strip().split(":")
                int(hour), int(minute)
        except ValueError:
            raise ValueError(f"Invalid opening hours '{v}', expected HH:MM-HH:MM")
        return v

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def use_real_services(self) -> bool:
        """Check if the persistent store should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def supported_locales_list(self) -> list[str]:
        """Get supported locales as a list."""
        return [loc.strip() for loc in self.supported_locales.split(",") if loc.strip()]

    @property
    def payment_methods_list(self) -> list[str]:
        """Get accepted payment methods as a list."""
        return [m.strip() for m in self.payment_methods.split(",") if m.strip()]

    @property
    def batch_intents_set(self) -> frozenset[str]:
        """Get batch intents as a set."""
        return frozenset(i.strip() for i in self.batch_intents.split(",") if i.strip())

    @property
    def scheduled_intents_set(self) -> frozenset[str]:
        """Get scheduled intents as a set."""
        return frozenset(i.strip() for i in self.scheduled_intents.split(",") if i.strip())

    @property
    def delivery_zones(self) -> dict[str, dict[str, float]]:
        """Get delivery zones parsed from JSON."""
        zones: dict[str, Any] = json.loads(self.delivery_zones_json)
        return {
            name.lower(): {
                "base_fee": float(zone["base_fee"]),
                "free_threshold": float(zone["free_threshold"]),
            }
            for name, zone in zones.items()
        }

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if self.database_url.startswith("sqlite") and ":memory:" in self.database_url:
                missing.append("DATABASE_URL")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once,
    improving performance and ensuring consistency across
    the application lifecycle.

    Returns:
        Settings: Configured application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.env_mode)
        EnvironmentMode.DEVELOPMENT
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    # Set level based on debug mode
    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    return logging.getLogger("voice_ordering")
