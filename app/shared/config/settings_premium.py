# -*- coding: utf-8 -*-
"""
backend/app/shared/config/settings_premium.py

Configuración de la suscripción Premium y sus proveedores de pago.

Descripción:
    Centraliza credenciales de PayPal y M-Pesa (Daraja), precios por plan,
    URLs públicas de retorno/callback, timeouts HTTP y parámetros del
    sweep de reconciliación.

Autor: DoxAI
Fecha: 25/10/2025
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PremiumSettings(BaseSettings):
    """Configuración del sistema de pagos Premium."""

    # =========================================================================
    # URLS PÚBLICAS
    # =========================================================================

    public_base_url: str = Field(
        default="http://localhost:8000",
        description="URL pública del backend (return_url de PayPal, CallBackURL de M-Pesa)"
    )

    frontend_url: str = Field(
        default="http://localhost:5173",
        description="URL base del frontend para la cancelación del checkout"
    )

    @field_validator('public_base_url', 'frontend_url', mode='after')
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # =========================================================================
    # PAYPAL
    # =========================================================================

    paypal_enabled: bool = Field(
        default=True,
        description="Habilita pagos con PayPal"
    )

    paypal_client_id: Optional[str] = Field(
        default=None,
        description="PayPal client ID"
    )

    paypal_client_secret: Optional[str] = Field(
        default=None,
        description="PayPal client secret"
    )

    paypal_env: Literal["sandbox", "live"] = Field(
        default="sandbox",
        description="Modo de PayPal: 'sandbox' o 'live'"
    )

    paypal_webhook_id: Optional[str] = Field(
        default=None,
        description="PayPal webhook ID para validación de firmas"
    )

    paypal_brand_name: str = Field(
        default="NextScene Nova",
        description="Nombre de marca mostrado en la página de aprobación"
    )

    # =========================================================================
    # M-PESA (DARAJA)
    # =========================================================================

    mpesa_enabled: bool = Field(
        default=True,
        description="Habilita pagos con M-Pesa STK push"
    )

    mpesa_consumer_key: Optional[str] = Field(
        default=None,
        description="Daraja consumer key"
    )

    mpesa_consumer_secret: Optional[str] = Field(
        default=None,
        description="Daraja consumer secret"
    )

    mpesa_shortcode: Optional[str] = Field(
        default=None,
        description="BusinessShortCode / PartyB"
    )

    mpesa_passkey: Optional[str] = Field(
        default=None,
        description="Lipa na M-Pesa passkey"
    )

    mpesa_env: Literal["sandbox", "production"] = Field(
        default="sandbox",
        description="Entorno Daraja: 'sandbox' o 'production'"
    )

    mpesa_callback_token: Optional[str] = Field(
        default=None,
        description="Secreto compartido incluido en el CallBackURL (?token=...)"
    )

    # =========================================================================
    # PRECIOS POR PLAN
    # =========================================================================

    premium_monthly_usd: Decimal = Field(default=Decimal("9.99"))
    premium_annual_usd: Decimal = Field(default=Decimal("99.99"))
    premium_monthly_kes: Decimal = Field(default=Decimal("1300"))
    premium_annual_kes: Decimal = Field(default=Decimal("13000"))

    # =========================================================================
    # TIMEOUTS HTTP
    # =========================================================================

    premium_http_connect_timeout: float = Field(
        default=5.0,
        description="Timeout de conexión con proveedores (s)"
    )

    premium_http_read_timeout: float = Field(
        default=15.0,
        description="Timeout de lectura con proveedores (s)"
    )

    # =========================================================================
    # SWEEP DE RECONCILIACIÓN
    # =========================================================================

    premium_sweep_interval_minutes: int = Field(
        default=5,
        description="Cada cuántos minutos corre el sweep de pendientes"
    )

    premium_paypal_grace_minutes: int = Field(
        default=15,
        description="Antigüedad mínima de un intento PayPal pendiente antes de consultarlo"
    )

    premium_mpesa_grace_minutes: int = Field(
        default=15,
        description="Antigüedad mínima de un intento M-Pesa pendiente antes de consultarlo"
    )

    premium_stale_alert_hours: int = Field(
        default=24,
        description="Horas tras las cuales un intento pendiente dispara alerta operativa"
    )

    premium_pending_auto_cancel_hours: int = Field(
        default=0,
        description="Si > 0, cancela intentos pendientes más viejos que este umbral"
    )

    premium_sweep_batch_size: int = Field(
        default=100,
        ge=1,
        description="Máximo de intentos consultados por proveedor en cada corrida"
    )

    # =========================================================================
    # SEGURIDAD
    # =========================================================================

    allow_insecure_webhooks: bool = Field(
        default=None,
        validate_default=True,
        description="Permite webhooks sin validación de firma (SOLO DESARROLLO)"
    )

    @field_validator('allow_insecure_webhooks', mode='before')
    @classmethod
    def _load_allow_insecure(cls, v):
        """Fallback a PAYMENTS_ALLOW_INSECURE_WEBHOOKS."""
        if v not in (None, ""):
            return v
        return os.getenv("PAYMENTS_ALLOW_INSECURE_WEBHOOKS", "false")

    # =========================================================================
    # HELPERS
    # =========================================================================

    @property
    def paypal_is_sandbox(self) -> bool:
        return self.paypal_env != "live"

    @property
    def mpesa_is_sandbox(self) -> bool:
        return self.mpesa_env != "production"

    # =========================================================================
    # CONFIGURACIÓN DE PYDANTIC
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton global
_premium_settings: Optional[PremiumSettings] = None


def get_premium_settings() -> PremiumSettings:
    """
    Obtiene la instancia global de configuración Premium.

    Returns:
        PremiumSettings: Configuración de pagos Premium
    """
    global _premium_settings
    if _premium_settings is None:
        _premium_settings = PremiumSettings()
    return _premium_settings


def reset_premium_settings() -> None:
    """Descarta el singleton (tests que cambian variables de entorno)."""
    global _premium_settings
    _premium_settings = None


__all__ = [
    "PremiumSettings",
    "get_premium_settings",
    "reset_premium_settings",
]
# Fin del archivo backend/app/shared/config/settings_premium.py
