# -*- coding: utf-8 -*-
"""
backend/app/modules/premium/__init__.py

Módulo Premium: cobro de suscripciones (PayPal / M-Pesa), ledger de intentos
de pago, motor de reconciliación y store de entitlement.

Los routers se importan explícitamente desde app.modules.premium.routes para
no arrastrar FastAPI al importar modelos o servicios.
"""
