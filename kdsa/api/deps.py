"""
API Dependencies.

Components are built once in the application lifespan and stored on
``app.state``; routes receive them through these providers.
"""

from fastapi import Request

from kdsa.audit.ledger import AuditLedger
from kdsa.core.config import Settings
from kdsa.decision.biases import BiasDetector
from kdsa.decision.orchestrator import DecisionOrchestrator
from kdsa.sensing.service import RiskFlagBuilder


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> AuditLedger:
    return request.app.state.ledger


def get_orchestrator(request: Request) -> DecisionOrchestrator:
    return request.app.state.orchestrator


def get_bias_detector(request: Request) -> BiasDetector:
    return request.app.state.orchestrator.bias_detector


def get_flag_builder(request: Request) -> RiskFlagBuilder:
    return request.app.state.orchestrator.flag_builder
