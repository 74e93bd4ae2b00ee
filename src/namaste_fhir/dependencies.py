"""
Service container and FastAPI dependencies.

All services, including the key and profile caches, are built once per
application in the lifespan handler and stored on ``app.state.services``.
Tests replace the container through ``app.dependency_overrides``.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from namaste_fhir.config import Settings
from namaste_fhir.db.repositories import (
    ConceptRepository,
    MappingStore,
    SqlConceptRepository,
    SqlMappingStore,
    SqlUserRepository,
)
from namaste_fhir.security.audit import AuditRecorder
from namaste_fhir.security.key_provider import JwksKeyProvider
from namaste_fhir.security.profile_service import ProfileService
from namaste_fhir.security.token_verifier import TokenVerifier
from namaste_fhir.services.ai_mapper import AIFallbackMapper
from namaste_fhir.services.ai_provider import GeminiProvider
from namaste_fhir.services.bundle_assembler import BundleAssembler
from namaste_fhir.services.concept_loader import ConceptLoader
from namaste_fhir.services.translation_engine import TranslationEngine
from namaste_fhir.services.user_service import UserService
from namaste_fhir.utils.cache import TTLCache


@dataclass
class ServiceContainer:
    """Everything the routes need, wired together."""
    settings: Settings
    concepts: ConceptRepository
    mappings: MappingStore
    engine: TranslationEngine
    ai_mapper: AIFallbackMapper
    verifier: TokenVerifier
    users: UserService
    bundles: BundleAssembler
    loader: ConceptLoader
    audit: Optional[AuditRecorder] = None


def build_services(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> ServiceContainer:
    """Wire the production services for one application instance."""
    concepts = SqlConceptRepository(session_factory)
    mappings = SqlMappingStore(session_factory)
    audit = AuditRecorder(session_factory)
    engine = TranslationEngine(concepts, mappings)

    provider = GeminiProvider(
        api_key=settings.gemini_api_key,
        api_url=settings.gemini_api_url,
        model=settings.gemini_model,
        timeout=settings.ai_timeout_seconds,
    )

    verifier = TokenVerifier(
        key_provider=JwksKeyProvider(settings.abha_jwks_url, timeout=settings.http_timeout_seconds),
        key_cache=TTLCache(settings.key_cache_ttl_seconds, name="key-cache"),
        demo_mode=settings.demo_mode,
        demo_secret=settings.demo_token_secret,
        expected_issuer=settings.abha_expected_issuer,
        expected_audience=settings.abha_expected_audience,
    )
    profiles = ProfileService(
        settings.abha_profile_url,
        cache=TTLCache(settings.profile_cache_ttl_seconds, name="profile-cache"),
        timeout=settings.http_timeout_seconds,
    )

    return ServiceContainer(
        settings=settings,
        concepts=concepts,
        mappings=mappings,
        engine=engine,
        ai_mapper=AIFallbackMapper(provider),
        verifier=verifier,
        users=UserService(verifier, profiles, SqlUserRepository(session_factory), audit),
        bundles=BundleAssembler(concepts, engine, settings.fhir_base_url),
        loader=ConceptLoader(concepts, mappings),
        audit=audit,
    )


def get_services(request: Request) -> ServiceContainer:
    """Dependency returning the application's service container."""
    return request.app.state.services
