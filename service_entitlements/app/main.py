"""
Entitlements service for the Feature & Quota Entitlement Engine.
"""

from typing import Dict, List, Optional

from fastapi import Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .api.guards import authenticate, authenticate_optional, authorize, rate_limit
from .auth.staff import StaffPolicy
from .features.catalog import FeatureCatalog, default_catalog
from .features.models import (
    EarlyAccessCheckResponse, EarlyAccessRequest, EarlyAccessUsersResponse, EntitlementResponse,
    FeatureDefinitionResponse, GrantRequest, Operation, QuotaResponse, RevokeRequest,
    RevokeResponse, UserFeaturesResponse
)
from .features.validation import ConfigValidator
from .persistence.base import EntitlementStore, UserDirectory
from .persistence.memory import InMemoryEntitlementStore, InMemoryUserDirectory
from .persistence.postgres import PostgreSQLEntitlementStore, PostgreSQLUserDirectory
from .ratelimit.limiter import OperationRateLimiter
from .service import EntitlementService

SERVICE_NAME = "entitlements"
SERVICE_PORT = 8011


class EntitlementsAPIService(BaseService):
    """Entitlements service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[EntitlementStore] = None,
        users: Optional[UserDirectory] = None,
        limiter: Optional[OperationRateLimiter] = None,
        catalog: Optional[FeatureCatalog] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)

        # Fail fast on a broken catalog before serving anything
        self.catalog = catalog if catalog is not None else default_catalog()
        ConfigValidator(self.catalog).validate_catalog()

        self.store = store if store is not None else self._create_store()
        self.users = users if users is not None else self._create_user_directory()
        self.limiter = limiter if limiter is not None else self._create_limiter()

        self.entitlements = EntitlementService(
            catalog=self.catalog,
            store=self.store,
            users=self.users,
            staff_policy=StaffPolicy(self.config.staff_email_domains, self.config.staff_emails),
            metrics=self.metrics,
        )

        self._setup_entitlements_routes()

    def _create_store(self) -> EntitlementStore:
        if self.config.entitlements_store == "memory":
            self.logger.warning("Using in-memory entitlement store; records are not durable")
            return InMemoryEntitlementStore()
        return PostgreSQLEntitlementStore(
            self.config.postgres_dsn,
            command_timeout=self.config.postgres_command_timeout,
            min_size=self.config.postgres_pool_min_size,
            max_size=self.config.postgres_pool_max_size,
        )

    def _create_user_directory(self) -> UserDirectory:
        if isinstance(self.store, PostgreSQLEntitlementStore):
            return PostgreSQLUserDirectory(self.store)
        return InMemoryUserDirectory()

    def _create_limiter(self) -> Optional[OperationRateLimiter]:
        if not self.config.rate_limit_enabled:
            return None
        return OperationRateLimiter(
            self.config.redis_url,
            limit=self.config.rate_limit_requests,
            window_seconds=self.config.rate_limit_window_seconds,
            metrics=self.metrics,
        )

    def _setup_entitlements_routes(self):
        """Set up entitlements-specific routes."""
        service = self.entitlements

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Feature & Quota Entitlement Engine - Entitlements Service",
                "version": "1.0.0",
                "capabilities": ["feature_catalog", "early_access", "quota", "persistence"]
            }

        @self.app.get("/features", response_model=List[FeatureDefinitionResponse])
        async def list_catalog():
            """List the feature catalog."""
            return [FeatureDefinitionResponse.from_definition(d) for d in self.catalog.all()]

        @self.app.post("/entitlements/grant", response_model=EntitlementResponse, status_code=201)
        async def grant(request: Request, body: GrantRequest):
            """Grant a feature to a user."""
            caller = authenticate(request)
            authorize(service, caller, Operation.GRANT, body.user_id)
            await rate_limit(self.limiter, request, caller, Operation.GRANT)

            record = await service.grant(caller, body.user_id, body.feature, body.config)
            return EntitlementResponse.from_record(record)

        @self.app.post("/entitlements/revoke", response_model=RevokeResponse)
        async def revoke(request: Request, body: RevokeRequest):
            """Revoke a feature from a user."""
            caller = authenticate(request)
            authorize(service, caller, Operation.REVOKE, body.user_id)
            await rate_limit(self.limiter, request, caller, Operation.REVOKE)

            return await service.revoke(caller, body.user_id, body.feature)

        @self.app.post("/early-access", response_model=EntitlementResponse, status_code=201)
        async def add_early_access(request: Request, body: EarlyAccessRequest):
            """Grant early access to an existing user by email."""
            caller = authenticate(request)
            authorize(service, caller, Operation.GRANT)
            await rate_limit(self.limiter, request, caller, Operation.GRANT)

            record = await service.add_early_access_by_email(caller, body.email)
            return EntitlementResponse.from_record(record)

        @self.app.delete("/early-access/{email}", response_model=RevokeResponse)
        async def remove_early_access(request: Request, email: str):
            """Remove early access from a user by email."""
            caller = authenticate(request)
            authorize(service, caller, Operation.REVOKE)
            await rate_limit(self.limiter, request, caller, Operation.REVOKE)

            return await service.remove_early_access_by_email(caller, email)

        @self.app.get("/early-access/users", response_model=EarlyAccessUsersResponse)
        async def early_access_users(request: Request):
            """List users with an explicit early access grant."""
            caller = authenticate(request)
            authorize(service, caller, Operation.LIST_EARLY_ACCESS)
            await rate_limit(self.limiter, request, caller, Operation.LIST_EARLY_ACCESS)

            users = await service.list_early_access(caller)
            return EarlyAccessUsersResponse(users=users, total=len(users))

        @self.app.get("/early-access/check", response_model=EarlyAccessCheckResponse)
        async def check_early_access(request: Request, email: str = Query(..., min_length=1, description="Email to check")):
            """Check whether an email has early access. Public."""
            caller = authenticate_optional(request)
            await rate_limit(self.limiter, request, caller, Operation.HAS_EARLY_ACCESS)

            allowed = await service.has_early_access(email)
            return EarlyAccessCheckResponse(email=email, early_access=allowed)

        @self.app.get("/users/{user_id}/quota", response_model=QuotaResponse)
        async def user_quota(request: Request, user_id: str):
            """Resolve a user's active quota."""
            caller = authenticate(request)
            authorize(service, caller, Operation.RESOLVE_QUOTA, user_id)
            await rate_limit(self.limiter, request, caller, Operation.RESOLVE_QUOTA)

            definition = await service.resolve_quota(user_id)
            return QuotaResponse(
                user_id=user_id,
                quota=FeatureDefinitionResponse.from_definition(definition)
            )

        @self.app.get("/users/{user_id}/features", response_model=UserFeaturesResponse)
        async def user_features(request: Request, user_id: str):
            """List a user's active features."""
            caller = authenticate(request)
            authorize(service, caller, Operation.LIST_FEATURES, user_id)
            await rate_limit(self.limiter, request, caller, Operation.LIST_FEATURES)

            features = await service.list_features(user_id)
            return UserFeaturesResponse(user_id=user_id, features=[f.value for f in features])

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check entitlements service dependencies."""
        dependencies = {
            "store": "ok" if await self.store.health_check() else "error"
        }
        if self.limiter is not None:
            dependencies["redis"] = "ok" if await self.limiter.health_check() else "error"
        return dependencies

    async def start(self):
        """Start entitlements service components."""
        await self.store.start()
        await self.users.start()
        self.logger.info(
            "Entitlements service started",
            features=len(self.catalog),
            default_quota=self.catalog.default_quota.name.value
        )

    async def stop(self):
        """Stop entitlements service components."""
        await self.users.stop()
        await self.store.stop()
        if self.limiter is not None:
            await self.limiter.close()

        self.logger.info("Entitlements service stopped")


def create_app(**kwargs):
    """Create entitlements service application."""
    service = EntitlementsAPIService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = EntitlementsAPIService()
    service.run()
