"""
Entitlement orchestration for Entitlements Service.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation
from shared.errors import AccessLayerException, AuthorizationError, NotFoundError, ValidationError

from .auth.staff import StaffPolicy
from .early_access.gate import EarlyAccessGate
from .features.catalog import FeatureCatalog, coerce_feature_name
from .features.models import (
    ADMIN_OPERATIONS, Caller, EntitlementRecord, FeatureDefinition, FeatureKind, FeatureName, Operation
)
from .features.validation import ConfigValidator
from .persistence.base import EntitlementStore, UserDirectory
from .quota.resolver import QuotaResolver

# Operations a user may run on their own data; staff may run them on anyone's
SELF_OPERATIONS = frozenset({Operation.RESOLVE_QUOTA, Operation.LIST_FEATURES})


class EntitlementService:
    """Grants, revokes and resolves per-user entitlements.

    Every public coroutine is one operation: authorization first, then
    validation, then a single store call. Nothing is cached between calls
    and nothing is retried; store errors reach the caller unchanged, except
    for ``has_early_access`` and ``resolve_quota`` which degrade to
    ``False`` and the default quota.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        store: EntitlementStore,
        users: UserDirectory,
        staff_policy: StaffPolicy,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.users = users
        self.staff_policy = staff_policy
        self.metrics = metrics
        self.validator = ConfigValidator(catalog)
        self.gate = EarlyAccessGate.from_catalog(catalog)
        self.quota_resolver = QuotaResolver(catalog, store)
        self.logger = get_logger("entitlements.service")

    @contextmanager
    def _timed(self, operation: Operation):
        with trace_operation(f"entitlements.{operation.value}", operation=operation.value):
            if self.metrics is None:
                yield
            else:
                with self.metrics.time_operation(operation.value):
                    yield

    def _log_business_event(self, event_type: str, **kwargs):
        self.logger.info("Business event", event_type=event_type, **kwargs)
        if self.metrics is not None:
            self.metrics.record_business_event(event_type)

    def authorize(self, caller: Caller, operation: Operation, target_user_id: Optional[str] = None):
        """Raise AuthorizationError unless ``caller`` may run ``operation``."""
        operation = Operation(operation)
        if operation in ADMIN_OPERATIONS:
            allowed = self.staff_policy.is_staff(caller.email)
        elif operation in SELF_OPERATIONS:
            allowed = caller.user_id == target_user_id or self.staff_policy.is_staff(caller.email)
        else:
            allowed = True

        if not allowed:
            self.logger.warning(
                "Operation forbidden",
                caller_id=caller.user_id,
                operation=operation.value,
                target_user_id=target_user_id
            )
            raise AuthorizationError(
                "You are not allowed to do this",
                {"operation": operation.value}
            )

    async def grant(
        self,
        caller: Caller,
        target_user_id: str,
        feature_name: Union[str, FeatureName],
        config: Optional[Dict[str, Any]] = None,
    ) -> EntitlementRecord:
        """Append a new entitlement record for ``target_user_id``."""
        with self._timed(Operation.GRANT):
            self.authorize(caller, Operation.GRANT, target_user_id)

            if not target_user_id:
                raise ValidationError("Target user id is required")

            definition = self.catalog.definition_for(feature_name)
            raw_config = definition.default_config_copy() if config is None else config
            validated = self.validator.validate(definition.kind, definition.name, definition.version, raw_config)

            record = await self.store.insert(EntitlementRecord(
                user_id=target_user_id,
                feature_name=definition.name,
                kind=definition.kind,
                schema_version=definition.version,
                config=validated,
                granted_at=datetime.now(timezone.utc),
            ))

            self._log_business_event(
                "entitlement_granted",
                caller_id=caller.user_id,
                user_id=target_user_id,
                feature=definition.name.value,
                version=definition.version,
                record_id=record.record_id
            )
            return record

    async def revoke(
        self,
        caller: Caller,
        target_user_id: str,
        feature_name: Union[str, FeatureName],
    ) -> Dict[str, bool]:
        """Tombstone the active grant. Revoking an absent grant is not an error."""
        with self._timed(Operation.REVOKE):
            self.authorize(caller, Operation.REVOKE, target_user_id)
            name = coerce_feature_name(feature_name)

            revoked = await self.store.delete_active(target_user_id, name)

            self._log_business_event(
                "entitlement_revoked",
                caller_id=caller.user_id,
                user_id=target_user_id,
                feature=name.value,
                revoked=revoked
            )
            return {"revoked": revoked}

    async def list_early_access(self, caller: Caller) -> List[str]:
        """User ids holding an explicit early access grant."""
        with self._timed(Operation.LIST_EARLY_ACCESS):
            self.authorize(caller, Operation.LIST_EARLY_ACCESS)
            return await self.store.list_users_with_feature(FeatureName.EARLY_ACCESS)

    async def has_early_access(self, email: str) -> bool:
        """Allow-list match or explicit grant. Never raises."""
        with self._timed(Operation.HAS_EARLY_ACCESS):
            if self.gate.matches(email):
                self._log_business_event("early_access_checked", source="allow_list", allowed=True)
                return True

            try:
                user_id = await self.users.find_user_id_by_email(email)
                if user_id is None:
                    return False
                records = await self.store.list_by_user(user_id, kind=FeatureKind.FEATURE)
            except AccessLayerException as e:
                self.logger.warning("Early access lookup failed", code=e.code, error=e.message)
                return False

            allowed = any(
                record.feature_name == FeatureName.EARLY_ACCESS and record.active
                for record in records
            )
            self._log_business_event("early_access_checked", source="grant", user_id=user_id, allowed=allowed)
            return allowed

    async def resolve_quota(self, user_id: str) -> FeatureDefinition:
        """The user's active quota; the default quota when none or on failure."""
        with self._timed(Operation.RESOLVE_QUOTA):
            try:
                definition = await self.quota_resolver.resolve(user_id)
            except AccessLayerException as e:
                self.logger.warning(
                    "Quota resolution failed, using default quota",
                    user_id=user_id,
                    code=e.code,
                    error=e.message
                )
                return self.catalog.default_quota

            self._log_business_event("quota_resolved", user_id=user_id, quota=definition.name.value)
            return definition

    async def list_features(self, user_id: str) -> List[FeatureName]:
        """Active feature-kind entitlements of a user, in catalog order."""
        with self._timed(Operation.LIST_FEATURES):
            records = await self.store.list_by_user(user_id, kind=FeatureKind.FEATURE)
            active = {record.feature_name for record in records if record.active}
            ordered = []
            for definition in self.catalog.all():
                if definition.name in active and definition.name not in ordered:
                    ordered.append(definition.name)
            return ordered

    async def _user_id_for_email(self, email: str) -> str:
        user_id = await self.users.find_user_id_by_email(email)
        if user_id is None:
            raise NotFoundError(f"User {email} not found", {"email": email})
        return user_id

    async def add_early_access_by_email(self, caller: Caller, email: str) -> EntitlementRecord:
        """Grant early access to an existing account. Accounts are never created here."""
        self.authorize(caller, Operation.GRANT)
        user_id = await self._user_id_for_email(email)
        return await self.grant(caller, user_id, FeatureName.EARLY_ACCESS)

    async def remove_early_access_by_email(self, caller: Caller, email: str) -> Dict[str, bool]:
        self.authorize(caller, Operation.REVOKE)
        user_id = await self._user_id_for_email(email)
        return await self.revoke(caller, user_id, FeatureName.EARLY_ACCESS)
