"""
Entitlements Service package for the Feature & Quota Entitlement Engine.

This package defines which features and quota tiers exist and resolves,
grants and revokes them per user. It provides:

- app.main: HTTP façade (FastAPI) with the guard chain per operation.
- app.service: EntitlementService orchestrating grant/revoke/list/resolve.
- app.features: Feature catalog, per-feature schemas and config validation.
- app.quota: Active quota resolution.
- app.early_access: Allow-list matching for early access.
- app.auth: Staff role checks.
- app.persistence: Entitlement store and user directory collaborators.
- app.ratelimit: Redis-backed per-operation rate limiting.

Guidelines:
- The service is stateless apart from the read-only catalog; every
  resolution re-reads the store.
- Writes are append-only; history is never rewritten.
- The engine never retries; storage errors are surfaced to the caller.
"""
