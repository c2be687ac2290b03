"""
Client-side data synchronization.

Components:
- cache.py: EntityCache, query identity -> cache entry (+ staleness bookkeeping)
- session.py: SessionGate, authentication state that gates reads
- queries.py: QueryCoordinator, deduplicated collection reads with a generation guard
- mutations.py: MutationCoordinator, create/update/delete + invalidate and re-read on success
- auth.py: AuthService, sign-up / sign-in / sign-out flows
"""
