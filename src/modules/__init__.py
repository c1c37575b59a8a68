"""
Domain modules of the ranking core.

- shared:      exceptions, validators, base service and repository
- ranking:     rank store, shift planning and the mutation engine
- history:     append-only rank history ledger
- aggregation: per-dish average, count, trend and distribution
- query:       read-only facade for UI and search
- api:         transport-neutral request handlers
"""
