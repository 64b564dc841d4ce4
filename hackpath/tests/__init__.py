"""
Hackpath Test Suite

Test Packages:
- unit/progress_engine: Graph model, evaluation, and Redis-backed local stores
- integration: Server store, sign-in migration, and the progress API over SQLite
"""
