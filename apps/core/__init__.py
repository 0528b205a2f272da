"""
Core infrastructure shared by the access apps.

Provides:
- BaseModel with UUID primary keys and timestamps
- CacheService with consistent keys, TTLs and logging
- Structured JSON logging formatter
"""
