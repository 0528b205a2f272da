"""
Team directory application.

Provides team membership lookups for team-derived permissions:
- HTTP client for the upstream directory service
- Local database mirror used when the upstream is unreachable
"""
