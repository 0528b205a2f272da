"""
RBAC (Role-Based Access Control) application.

Provides scoped access control with:
- Role assignments at global, org-wide and branch scope
- Effective permissions from roles plus team memberships
- Scope-bounded assignment sync
- Cached role and team permission sets
"""
