"""
Typed errors for the access-control core.

Each error carries a stable ``code`` so the (external) HTTP layer can map
it to a response without parsing messages.
"""


class AccessControlError(Exception):
    """Base exception for access-control errors."""

    code = 'ACCESS_CONTROL_ERROR'
    default_message = 'Access control error'

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Validation

class InvalidScope(AccessControlError, ValueError):
    code = 'INVALID_SCOPE'
    default_message = 'A branch scope requires an organization'


# Conflicts

class DuplicateAssignment(AccessControlError):
    code = 'DUPLICATE_ASSIGNMENT'
    default_message = 'User already has this role assignment'

    def __init__(self, principal_id=None, role_id=None, scope=None, message: str = None):
        self.principal_id = principal_id
        self.role_id = role_id
        self.scope = scope
        super().__init__(message)


class DuplicateRole(AccessControlError):
    code = 'DUPLICATE_ROLE'
    default_message = 'A role with this name or slug already exists'


class DuplicatePermission(AccessControlError):
    code = 'DUPLICATE_PERMISSION'
    default_message = 'A permission with this slug already exists'


class ProtectedRole(AccessControlError):
    code = 'PROTECTED_ROLE'
    default_message = 'System roles cannot be deleted'


class ScopeSyncError(AccessControlError):
    """
    A scope sync could not be applied as a unit.

    Nothing was changed; ``attached``/``detached`` describe the planned diff
    and ``__cause__`` holds the underlying failure.
    """

    code = 'SCOPE_SYNC_FAILED'
    default_message = 'Role sync failed; no assignments were changed'

    def __init__(self, attached=frozenset(), detached=frozenset(), message: str = None):
        self.attached = frozenset(attached)
        self.detached = frozenset(detached)
        super().__init__(message)


# Not found

class RoleNotFound(AccessControlError):
    code = 'ROLE_NOT_FOUND'
    default_message = 'Role not found'


class PermissionNotFound(AccessControlError):
    code = 'PERMISSION_NOT_FOUND'
    default_message = 'Permission not found'


class AssignmentNotFound(AccessControlError):
    code = 'ASSIGNMENT_NOT_FOUND'
    default_message = 'Role assignment not found'


# Dependency failures

class TeamDirectoryUnavailable(AccessControlError):
    code = 'TEAM_DIRECTORY_UNAVAILABLE'
    default_message = 'Team directory is unavailable'


class StoreUnavailable(AccessControlError):
    code = 'STORE_UNAVAILABLE'
    default_message = 'Role assignment store is unavailable'
