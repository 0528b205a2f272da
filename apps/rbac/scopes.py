"""
Scope keys for role assignments.

A scope is the ``(org_id, branch_id)`` pair that bounds where an assignment
applies:

- Global    (None, None)  applies in every context
- Org-wide  (org,  None)  applies to the org and every branch inside it
- Branch    (org,  branch) applies to that exact pair only
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

from apps.rbac.exceptions import InvalidScope


GLOBAL_STORAGE_KEY = '*'


class ScopeTier(str, Enum):
    GLOBAL = 'global'
    ORG = 'org-wide'
    BRANCH = 'branch'


def _normalize(value) -> Optional[str]:
    """Empty and whitespace-only components mean "absent"."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class ScopeKey:
    """
    Validated ``(org_id, branch_id)`` pair.

    Build instances with :meth:`from_raw` when the components come from
    untrusted input; direct construction validates too, but rejects empty
    and whitespace-only components instead of normalizing them.
    """

    org_id: Optional[str] = None
    branch_id: Optional[str] = None

    def __post_init__(self):
        # Organization ids can arrive as ints from upstream payloads
        for field_name in ('org_id', 'branch_id'):
            value = getattr(self, field_name)
            if value is not None and not isinstance(value, str):
                object.__setattr__(self, field_name, str(value))

        if self.branch_id is not None and self.org_id is None:
            raise InvalidScope(
                f"Branch '{self.branch_id}' was given without an organization"
            )
        if any(value is not None and not value.strip() for value in (self.org_id, self.branch_id)):
            raise InvalidScope('Scope components must not be empty or whitespace-only')

    @classmethod
    def from_raw(cls, org_id=None, branch_id=None) -> 'ScopeKey':
        return cls(org_id=_normalize(org_id), branch_id=_normalize(branch_id))

    @classmethod
    def global_scope(cls) -> 'ScopeKey':
        return cls()

    @property
    def tier(self) -> ScopeTier:
        if self.org_id is None:
            return ScopeTier.GLOBAL
        if self.branch_id is None:
            return ScopeTier.ORG
        return ScopeTier.BRANCH

    @property
    def is_global(self) -> bool:
        return self.org_id is None

    @property
    def storage_key(self) -> str:
        """Non-null column value used by the assignment unique constraint."""
        if self.org_id is None:
            return GLOBAL_STORAGE_KEY
        if self.branch_id is None:
            return f"org:{quote(self.org_id, safe='')}"
        return f"org:{quote(self.org_id, safe='')}/branch:{quote(self.branch_id, safe='')}"

    def applies_to(self, context: 'ScopeKey') -> bool:
        """
        Whether an assignment held at this scope is active in ``context``.

        Three independent tests; any one of them is sufficient.
        """
        if self.org_id is None:
            return True
        if context.org_id is not None and self.org_id == context.org_id and self.branch_id is None:
            return True
        return (
            context.org_id is not None
            and context.branch_id is not None
            and self.org_id == context.org_id
            and self.branch_id == context.branch_id
        )

    def __str__(self):
        return self.storage_key
