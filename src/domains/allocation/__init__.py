# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organization allocation domain.

Schools and preschools share a quota pool that admins subdivide among
members.
"""

from src.domains.allocation.schemas import (
    BulkAllocationItem,
    BulkAllocationResult,
    OrganizationAllocation,
    OrganizationContext,
    OrganizationPool,
    PriorityLevel,
)
from src.domains.allocation.service import (
    AllocationCapacityError,
    AllocationError,
    AllocationLimitError,
    AllocationNotFoundError,
    AllocationPermissionError,
    AllocationValidationError,
    OrganizationAllocationPool,
    can_manage_allocations,
)

__all__ = [
    "AllocationCapacityError",
    "AllocationError",
    "AllocationLimitError",
    "AllocationNotFoundError",
    "AllocationPermissionError",
    "AllocationValidationError",
    "BulkAllocationItem",
    "BulkAllocationResult",
    "OrganizationAllocation",
    "OrganizationAllocationPool",
    "OrganizationContext",
    "OrganizationPool",
    "PriorityLevel",
    "can_manage_allocations",
]
