# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organization allocation API endpoints.

This module provides endpoints for an organization's quota pool:
- GET /{organization_id}/allocation - Pool totals and availability
- GET /{organization_id}/allocations - Active member allocations
- POST /{organization_id}/allocations - Allocate quotas to a member
- POST /{organization_id}/allocations/bulk - Allocate to several members
- GET /{organization_id}/allocations/history - All allocation versions
- GET /{organization_id}/allocations/over - Allocations whose usage exceeds them
- POST /{organization_id}/allocations/{member_id}/suspend - Suspend a member
- POST /{organization_id}/allocations/{member_id}/reactivate - Lift a suspension

Callers may only address their own organization. Mutations additionally
require an admin role (principal or principal_admin).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_allocation_pool, get_caller
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
)
from src.domains.quota.schemas import Caller

logger = logging.getLogger(__name__)

router = APIRouter()


class AllocateRequest(BaseModel):
    """Allocation of quotas to one member."""

    member_id: str = Field(min_length=1)
    quotas: dict[str, int] = Field(description="Feature name to amount")
    reason: str | None = None
    member_role: str | None = None
    priority_level: PriorityLevel = PriorityLevel.NORMAL
    auto_renew: bool = True


class BulkAllocateRequest(BaseModel):
    """Batch of member allocations."""

    items: list[BulkAllocationItem] = Field(min_length=1)


class SuspendRequest(BaseModel):
    """Suspension note."""

    reason: str | None = None


def _organization_context(organization_id: str, caller: Caller) -> OrganizationContext:
    if caller.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )
    return OrganizationContext.from_caller(caller)


def _to_http_error(e: AllocationError) -> HTTPException:
    if isinstance(e, AllocationPermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, AllocationNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, (AllocationLimitError, AllocationCapacityError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, AllocationValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(e))


@router.get(
    "/{organization_id}/allocation",
    response_model=OrganizationPool,
    summary="Get organization pool",
)
async def get_pool(
    organization_id: str,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> OrganizationPool:
    """Pool totals, what is allocated and what remains."""
    organization = _organization_context(organization_id, caller)
    return await pool.get_organization_allocation(organization)


@router.get(
    "/{organization_id}/allocations",
    response_model=list[OrganizationAllocation],
    summary="List member allocations",
)
async def list_allocations(
    organization_id: str,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> list[OrganizationAllocation]:
    """Active allocations, suspended ones included."""
    _organization_context(organization_id, caller)
    return await pool.get_member_allocations(organization_id)


@router.post(
    "/{organization_id}/allocations",
    response_model=OrganizationAllocation,
    status_code=status.HTTP_201_CREATED,
    summary="Allocate quotas to a member",
)
async def allocate(
    organization_id: str,
    data: AllocateRequest,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> OrganizationAllocation:
    """Assign quotas to a member, superseding any previous allocation."""
    organization = _organization_context(organization_id, caller)
    try:
        return await pool.allocate(
            organization,
            caller,
            data.member_id,
            data.quotas,
            data.reason,
            member_role=data.member_role,
            priority_level=data.priority_level,
            auto_renew=data.auto_renew,
        )
    except AllocationError as e:
        raise _to_http_error(e)


@router.post(
    "/{organization_id}/allocations/bulk",
    response_model=list[BulkAllocationResult],
    summary="Allocate quotas to several members",
)
async def bulk_allocate(
    organization_id: str,
    data: BulkAllocateRequest,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> list[BulkAllocationResult]:
    """Each entry succeeds or fails on its own."""
    organization = _organization_context(organization_id, caller)
    return await pool.bulk_allocate(organization, caller, data.items)


@router.get(
    "/{organization_id}/allocations/history",
    response_model=list[OrganizationAllocation],
    summary="Get allocation history",
)
async def get_history(
    organization_id: str,
    member_id: str | None = Query(default=None),
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> list[OrganizationAllocation]:
    """All allocation rows including superseded ones, oldest first."""
    _organization_context(organization_id, caller)
    return await pool.get_allocation_history(organization_id, member_id)


@router.get(
    "/{organization_id}/allocations/over",
    response_model=list[OrganizationAllocation],
    summary="Find over-allocated members",
)
async def get_over_allocations(
    organization_id: str,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> list[OrganizationAllocation]:
    """Active allocations whose usage exceeds the allocated amount."""
    _organization_context(organization_id, caller)
    return await pool.find_over_allocations(organization_id)


@router.post(
    "/{organization_id}/allocations/{member_id}/suspend",
    response_model=OrganizationAllocation,
    summary="Suspend a member allocation",
)
async def suspend(
    organization_id: str,
    member_id: str,
    data: SuspendRequest | None = None,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> OrganizationAllocation:
    """Suspend a member; their AI requests are denied until reactivated."""
    _organization_context(organization_id, caller)
    try:
        return await pool.suspend(
            organization_id, caller, member_id, data.reason if data else None
        )
    except AllocationError as e:
        raise _to_http_error(e)


@router.post(
    "/{organization_id}/allocations/{member_id}/reactivate",
    response_model=OrganizationAllocation,
    summary="Reactivate a member allocation",
)
async def reactivate(
    organization_id: str,
    member_id: str,
    caller: Caller = Depends(get_caller),
    pool: OrganizationAllocationPool = Depends(get_allocation_pool),
) -> OrganizationAllocation:
    """Lift a suspension."""
    _organization_context(organization_id, caller)
    try:
        return await pool.reactivate(organization_id, caller, member_id)
    except AllocationError as e:
        raise _to_http_error(e)
