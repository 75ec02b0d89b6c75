"""
Service plan resolution

A discovered VM is assigned the best fitting Nutanix plan its account can
see. A plan fits when its memory is within one megabyte of the VM's (or the
plan allows custom memory) and its core count matches (or the plan allows
custom cores or does not fix one).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from prism_sync.config import FALLBACK_PLAN_CODE, ONE_MEGABYTE, PROVISION_TYPE_CODE
from prism_sync.models import ResourcePermission, ServicePlan
from prism_sync.store.base import Store

logger = logging.getLogger(__name__)


@dataclass
class PlanCatalog:
    """Plans, their permissions and the fallback plan, loaded once per pass."""
    plans: List[ServicePlan] = field(default_factory=list)
    permissions: List[ResourcePermission] = field(default_factory=list)
    fallback_plan: Optional[ServicePlan] = None

    @classmethod
    def load(cls, store: Store) -> "PlanCatalog":
        plans = store.plans.list(active=True, deleted=False, provision_type_code=PROVISION_TYPE_CODE)
        permissions = []
        if plans:
            permissions = store.permissions.list(
                morpheus_resource_type="ServicePlan",
                morpheus_resource_id__in=[plan.id for plan in plans],
            )
        fallback_plan = store.plans.find(code=FALLBACK_PLAN_CODE)
        logger.debug(f"loaded {len(plans)} plan(s), {len(permissions)} permission(s)")
        return cls(plans=plans, permissions=permissions, fallback_plan=fallback_plan)

    def find_plan(self, max_memory: Optional[int], max_cores: Optional[int],
                  current_plan: Optional[ServicePlan] = None, account_id: Optional[int] = None) -> Optional[ServicePlan]:
        return find_service_plan_by_sizing(
            self.plans, max_memory, max_cores, self.fallback_plan, current_plan, account_id, self.permissions,
        )


def _permissions_by_plan(permissions: List[ResourcePermission]) -> Dict[int, List[ResourcePermission]]:
    by_plan: Dict[int, List[ResourcePermission]] = {}
    for permission in permissions or []:
        by_plan.setdefault(permission.morpheus_resource_id, []).append(permission)
    return by_plan


def plan_visible(plan: ServicePlan, account_id: Optional[int],
                 permissions_by_plan: Dict[int, List[ResourcePermission]]) -> bool:
    """Visible through an explicit grant, else public or owned by the account."""
    grants = permissions_by_plan.get(plan.id)
    if grants:
        return any(grant.all_accounts or grant.account_id == account_id for grant in grants)
    return plan.visibility == "public" or (account_id is not None and plan.owner_id == account_id)


def plan_fits(plan: ServicePlan, max_memory: Optional[int], max_cores: Optional[int]) -> bool:
    memory = max_memory or 0
    memory_fits = plan.custom_max_memory or abs((plan.max_memory or 0) - memory) <= ONE_MEGABYTE
    cores_fits = plan.custom_cores or not plan.max_cores or plan.max_cores == (max_cores or 0)
    return memory_fits and cores_fits


def find_service_plan_by_sizing(plans: List[ServicePlan], max_memory: Optional[int], max_cores: Optional[int],
                                fallback_plan: Optional[ServicePlan] = None,
                                current_plan: Optional[ServicePlan] = None,
                                account_id: Optional[int] = None,
                                permissions: Optional[List[ResourcePermission]] = None) -> Optional[ServicePlan]:
    """
    Best fitting plan for a sizing.

    Args:
        plans: Candidate plans
        max_memory: Memory in bytes
        max_cores: Total cores
        fallback_plan: Returned when no visible plan fits
        current_plan: Kept when it is still visible and still fits
        account_id: Account the plan must be visible to
        permissions: Resource permissions for the candidate plans

    Returns:
        The current plan if it still fits, else the fitting plan with the
        lowest sort order, else the fallback plan.
    """
    permissions_by_plan = _permissions_by_plan(permissions)
    fallback_code = fallback_plan.code if fallback_plan else FALLBACK_PLAN_CODE
    candidates = [
        plan for plan in plans or []
        if plan.code != fallback_code and plan_visible(plan, account_id, permissions_by_plan)
        and plan_fits(plan, max_memory, max_cores)
    ]

    if current_plan is not None and any(plan.id == current_plan.id for plan in candidates):
        return next(plan for plan in candidates if plan.id == current_plan.id)

    if candidates:
        return min(candidates, key=lambda plan: (plan.sort_order, plan.id or 0))
    return fallback_plan
