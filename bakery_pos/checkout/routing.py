# bakery_pos/checkout/routing.py
"""Routing Deriver: which production teams an order visits, and in what order."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .types import CartLine, ProductSpec


class OrderStage(str, Enum):
    DESIGN_QUEUE = "DESIGN_QUEUE"
    DESIGN_PROCESSING = "DESIGN_PROCESSING"
    DESIGN_READY = "DESIGN_READY"
    KITCHEN_QUEUE = "KITCHEN_QUEUE"
    KITCHEN_PROCESSING = "KITCHEN_PROCESSING"
    KITCHEN_READY = "KITCHEN_READY"
    FINAL_CHECK_QUEUE = "FINAL_CHECK_QUEUE"


class Team(str, Enum):
    KITCHEN = "KITCHEN"
    DESIGN = "DESIGN"


DESIGN_STAGES = (OrderStage.DESIGN_QUEUE, OrderStage.DESIGN_PROCESSING, OrderStage.DESIGN_READY)
KITCHEN_STAGES = (OrderStage.KITCHEN_QUEUE, OrderStage.KITCHEN_PROCESSING, OrderStage.KITCHEN_READY)

DEFAULT_CATEGORY_TEAMS: Dict[str, Tuple[str, ...]] = {
    "cakes": (Team.KITCHEN.value,),
    "flowers": (Team.DESIGN.value,),
    "sets": (Team.KITCHEN.value, Team.DESIGN.value),
}


@dataclass(frozen=True)
class RoutingPlan:
    initial_queue: OrderStage
    assigned_team: Optional[Team]
    processing_flow: Tuple[OrderStage, ...]
    requires_kitchen: bool
    requires_design: bool
    requires_sequential_processing: bool
    can_return_to_kitchen: bool
    can_return_to_design: bool
    current_step: int = 0
    requires_final_check: bool = True

    def as_metadata(self) -> Dict[str, Any]:
        """Routing block the order service stores with the order."""
        return {
            "routing": {
                "initialQueue": self.initial_queue.value,
                "status": self.processing_flow[self.current_step].value,
                "assignedTeam": self.assigned_team.value if self.assigned_team else None,
                "processingFlow": [s.value for s in self.processing_flow],
                "currentStep": self.current_step,
            },
            "qualityControl": {
                "requiresFinalCheck": self.requires_final_check,
                "canReturnToKitchen": self.can_return_to_kitchen,
                "canReturnToDesign": self.can_return_to_design,
                "finalCheckNotes": "",
            },
        }


def product_teams(
    product: ProductSpec,
    category_teams: Optional[Mapping[str, Sequence[str]]] = None,
) -> Tuple[bool, bool]:
    """(requires_kitchen, requires_design) for one product; explicit flags win over category defaults."""
    teams = category_teams if category_teams is not None else DEFAULT_CATEGORY_TEAMS
    implied = {str(t).upper() for t in teams.get((product.category or "").strip().lower(), ())}
    kitchen = product.requires_kitchen if product.requires_kitchen is not None else Team.KITCHEN.value in implied
    design = product.requires_design if product.requires_design is not None else Team.DESIGN.value in implied
    return bool(kitchen), bool(design)


def derive_routing(
    lines: Iterable[CartLine],
    category_teams: Optional[Mapping[str, Sequence[str]]] = None,
) -> RoutingPlan:
    kitchen = False
    design = False
    for line in lines:
        k, d = product_teams(line.product, category_teams)
        kitchen = kitchen or k
        design = design or d

    # both teams never work the same order at once: design first, then kitchen
    flow: List[OrderStage] = []
    if design:
        flow.extend(DESIGN_STAGES)
    if kitchen:
        flow.extend(KITCHEN_STAGES)
    flow.append(OrderStage.FINAL_CHECK_QUEUE)

    if design:
        team: Optional[Team] = Team.DESIGN
    elif kitchen:
        team = Team.KITCHEN
    else:
        team = None

    return RoutingPlan(
        initial_queue=flow[0],
        assigned_team=team,
        processing_flow=tuple(flow),
        requires_kitchen=kitchen,
        requires_design=design,
        requires_sequential_processing=kitchen and design,
        can_return_to_kitchen=kitchen,
        can_return_to_design=design,
    )
