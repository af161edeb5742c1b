"""
Recommendation Engine — deterministic mitigation playbooks.

Each (entity type, risk tier) maps to an ordered list of
``{priority, action, rationale}`` entries. Two component-driven bonus rules
append one extra entry:
  - supplier with a positive geopolitical component → regional diversification
  - shipment with weather component ≥ 30            → reroute / monitor weather

No learning, no state. Every call returns freshly built dicts.
"""

from typing import Any

Playbook = dict[str, tuple[tuple[str, str, str], ...]]

SUPPLIER_PLAYBOOK: Playbook = {
    "critical": (
        ("critical", "Immediately activate backup supplier for all critical orders",
         "Supplier at critical risk level, primary supply chain at risk"),
        ("critical", "Escalate to procurement director for emergency sourcing",
         "Critical risk requires executive-level intervention"),
        ("high", "Freeze new purchase orders until risk is resolved",
         "Prevent further exposure to high-risk supplier"),
        ("high", "Request financial guarantees or letters of credit", "Financial instability detected"),
        ("medium", "Initiate supplier audit and performance review", "Document risk factors for compliance"),
    ),
    "high": (
        ("high", "Allocate critical orders to backup supplier", "High delay rate detected, diversify supply"),
        ("high", "Request financial guarantees or letters of credit", "Financial stability concerns identified"),
        ("medium", "Increase safety stock for products from this supplier",
         "Buffer against potential supply disruption"),
        ("medium", "Schedule performance review meeting with supplier", "Address quality and delivery issues"),
        ("low", "Identify and qualify alternative suppliers", "Reduce single-supplier dependency"),
    ),
    "medium": (
        ("medium", "Monitor supplier performance closely for next 30 days",
         "Medium risk, trend monitoring required"),
        ("medium", "Review and update lead time buffers", "Account for potential delays"),
        ("low", "Request updated financial stability report", "Ensure financial data is current"),
    ),
    "low": (
        ("low", "Continue standard monitoring schedule", "Supplier performing within acceptable parameters"),
    ),
}

SHIPMENT_PLAYBOOK: Playbook = {
    "critical": (
        ("critical", "Contact carrier immediately for shipment status update",
         "Critical delay detected, immediate action required"),
        ("critical", "Notify receiving team and adjust production schedule", "Downstream operations at risk"),
        ("high", "Explore expedited shipping alternatives", "Consider air freight to recover delay"),
        ("high", "Activate contingency inventory from safety stock", "Prevent production stoppage"),
        ("medium", "File delay claim with carrier if applicable", "Recover costs from SLA breach"),
    ),
    "high": (
        ("high", "Contact carrier for updated ETA and delay reason",
         "High delay risk, proactive communication needed"),
        ("high", "Alert downstream stakeholders of potential delay", "Allow time for contingency planning"),
        ("medium", "Review weather and route conditions", "Assess if rerouting is feasible"),
        ("medium", "Check safety stock levels for affected products", "Ensure buffer stock is adequate"),
    ),
    "medium": (
        ("medium", "Monitor shipment tracking closely", "Medium risk, increased monitoring recommended"),
        ("low", "Verify carrier contact information is current", "Ensure rapid communication if issues arise"),
    ),
    "low": (
        ("low", "Continue standard shipment monitoring", "Shipment on track"),
    ),
}

INVENTORY_PLAYBOOK: Playbook = {
    "critical": (
        ("critical", "Place emergency replenishment order immediately",
         "Stock critically low, stockout imminent"),
        ("critical", "Activate safety stock and notify operations team",
         "Prevent production or fulfillment stoppage"),
        ("high", "Contact supplier for expedited delivery", "Standard lead time insufficient"),
        ("high", "Identify alternative suppliers for emergency sourcing",
         "Primary supplier may not meet timeline"),
        ("medium", "Review demand forecast and adjust reorder point", "Prevent recurrence of stockout risk"),
    ),
    "high": (
        ("high", "Initiate replenishment order, stock below reorder point", "Reorder point breached"),
        ("high", "Review and increase safety stock level", "Current buffer insufficient for demand variability"),
        ("medium", "Assess demand forecast accuracy", "High variance detected in demand patterns"),
        ("medium", "Coordinate with supplier on delivery schedule", "Align supply with demand forecast"),
    ),
    "medium": (
        ("medium", "Monitor stock levels daily", "Approaching reorder point"),
        ("low", "Review demand forecast for next 30 days", "Ensure replenishment timing is accurate"),
    ),
    "low": (
        ("low", "Continue standard inventory monitoring", "Stock levels adequate"),
    ),
}

PLAYBOOKS: dict[str, Playbook] = {
    "supplier": SUPPLIER_PLAYBOOK,
    "shipment": SHIPMENT_PLAYBOOK,
    "inventory": INVENTORY_PLAYBOOK,
}

GEOPOLITICAL_DIVERSIFICATION = (
    "high",
    "Review geopolitical risk exposure and consider regional diversification",
    "Geopolitical risk flag active for supplier region",
)
SEVERE_WEATHER_REROUTE = (
    "high",
    "Monitor weather conditions along route and prepare for rerouting",
    "Severe weather conditions detected on shipment route",
)
SEVERE_WEATHER_SCORE = 30


def _entry(rule: tuple[str, str, str]) -> dict[str, str]:
    priority, action, rationale = rule
    return {"priority": priority, "action": action, "rationale": rationale}


def get_recommendations(
    entity_type: str,
    risk_tier: str,
    components: dict[str, Any] | None = None,
) -> list[dict[str, str]]:
    playbook = PLAYBOOKS.get(entity_type)
    if playbook is None:
        return []
    components = components or {}

    recommendations = [_entry(rule) for rule in playbook.get(risk_tier, ())]

    if entity_type == "supplier" and (components.get("geopolitical_score") or 0) > 0:
        recommendations.append(_entry(GEOPOLITICAL_DIVERSIFICATION))
    if entity_type == "shipment" and (components.get("weather_score") or 0) >= SEVERE_WEATHER_SCORE:
        recommendations.append(_entry(SEVERE_WEATHER_REROUTE))

    return recommendations
