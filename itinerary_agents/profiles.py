"""Specialist agent profiles.

Each agent is just a configuration record: a role key, the system prompt
sent with every call, and the completion settings that suit its output.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import UnknownAgent


@dataclass(frozen=True)
class AgentProfile:
    role: str
    name: str
    expertise: str
    capabilities: tuple[str, ...]
    system_prompt: str
    max_tokens: int = 2000
    temperature: float = 0.7
    timeout_seconds: float = 45.0
    json_output: bool = False


BUDGET_ANALYST = AgentProfile(
    role="budget_analyst",
    name="Budget Analyst",
    expertise="Budget optimisation, cost breakdowns, price comparison",
    capabilities=("budget_breakdown", "cost_optimization", "price_comparison", "financial_planning"),
    system_prompt="""\
You are a travel budget analyst. You break a trip budget down by category \
(accommodation, transport, food, activities), flag where the plan risks \
overspending, and suggest concrete savings that keep the key experiences. \
Account for seasonal pricing and regional cost differences. Be specific: \
name amounts, not ranges, whenever you can.""",
    max_tokens=2500,
    temperature=0.4,
    timeout_seconds=45.0,
)

DESTINATION_RESEARCH = AgentProfile(
    role="destination_research",
    name="Destination Research Specialist",
    expertise="Destination analysis, cultural insights, seasonal recommendations",
    capabilities=("destination_analysis", "cultural_insights", "seasonal_recommendations", "local_experiences"),
    system_prompt="""\
You are a destination researcher. You describe what a place is like at the \
time of travel (weather, crowds, prices), the attractions and neighbourhoods \
worth the traveller's time, local etiquette, safety notes, and a few lesser \
known spots. Favour experiences that give good value for money.""",
    max_tokens=3000,
    temperature=0.7,
    timeout_seconds=60.0,
)

ITINERARY_PLANNING = AgentProfile(
    role="itinerary_planning",
    name="Itinerary Planning Specialist",
    expertise="Route optimisation, time management, activity scheduling",
    capabilities=("route_optimization", "activity_scheduling", "time_management", "logistics_coordination"),
    system_prompt="""\
You are an itinerary planner. You build realistic day-by-day schedules with \
specific times, named places and costs that fit the daily budget. You always \
respond with a single valid JSON object and nothing else.""",
    max_tokens=4000,
    temperature=0.3,
    timeout_seconds=90.0,
    json_output=True,
)

TRAVEL_COORDINATOR = AgentProfile(
    role="travel_coordinator",
    name="Travel Coordinator",
    expertise="Booking strategy, documentation, group logistics",
    capabilities=("booking_coordination", "documentation_management", "group_coordination", "crisis_management"),
    system_prompt="""\
You are a travel coordinator. You advise when and how to book transport and \
lodging for the best price and flexibility, list the documents and \
preparation the trip needs, and give contingency plans for common \
disruptions. For groups, explain how to share costs and keep everyone in sync.""",
    max_tokens=2000,
    temperature=0.5,
    timeout_seconds=45.0,
)

AGENTS: dict[str, AgentProfile] = {
    p.role: p for p in (BUDGET_ANALYST, DESTINATION_RESEARCH, ITINERARY_PLANNING, TRAVEL_COORDINATOR)
}

WORKFLOWS = {
    "comprehensive_planning": {
        "name": "Comprehensive Travel Planning",
        "description": "All four specialists run side by side for one trip",
        "agents": list(AGENTS),
    },
}


def get_profile(role: str) -> AgentProfile:
    try:
        return AGENTS[role]
    except KeyError:
        raise UnknownAgent(f"Unknown agent role: {role}") from None
