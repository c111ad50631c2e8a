"""FastAPI Backend - itinerary planning agents"""
import os
import json
from datetime import date

# Load .env before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from typing import List, Optional

from TripParameters import DateRange, TripParameters
from itinerary_agents import InMemoryMetrics, InvalidRequest, TravelAgentCoordinator, UnknownAgent
from itinerary_agents.llm import llm_name

# FastAPI app
app = FastAPI(
    title="Itinerary Agents API",
    description="Day-by-day trip itineraries from unreliable LLM output, never empty-handed",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

metrics = InMemoryMetrics()
coordinator = TravelAgentCoordinator(metrics=metrics)


# Pydantic models
class DatesModel(BaseModel):
    start: date
    end: date

class TripRequest(BaseModel):
    destination: str
    budget: float
    duration: int
    travelers: int = 1
    interests: List[str] = []
    dates: Optional[DatesModel] = None

    def to_params(self) -> TripParameters:
        return TripParameters(
            destination=self.destination,
            total_budget=self.budget,
            duration_days=self.duration,
            traveler_count=self.travelers,
            interests=tuple(self.interests),
            date_range=DateRange(self.dates.start, self.dates.end) if self.dates else None,
        )

class AgentTaskRequest(TripRequest):
    task: str = ""


def _sse(event: dict) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


# Itinerary
@app.post("/itinerary")
def create_itinerary(request: TripRequest):
    try:
        result = coordinator.planner.generate_itinerary(request.to_params())
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.as_payload()


# Agents
@app.get("/agents/capabilities")
def agent_capabilities():
    return coordinator.capabilities()

@app.post("/agents/comprehensive-planning")
def comprehensive_planning(request: TripRequest):
    try:
        return coordinator.plan_comprehensive(request.to_params())
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/agents/comprehensive-planning/stream")
def comprehensive_planning_stream(request: TripRequest):
    """SSE endpoint - streams agent progress events as the specialists finish."""
    try:
        events = coordinator.plan_comprehensive_stream(request.to_params())
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

    def event_generator():
        try:
            for event in events:
                yield _sse(event)
        except Exception as exc:
            yield _sse({"type": "error", "message": str(exc)})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

@app.post("/agents/{role}")
def run_agent(role: str, request: AgentTaskRequest):
    try:
        output = coordinator.execute_agent_task(role, request.task, request.to_params())
    except UnknownAgent as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"Agent task failed: {e}")
    return {"role": role, "result": output}


# Health check
@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "version": "1.0.0",
        "llm": llm_name(),
        "llm_provider": os.getenv("LLM_PROVIDER", "openai"),
        "agents": list(coordinator.capabilities()["agents"]),
        "metrics": metrics.snapshot(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
