from fastapi import APIRouter

from railfleet.routers import assignments, cars, health, idle, leases, releases, transitions, triage

api_router = APIRouter()
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(cars.router, tags=["Cars"])
api_router.include_router(leases.router, tags=["Leases"])
api_router.include_router(releases.router, prefix="/releases", tags=["Releases"])
api_router.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
api_router.include_router(triage.router, prefix="/triage", tags=["Triage"])
api_router.include_router(idle.router, tags=["Idle"])
api_router.include_router(transitions.router, prefix="/transitions", tags=["Transitions"])
