from fastapi import APIRouter
from app.routers import employees, leave, leave_balances, leave_types, reports, terminal_benefits

# Centralized API router hub
# Routers are aggregated here and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(employees.router)
api_router.include_router(leave_types.router)
api_router.include_router(leave.router)
api_router.include_router(leave_balances.router)
api_router.include_router(reports.router)
api_router.include_router(terminal_benefits.router)
