from fastapi import APIRouter

from gatepass.api.routes import health, auth, tickets, transfers, gate, notifications, admin

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])  # GET /
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])  # POST /login, /login-json, /register
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])  # GET /my, /{id}, /{id}/entry-token
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])  # submit, cancel, pending, claim, history
api_router.include_router(gate.router, prefix="/gate", tags=["gate"])  # POST /check, /scan (scanner/admin)
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])  # transfer moderation
