from fastapi import FastAPI
from backoffice.fastapi.api.v1.endpoints import admin, auth, employee

def setup_routers(app: FastAPI):
    # Authentication routes (one login form for every user type)
    app.include_router(auth.router, prefix="/api/v1/auth", tags=["authentication"])

    # Employee onboarding routes
    app.include_router(employee.router, prefix="/api/v1/employees", tags=["employees"])

    # Admin maintenance routes
    app.include_router(admin.admin_router, prefix="/api/v1/admin", tags=["admin"])
