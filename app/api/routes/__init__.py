from fastapi import APIRouter
from app.api.routes import conversational_workflow, health, test_cases

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router)
api_router.include_router(conversational_workflow.router)
api_router.include_router(test_cases.router)
