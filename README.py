"""
TestForge API

FastAPI backend that guides a user through a conversational requirements
analysis, produces a final requirements document (the "summit") and derives
test cases from completed analyses with an AI provider.

Architecture Overview:
- Repository pattern for data access
- Dependency Injection container built once per application
- Interface-based design for the AI gateway and the stores
- Deterministic template replies for routine chat turns; the AI provider is
  reserved for the final document and for test case generation

Key Features:
- Conversation lifecycle: start, chat, pause, resume, complete, reopen, archive
- Heuristic phase detection and completeness scoring of every user turn
- Readiness check before completing an analysis
- Summit (final requirements document) read/create/update and AI finalization
- Test case generation from a completed analysis, its summit or a project
- Structured JSON logging and a typed error envelope

Usage:
1. Create a .env file (see .env.example) with the AI provider keys
2. Install the project: pip install -e ".[test]"
3. Run the application: python main.py
4. Access API docs at: http://localhost:8000/api/v1/docs

Every request identifies its caller with the X-User-Id header.

API Endpoints:
- POST /api/v1/conversational-workflow - Start a conversation
- GET /api/v1/conversational-workflow - List the caller's analyses
- POST /api/v1/conversational-workflow/{id}/chat - Send a message
- POST /api/v1/conversational-workflow/{id}/retry - Answer a pending message
- GET /api/v1/conversational-workflow/{id}/status - Analysis snapshot
- GET /api/v1/conversational-workflow/{id}/readiness - Readiness check
- POST /api/v1/conversational-workflow/{id}/complete|pause|resume|reopen|archive
- GET|POST|PATCH /api/v1/conversational-workflow/{id}/summit
- POST /api/v1/conversational-workflow/{id}/summit/finalize
- POST /api/v1/test-cases/generate - Generate test cases
- GET /api/v1/test-cases?analysis_id=... - List generated test cases
- GET /api/v1/health - Health check

Architecture Components:

1. Controllers (app/api/routes/):
   - Handle HTTP requests and responses
   - Input validation using Pydantic
   - Domain errors mapped to HTTP by app/api/error_handlers.py

2. Services (app/services/):
   - chat_intelligence: pure heuristics and reply templates
   - conversational_workflow_service: the workflow state machine
   - test_case_service: test case synthesis

3. Repositories (app/repositories/):
   - Data access layer and AI gateway
   - Interface-based design for testability
   - SQLAlchemy stores, OpenAI and Gemini gateways

4. Models (app/models/):
   - Pydantic schemas for request/response
   - SQLAlchemy models for database

5. Core (app/core/):
   - Database configuration, errors, per-analysis locks, snapshot cache
   - Dependency injection

6. Configuration (app/config/):
   - Environment-based settings
   - Type-safe configuration management
"""

__version__ = "1.0.0"
__description__ = "Conversational requirements analysis and AI test case generation"
