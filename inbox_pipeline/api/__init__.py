"""
Inbox Pipeline API Module

FastAPI backend providing endpoints for:
- Supervisor sweep invocation (worker credential only)
- Open incident listing for operators
- Health and database connectivity checks
"""
