"""
routers/ — FastAPI route modules.

Thin APIRouters only. Business logic lives in services/; routers
validate input, call services, and return responses.
"""
