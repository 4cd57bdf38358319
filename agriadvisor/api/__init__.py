"""
AgriAdvisor API Module
FastAPI routers, schemas and error handling
"""
