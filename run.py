#!/usr/bin/env python3
"""
Simple script to run the Employee Portal Accounting Core
"""

import uvicorn
from portal.core.config import settings

if __name__ == "__main__":
    print("Starting Employee Portal Accounting Core...")
    print(f"App: {settings.app_name}")
    print(f"Host: {settings.host}")
    print(f"Port: {settings.port}")
    print(f"Debug: {settings.debug}")
    print(f"API Documentation: http://localhost:{settings.port}/docs")
    print(f"Health Check: http://localhost:{settings.port}/health")
    print("-" * 50)

    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
