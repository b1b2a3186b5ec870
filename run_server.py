#!/usr/bin/env python3
"""
Simple script to run the FastAPI server programmatically
"""
import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "backoffice.fastapi.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
