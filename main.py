#!/usr/bin/env python3
"""
Development server entry point.

Execute from the project root:
    python main.py
"""

import uvicorn

from pm_scheduler.main import app

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
