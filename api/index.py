"""
Vercel serverless function entry point for the Rent Car CRM API.
Vercel picks up ``app`` from this module; the FastAPI lifespan creates the
tables on the first cold start.
"""
import sys
import os

# The application modules live in the repository root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app  # noqa: E402

__all__ = ["app"]
