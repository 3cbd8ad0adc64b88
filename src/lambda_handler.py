"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI, so the
FastAPI app runs unchanged as a serverless function. Each warm Lambda
instance keeps its own rate-limit windows; they reset on cold start.
"""

from mangum import Mangum

from src.logging.audit import setup_logging
from src.main import app

# lifespan is off under Lambda, so configure logging at cold start
setup_logging()

handler = Mangum(app, lifespan="off")
