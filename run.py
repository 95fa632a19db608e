import asyncio
import logging
import sys

import uvicorn

from gpowatch.core.exceptions import PolicyDriftError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("gpowatch.log")
    ]
)

logger = logging.getLogger(__name__)


def serve():
    """Run the API with uvicorn"""
    logger.info("Starting GPOWatch API server")
    uvicorn.run(
        "gpowatch.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )


def scan() -> int:
    """Run a single drift detection pass, for use from an external scheduler"""
    from gpowatch.tasks.drift_tasks import run_drift_detection

    try:
        result = asyncio.run(run_drift_detection(triggered_by="cli"))
    except PolicyDriftError as e:
        logger.error(f"Drift detection failed: {e.message}")
        return 1

    logger.info(f"Drift detection finished: {result.summary()}")
    return 0


def main():
    if len(sys.argv) > 1 and sys.argv[1] == "scan":
        sys.exit(scan())
    serve()


if __name__ == "__main__":
    main()
