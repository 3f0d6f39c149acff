"""Main entry point for the budget gate service."""

import logging
import sys
from typing import NoReturn

from budgetgate.budget.errors import InvalidBudgetConfigError
from budgetgate.config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> NoReturn:
    """Serve the API; the replenishment scheduler runs inside its lifespan."""
    import uvicorn

    from budgetgate.api import create_app

    try:
        app = create_app(settings=settings)
    except InvalidBudgetConfigError as e:
        logger.error(f"Invalid budget configuration: {e}")
        sys.exit(1)

    logger.info(f"Starting budget gate on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
