from __future__ import annotations

import uvicorn

from leasekeeper.apps.api.main import create_app
from leasekeeper.core.config import get_settings


def main() -> None:
    # Run the lease API with env-driven settings and the SQL, Redis and audit adapters.
    settings = get_settings()
    app = create_app()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
