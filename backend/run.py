"""Entry point for running the estimation stats service."""

import os
from app import create_app

app = create_app()

if __name__ == "__main__":
    # Respect the PORT environment variable when running in containers
    port = int(os.environ.get("PORT", "8080"))
    app.logger.info(f"Server listening on port {port}")
    app.run(host="0.0.0.0", port=port)
