"""
Pi payment gateway launcher.

    PI_API_KEY=... SUPABASE_URL=... SUPABASE_SERVICE_ROLE_KEY=... python api.py
"""

from __future__ import annotations

import os

from pipay.api import configure_logging, create_app
from pipay.config import GatewayConfig

config = GatewayConfig.from_env()
configure_logging(config.log_level)
app = create_app(config)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
