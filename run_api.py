#!/usr/bin/env python3
"""
Launch the Library Catalogue API under uvicorn.
"""

import uvicorn

from api.config import config
from utilities.config import config as catalog_config


def main():
    print(f"📚 Library Catalogue API {config.api_version}")
    print(f"   http://{config.host}:{config.port}  (database: {catalog_config.mongodb_database})")
    if config.public_read_access:
        print("   ⚠️  Public read access is enabled for authors and books")

    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
